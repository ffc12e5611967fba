"""
Tests for billsync

Test strategy:
1. Unit tests for individual components (models, validators, limiter)
2. Flow tests for fetch/refresh/linking (with scripted providers)
3. No real provider, network or Google API calls in tests
"""

import json
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from billsync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from billsync.models.bill import (
    AccountStatus,
    Bill,
    BillStatus,
    BillSummary,
    BillValidationResult,
    LinkedAccount,
    LinkedAccountResponse,
    Provider,
    ValidationIssue,
)


class TestBillModels:
    """Tests for bill-related Pydantic models."""

    def test_bill_creation(self):
        """Test Bill model creation with defaults."""
        bill = Bill(amount=Decimal("42.50"), due_date=date(2024, 7, 1))

        assert bill.id is None
        assert bill.status == BillStatus.UNPAID
        assert bill.linked_account_id == ""

    def test_bill_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            Bill(amount=Decimal("-1"), due_date=date(2024, 7, 1))

    def test_bill_is_due(self):
        """Unpaid and overdue bills are due; paid ones are not."""
        due = date(2024, 7, 1)
        assert Bill(amount=1, due_date=due, status=BillStatus.UNPAID).is_due
        assert Bill(amount=1, due_date=due, status=BillStatus.OVERDUE).is_due
        assert not Bill(amount=1, due_date=due, status=BillStatus.PAID).is_due

    def test_provider_strips_whitespace(self):
        """Test that whitespace is stripped from provider name."""
        provider = Provider(name="  Electricity Co  ", api_endpoint="http://e")
        assert provider.name == "Electricity Co"

    def test_linked_account_hides_credentials(self):
        """Credentials stay out of repr and out of the public view."""
        account = LinkedAccount(
            user_id="u-1",
            provider_id="p-1",
            account_id="A",
            credentials="gAAAA-encrypted",
        )

        assert "gAAAA" not in repr(account)
        response = LinkedAccountResponse.from_account(account)
        assert "credentials" not in response.model_dump()
        assert response.status == AccountStatus.ACTIVE


class TestBillSummary:
    """Tests for BillSummary aggregation."""

    def test_from_bills_sums_due_bills(self):
        due = date(2024, 7, 1)
        summary = BillSummary.from_bills([
            Bill(amount=Decimal("50.00"), due_date=due, status=BillStatus.UNPAID),
            Bill(amount=Decimal("30.00"), due_date=due, status=BillStatus.OVERDUE),
            Bill(amount=Decimal("20.00"), due_date=due, status=BillStatus.PAID),
        ])

        assert summary.total_due == Decimal("80.00")
        assert summary.bill_count == 3

    def test_total_is_order_independent(self):
        due = date(2024, 7, 1)
        bills = [Bill(amount=Decimal(str(n)), due_date=due) for n in ("0.10", "0.20", "0.30")]

        forward = BillSummary.from_bills(bills)
        backward = BillSummary.from_bills(list(reversed(bills)))

        assert forward.total_due == backward.total_due == Decimal("0.60")

    def test_json_shape(self):
        """The API shape is {bills, total_due, bill_count}."""
        payload = json.loads(BillSummary.empty().model_dump_json())

        assert payload == {"bills": [], "total_due": 0.0, "bill_count": 0}


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.CACHE_HIT,
            description="Served 2 bills from cache",
        )
        assert event.event_type == AuditEventType.CACHE_HIT
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.BILLS_PERSISTED,
            description="Persisted bills",
            details={"created": 2, "updated": 1},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "bills_persisted"
        assert log_dict["details"]["created"] == 2

    def test_audit_event_to_sheets_row(self):
        """Test conversion to sheets row."""
        event = AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            description="Something broke",
            error_code="RuntimeError",
        )
        row = event.to_sheets_row()
        assert len(row) == 11  # Expected number of columns
        assert row[2] == "system_error"  # event_type
        assert row[9] == "RuntimeError"  # error_code

    def test_audit_event_builder_provider_call_failed(self):
        """Test AuditEventBuilder.provider_call_failed."""
        correlation_id = uuid4()

        event = AuditEventBuilder.provider_call_failed(
            account_id="la-1",
            provider_id="p-1",
            attempt=2,
            error_message="timeout",
            correlation_id=correlation_id,
        )

        assert event.event_type == AuditEventType.PROVIDER_CALL_FAILED
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "la-1"
        assert event.details["attempt"] == 2
        assert event.correlation_id == correlation_id

    def test_audit_event_builder_refresh_failure(self):
        """Refresh failures get their own event type."""
        event = AuditEventBuilder.account_fetch_failed(
            account_id="la-1",
            provider_id="p-1",
            error_message="down",
            correlation_id=uuid4(),
            refresh=True,
        )

        assert event.event_type == AuditEventType.ACCOUNT_REFRESH_FAILED
        assert event.severity == AuditSeverity.ERROR


class TestValidationResult:
    """Tests for BillValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = BillValidationResult(
            linked_account_id="la-1",
            issues=[
                ValidationIssue(
                    field="linked_account_id",
                    issue_type="wrong_account",
                    message="Bill belongs to another account",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1
        assert result.is_valid is False

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = BillValidationResult(
            linked_account_id="la-1",
            issues=[
                ValidationIssue(
                    field="due_date",
                    issue_type="inconsistent",
                    message="Due date before bill date",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.warnings == ["Due date before bill date"]

    def test_validation_issue_severity_is_checked(self):
        with pytest.raises(ValueError):
            ValidationIssue(field="x", issue_type="y", message="z", severity="fatal")
