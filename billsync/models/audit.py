"""
Audit Models for billsync

Per-account fetch and refresh failures are never surfaced to API callers
in lenient paths. The audit trail is the only place they become visible,
so every significant step of the orchestration core emits an event.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from billsync.models.bill import utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Fetch path
    BILLS_FETCH_STARTED = "bills_fetch_started"
    BILLS_FETCH_COMPLETED = "bills_fetch_completed"
    BILLS_FETCH_FAILED = "bills_fetch_failed"
    CACHE_HIT = "cache_hit"
    PROVIDER_CALL_FAILED = "provider_call_failed"
    ACCOUNT_FETCH_FAILED = "account_fetch_failed"

    # Refresh path
    ACCOUNT_REFRESH_SKIPPED = "account_refresh_skipped"
    ACCOUNT_REFRESH_FAILED = "account_refresh_failed"
    BILLS_PERSISTED = "bills_persisted"
    REFRESH_COMPLETED = "refresh_completed"
    PERIODIC_REFRESH_TICK = "periodic_refresh_tick"

    # Account linking
    ACCOUNT_LINKED = "account_linked"
    ACCOUNT_UNLINKED = "account_unlinked"
    ACCOUNT_STATUS_CHANGED = "account_status_changed"
    CREDENTIALS_REJECTED = "credentials_rejected"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'user', 'linked_account')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Opaque ID of the entity this event relates to"
    )

    # Correlation - one id per top-level fetch/refresh call
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_code, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.cache_hit(account_id, bill_count, correlation_id)
        event = AuditEventBuilder.account_fetch_failed(account_id, provider_id, error, correlation_id)
    """

    @staticmethod
    def fetch_started(
        user_id: str,
        account_count: int,
        provider_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILLS_FETCH_STARTED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Fetching bills for {account_count} linked accounts",
            details={
                "account_count": account_count,
                "provider_id": provider_id,
            },
        )

    @staticmethod
    def fetch_completed(
        user_id: str,
        bill_count: int,
        total_due: str,
        failed_accounts: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILLS_FETCH_COMPLETED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Fetched {bill_count} bills, total due {total_due}",
            details={
                "bill_count": bill_count,
                "total_due": total_due,
                "failed_accounts": failed_accounts,
            },
        )

    @staticmethod
    def fetch_failed(
        user_id: str,
        account_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILLS_FETCH_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description="Bill fetch aborted: a linked account could not be fetched",
            details={"failed_account_id": account_id},
            error_message=error_message,
        )

    @staticmethod
    def cache_hit(
        account_id: str,
        bill_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CACHE_HIT,
            severity=AuditSeverity.DEBUG,
            entity_type="linked_account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Served {bill_count} bills from cache",
            details={"bill_count": bill_count},
        )

    @staticmethod
    def provider_call_failed(
        account_id: str,
        provider_id: str,
        attempt: int,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PROVIDER_CALL_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="linked_account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Provider call attempt {attempt} failed",
            details={
                "provider_id": provider_id,
                "attempt": attempt,
            },
            error_message=error_message,
        )

    @staticmethod
    def account_fetch_failed(
        account_id: str,
        provider_id: str,
        error_message: str,
        correlation_id: UUID,
        refresh: bool = False,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.ACCOUNT_REFRESH_FAILED
            if refresh
            else AuditEventType.ACCOUNT_FETCH_FAILED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.ERROR,
            entity_type="linked_account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Could not {'refresh' if refresh else 'fetch'} bills for account",
            details={"provider_id": provider_id},
            error_message=error_message,
        )

    @staticmethod
    def refresh_skipped(
        account_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_REFRESH_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="linked_account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description="Refresh skipped: cached bills are still fresh",
        )

    @staticmethod
    def bills_persisted(
        account_id: str,
        created: int,
        updated: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILLS_PERSISTED,
            entity_type="linked_account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"Persisted bills: {created} created, {updated} updated",
            details={"created": created, "updated": updated},
        )

    @staticmethod
    def refresh_completed(
        user_id: str,
        refreshed: int,
        skipped: int,
        failed: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFRESH_COMPLETED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Refresh completed: {refreshed} refreshed, {skipped} skipped, {failed} failed",
            details={"refreshed": refreshed, "skipped": skipped, "failed": failed},
        )

    @staticmethod
    def periodic_tick(
        user_count: int,
        failed_users: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIODIC_REFRESH_TICK,
            correlation_id=correlation_id,
            description=f"Periodic refresh tick over {user_count} users",
            details={"user_count": user_count, "failed_users": failed_users},
        )

    @staticmethod
    def account_linked(
        account_id: str,
        user_id: str,
        provider_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_LINKED,
            entity_type="linked_account",
            entity_id=account_id,
            description="Account linked",
            details={"user_id": user_id, "provider_id": provider_id},
        )

    @staticmethod
    def account_unlinked(account_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UNLINKED,
            entity_type="linked_account",
            entity_id=account_id,
            description="Account unlinked",
        )

    @staticmethod
    def account_status_changed(
        account_id: str,
        old_status: str,
        new_status: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_STATUS_CHANGED,
            severity=AuditSeverity.WARNING if new_status == "error" else AuditSeverity.INFO,
            entity_type="linked_account",
            entity_id=account_id,
            description=f"Account status changed: {old_status} -> {new_status}",
            details={"old_status": old_status, "new_status": new_status},
        )

    @staticmethod
    def credentials_rejected(
        user_id: str,
        provider_id: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDENTIALS_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=user_id,
            description="Provider rejected credentials",
            details={"provider_id": provider_id},
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
