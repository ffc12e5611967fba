"""
Data Models Package

This package contains all Pydantic models used in billsync.
"""

from billsync.models.bill import (
    AccountStatus,
    AuthType,
    Bill,
    BillStatus,
    BillValidationResult,
    BillSummary,
    LinkedAccount,
    LinkedAccountResponse,
    Provider,
    User,
    ValidationIssue,
)
from billsync.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Domain models
    "AccountStatus",
    "AuthType",
    "Bill",
    "BillStatus",
    "BillSummary",
    "BillValidationResult",
    "LinkedAccount",
    "LinkedAccountResponse",
    "Provider",
    "User",
    "ValidationIssue",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
