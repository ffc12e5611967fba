"""
Audit Logger

DESIGN DECISION: Every fetch, refresh and account change is logged.
This provides:
1. Traceability of each top-level call through its correlation id
2. Visibility into flaky providers (every failed attempt is recorded)
3. A persistent trail when an audit storage backend is configured

The audit logger:
- Is async to not block the fetch pipeline
- Gracefully handles storage failures (never raises into the caller)
- Supports correlation IDs to trace related events
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from billsync.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from billsync.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (in-memory or Google Sheets), if configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("billsync.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity == AuditSeverity.ERROR or event.severity == AuditSeverity.CRITICAL:
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_fetch_started(
        self,
        user_id: str,
        account_count: int,
        correlation_id: UUID,
        provider_id: Optional[str] = None,
    ) -> None:
        """Log the start of a user-level fetch."""
        await self.log(AuditEventBuilder.fetch_started(
            user_id=user_id,
            account_count=account_count,
            provider_id=provider_id,
            correlation_id=correlation_id,
        ))

    async def log_fetch_completed(
        self,
        user_id: str,
        bill_count: int,
        total_due: str,
        failed_accounts: int,
        correlation_id: UUID,
    ) -> None:
        """Log a successful user-level fetch."""
        await self.log(AuditEventBuilder.fetch_completed(
            user_id=user_id,
            bill_count=bill_count,
            total_due=total_due,
            failed_accounts=failed_accounts,
            correlation_id=correlation_id,
        ))

    async def log_fetch_failed(
        self,
        user_id: str,
        account_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a user-level fetch aborted by an account failure."""
        await self.log(AuditEventBuilder.fetch_failed(
            user_id=user_id,
            account_id=account_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_cache_hit(
        self,
        account_id: str,
        bill_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.cache_hit(
            account_id=account_id,
            bill_count=bill_count,
            correlation_id=correlation_id,
        ))

    async def log_provider_call_failed(
        self,
        account_id: str,
        provider_id: str,
        attempt: int,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log one failed provider attempt."""
        await self.log(AuditEventBuilder.provider_call_failed(
            account_id=account_id,
            provider_id=provider_id,
            attempt=attempt,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_account_failed(
        self,
        account_id: str,
        provider_id: str,
        error_message: str,
        correlation_id: UUID,
        refresh: bool = False,
    ) -> None:
        """Log an account whose fetch or refresh gave up."""
        await self.log(AuditEventBuilder.account_fetch_failed(
            account_id=account_id,
            provider_id=provider_id,
            error_message=error_message,
            correlation_id=correlation_id,
            refresh=refresh,
        ))

    async def log_refresh_skipped(
        self,
        account_id: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.refresh_skipped(
            account_id=account_id,
            correlation_id=correlation_id,
        ))

    async def log_bills_persisted(
        self,
        account_id: str,
        created: int,
        updated: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.bills_persisted(
            account_id=account_id,
            created=created,
            updated=updated,
            correlation_id=correlation_id,
        ))

    async def log_refresh_completed(
        self,
        user_id: str,
        refreshed: int,
        skipped: int,
        failed: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.refresh_completed(
            user_id=user_id,
            refreshed=refreshed,
            skipped=skipped,
            failed=failed,
            correlation_id=correlation_id,
        ))

    async def log_periodic_tick(
        self,
        user_count: int,
        failed_users: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.periodic_tick(
            user_count=user_count,
            failed_users=failed_users,
            correlation_id=correlation_id,
        ))

    async def log_account_linked(
        self,
        account_id: str,
        user_id: str,
        provider_id: str,
    ) -> None:
        await self.log(AuditEventBuilder.account_linked(
            account_id=account_id,
            user_id=user_id,
            provider_id=provider_id,
        ))

    async def log_account_unlinked(self, account_id: str) -> None:
        await self.log(AuditEventBuilder.account_unlinked(account_id=account_id))

    async def log_account_status_changed(
        self,
        account_id: str,
        old_status: str,
        new_status: str,
    ) -> None:
        await self.log(AuditEventBuilder.account_status_changed(
            account_id=account_id,
            old_status=old_status,
            new_status=new_status,
        ))

    async def log_credentials_rejected(
        self,
        user_id: str,
        provider_id: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.credentials_rejected(
            user_id=user_id,
            provider_id=provider_id,
            error_message=error_message,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        await self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of each top-level fetch or refresh call.
    Pass it through all per-account work.
    """
    return uuid4()
