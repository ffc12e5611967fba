"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is supported as a storage backend because:
1. Users can inspect their linked accounts and bills directly in Sheets
2. No database setup required
3. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a household)
- No transactions (writes are serialized with a lock)
- Limited query capabilities (we filter in Python)

Each entity lives in its own worksheet with one record per row.
The implementation follows the abstract interface, so the orchestration
core is unaware of which backend it runs against.
"""

import asyncio
import json
from datetime import datetime
from typing import Callable, Generic, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from billsync.config import get_settings
from billsync.models.audit import AuditEvent, AuditEventType, AuditSeverity
from billsync.models.bill import Bill, LinkedAccount, Provider, User, utcnow
from billsync.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RepositoryInterface,
    StorageError,
)


USER_COLUMNS = ["id", "email", "name", "created_at"]

PROVIDER_COLUMNS = ["id", "name", "api_endpoint", "auth_type", "created_at", "updated_at"]

ACCOUNT_COLUMNS = [
    "id",
    "user_id",
    "provider_id",
    "account_id",
    "credentials",
    "status",
    "created_at",
    "updated_at",
]

BILL_COLUMNS = [
    "id",
    "linked_account_id",
    "provider_id",
    "amount",
    "due_date",
    "bill_date",
    "status",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @property
    def settings(self):
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet whose first row holds `columns`."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class SheetTable(Generic[ModelT]):
    """
    One worksheet holding one pydantic model per row.

    Cells are the JSON-mode dump of each column; empty cells load back
    as "field not set" so model defaults apply.
    """

    def __init__(
        self,
        sheet_factory: Callable[[], gspread.Worksheet],
        columns: list[str],
        model: type[ModelT],
    ):
        self._sheet_factory = sheet_factory
        self._columns = columns
        self._model = model

    def to_row(self, record: ModelT) -> list:
        data = record.model_dump(mode="json")
        return ["" if data.get(col) is None else str(data[col]) for col in self._columns]

    def from_row(self, row: list) -> ModelT:
        values = {
            col: row[idx]
            for idx, col in enumerate(self._columns)
            if idx < len(row) and row[idx] != ""
        }
        return self._model.model_validate(values)

    def rows(self) -> list[list]:
        """All data rows (header excluded)."""
        return self._sheet_factory().get_all_values()[1:]

    def all(self) -> list[ModelT]:
        records = []
        for row in self.rows():
            if not row or not row[0]:  # Skip empty rows
                continue
            try:
                records.append(self.from_row(row))
            except Exception as e:
                logger.warning("sheets_malformed_row", model=self._model.__name__, error=str(e))
        return records

    def find(self, predicate: Callable[[ModelT], bool]) -> list[ModelT]:
        return [record for record in self.all() if predicate(record)]

    def get(self, record_id: str) -> Optional[ModelT]:
        for row in self.rows():
            if row and row[0] == record_id:
                return self.from_row(row)
        return None

    def _row_index(self, sheet: gspread.Worksheet, record_id: str) -> Optional[int]:
        # Row 1 is the header
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == record_id:
                return idx
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append(self, record: ModelT) -> None:
        self._sheet_factory().append_row(self.to_row(record), value_input_option="RAW")

    def replace(self, record_id: str, record: ModelT) -> bool:
        sheet = self._sheet_factory()
        idx = self._row_index(sheet, record_id)
        if idx is None:
            return False
        for col_idx, value in enumerate(self.to_row(record), start=1):
            sheet.update_cell(idx, col_idx, value)
        return True

    def delete(self, record_id: str) -> bool:
        sheet = self._sheet_factory()
        idx = self._row_index(sheet, record_id)
        if idx is None:
            return False
        sheet.delete_rows(idx)
        return True


class GoogleSheetsRepository(RepositoryInterface):
    """
    Google Sheets implementation of the repository.

    Reads are unguarded; writes are serialized so a read-modify-write on
    a worksheet never interleaves with another task's write.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = self._client.settings
        self._users = SheetTable(
            lambda: self._client.get_worksheet(settings.users_sheet_name, USER_COLUMNS),
            USER_COLUMNS,
            User,
        )
        self._providers = SheetTable(
            lambda: self._client.get_worksheet(settings.providers_sheet_name, PROVIDER_COLUMNS),
            PROVIDER_COLUMNS,
            Provider,
        )
        self._accounts = SheetTable(
            lambda: self._client.get_worksheet(settings.accounts_sheet_name, ACCOUNT_COLUMNS),
            ACCOUNT_COLUMNS,
            LinkedAccount,
        )
        self._bills = SheetTable(
            lambda: self._client.get_worksheet(settings.bills_sheet_name, BILL_COLUMNS, rows=5000),
            BILL_COLUMNS,
            Bill,
        )
        self._write_lock = asyncio.Lock()

    async def _read(self, operation: str, fn: Callable):
        try:
            return fn()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to {operation}: {e}")

    async def _write(self, operation: str, fn: Callable):
        async with self._write_lock:
            return await self._read(operation, fn)

    # -- users ---------------------------------------------------------------

    async def create_user(self, user: User) -> User:
        def _create():
            for existing in self._users.all():
                if existing.id == user.id or existing.email.lower() == user.email.lower():
                    raise DuplicateError(f"User already exists: {user.email}")
            self._users.append(user)
            return user
        return await self._write("create user", _create)

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        return await self._read("get user", lambda: self._users.get(user_id))

    async def get_user_by_email(self, email: str) -> Optional[User]:
        matches = await self._read(
            "get user",
            lambda: self._users.find(lambda u: u.email.lower() == email.lower()),
        )
        return matches[0] if matches else None

    async def update_user(self, user: User) -> User:
        def _update():
            if not self._users.replace(user.id, user):
                raise NotFoundError(f"User not found: {user.id}")
            return user
        return await self._write("update user", _update)

    async def delete_user(self, user_id: str) -> bool:
        return await self._write("delete user", lambda: self._users.delete(user_id))

    async def list_users(self) -> list[User]:
        return await self._read("list users", self._users.all)

    # -- providers -----------------------------------------------------------

    async def create_provider(self, provider: Provider) -> Provider:
        def _create():
            for existing in self._providers.all():
                if existing.id == provider.id or existing.name == provider.name:
                    raise DuplicateError(f"Provider already exists: {provider.name}")
            self._providers.append(provider)
            return provider
        return await self._write("create provider", _create)

    async def get_provider_by_id(self, provider_id: str) -> Optional[Provider]:
        return await self._read("get provider", lambda: self._providers.get(provider_id))

    async def get_provider_by_name(self, name: str) -> Optional[Provider]:
        matches = await self._read(
            "get provider",
            lambda: self._providers.find(lambda p: p.name == name),
        )
        return matches[0] if matches else None

    async def list_providers(self) -> list[Provider]:
        providers = await self._read("list providers", self._providers.all)
        return sorted(providers, key=lambda p: p.name)

    async def update_provider(self, provider: Provider) -> Provider:
        provider = provider.model_copy(update={"updated_at": utcnow()})

        def _update():
            if not self._providers.replace(provider.id, provider):
                raise NotFoundError(f"Provider not found: {provider.id}")
            return provider
        return await self._write("update provider", _update)

    async def delete_provider(self, provider_id: str) -> bool:
        return await self._write("delete provider", lambda: self._providers.delete(provider_id))

    # -- linked accounts -----------------------------------------------------

    async def create_linked_account(self, account: LinkedAccount) -> LinkedAccount:
        def _create():
            if self._accounts.get(account.id) is not None:
                raise DuplicateError(f"Linked account already exists: {account.id}")
            self._accounts.append(account)
            return account
        return await self._write("create linked account", _create)

    async def get_linked_account_by_id(self, account_id: str) -> Optional[LinkedAccount]:
        return await self._read("get linked account", lambda: self._accounts.get(account_id))

    async def get_linked_accounts_by_user_id(self, user_id: str) -> list[LinkedAccount]:
        return await self._read(
            "get linked accounts",
            lambda: self._accounts.find(lambda a: a.user_id == user_id),
        )

    async def get_linked_accounts_by_provider_id(self, provider_id: str) -> list[LinkedAccount]:
        return await self._read(
            "get linked accounts",
            lambda: self._accounts.find(lambda a: a.provider_id == provider_id),
        )

    async def update_linked_account(self, account: LinkedAccount) -> LinkedAccount:
        account = account.model_copy(update={"updated_at": utcnow()})

        def _update():
            if not self._accounts.replace(account.id, account):
                raise NotFoundError(f"Linked account not found: {account.id}")
            return account
        return await self._write("update linked account", _update)

    async def delete_linked_account(self, account_id: str) -> bool:
        return await self._write(
            "delete linked account", lambda: self._accounts.delete(account_id)
        )

    # -- bills ---------------------------------------------------------------

    async def create_bill(self, bill: Bill) -> Bill:
        if not bill.id:
            raise ValueError("Bill must have an id before it is stored")

        def _create():
            if self._bills.get(bill.id) is not None:
                raise DuplicateError(f"Bill already exists: {bill.id}")
            self._bills.append(bill)
            return bill
        return await self._write("save bill", _create)

    async def get_bill_by_id(self, bill_id: str) -> Optional[Bill]:
        return await self._read("get bill", lambda: self._bills.get(bill_id))

    async def get_bills_by_linked_account_id(self, linked_account_id: str) -> list[Bill]:
        return await self._read(
            "list bills",
            lambda: self._bills.find(lambda b: b.linked_account_id == linked_account_id),
        )

    async def get_bills_by_user_id(self, user_id: str) -> list[Bill]:
        accounts = await self.get_linked_accounts_by_user_id(user_id)
        account_ids = {a.id for a in accounts}
        return await self._read(
            "list bills",
            lambda: self._bills.find(lambda b: b.linked_account_id in account_ids),
        )

    async def update_bill(self, bill: Bill) -> Bill:
        bill = bill.model_copy(update={"updated_at": utcnow()})

        def _update():
            if not bill.id or not self._bills.replace(bill.id, bill):
                raise NotFoundError(f"Bill not found: {bill.id}")
            return bill
        return await self._write("update bill", _update)

    async def delete_bill(self, bill_id: str) -> bool:
        return await self._write("delete bill", lambda: self._bills.delete(bill_id))


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            correlation_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_code=safe_get(9) or None,
            error_message=safe_get(10) or None,
        )

    def _all_events(self) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if row and row[0]:
                try:
                    events.append(self._row_to_event(row))
                except Exception:
                    continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
        return True

    async def get_events_by_correlation_id(self, correlation_id) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if e.correlation_id is not None and str(e.correlation_id) == str(correlation_id)
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            events = self._all_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
