"""
Tests for storage backends

The in-memory repository is tested directly. The Google Sheets
repository runs against an in-process fake worksheet, so no Google
API is touched.
"""

from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from billsync.models.audit import AuditEventBuilder, AuditEventType
from billsync.models.bill import AccountStatus, LinkedAccount, Provider, User
from billsync.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsRepository,
    InMemoryAuditStorage,
    InMemoryRepository,
    NotFoundError,
    StorageError,
)

from conftest import make_bill


CORRELATION_ID = uuid4()
OTHER_CORRELATION_ID = uuid4()


class FakeWorksheet:
    """Just enough of gspread.Worksheet for SheetTable."""

    def __init__(self, header: list[str]):
        self.values: list[list[str]] = [list(header)]

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.values]

    def append_row(self, row, value_input_option=None):
        self.values.append([str(cell) for cell in row])

    def update_cell(self, row: int, col: int, value):
        self.values[row - 1][col - 1] = str(value)

    def delete_rows(self, index: int):
        del self.values[index - 1]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient: worksheets are created on first use."""

    def __init__(self):
        self.settings = SimpleNamespace(
            users_sheet_name="Users",
            providers_sheet_name="Providers",
            accounts_sheet_name="LinkedAccounts",
            bills_sheet_name="Bills",
            audit_sheet_name="AuditLog",
        )
        self.sheets: dict[str, FakeWorksheet] = {}

    def get_worksheet(self, title, columns, rows=1000):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(columns)
        return self.sheets[title]


class BrokenSheetsClient(FakeSheetsClient):

    def get_worksheet(self, title, columns, rows=1000):
        raise RuntimeError("quota exceeded")


@pytest.fixture(params=["memory", "google_sheets"])
def repo(request):
    """Every repository contract test runs against both backends."""
    if request.param == "memory":
        return InMemoryRepository()
    return GoogleSheetsRepository(client=FakeSheetsClient())


class TestRepositoryContract:
    """Behaviour both repository backends share."""

    async def test_user_round_trip(self, repo):
        created = await repo.create_user(User(id="u-1", email="a@example.com", name="A"))

        assert await repo.get_user_by_id("u-1") == created
        assert (await repo.get_user_by_email("A@EXAMPLE.COM")).id == "u-1"
        assert await repo.get_user_by_id("missing") is None

    async def test_duplicate_email_rejected(self, repo):
        await repo.create_user(User(id="u-1", email="a@example.com"))

        with pytest.raises(DuplicateError):
            await repo.create_user(User(id="u-2", email="a@example.com"))

    async def test_update_missing_user(self, repo):
        with pytest.raises(NotFoundError):
            await repo.update_user(User(id="ghost", email="ghost@example.com"))

    async def test_providers_listed_by_name(self, repo):
        await repo.create_provider(Provider(id="p-2", name="Water Works", api_endpoint="http://w"))
        await repo.create_provider(Provider(id="p-1", name="Electricity Co", api_endpoint="http://e"))

        names = [p.name for p in await repo.list_providers()]

        assert names == ["Electricity Co", "Water Works"]
        assert (await repo.get_provider_by_name("Water Works")).id == "p-2"

    async def test_duplicate_provider_name_rejected(self, repo):
        await repo.create_provider(Provider(id="p-1", name="Gas", api_endpoint="http://g"))

        with pytest.raises(DuplicateError):
            await repo.create_provider(Provider(id="p-2", name="Gas", api_endpoint="http://g2"))

    async def test_update_and_delete_provider(self, repo):
        await repo.create_provider(Provider(id="p-1", name="Gas", api_endpoint="http://g"))

        await repo.update_provider(Provider(id="p-1", name="Gas", api_endpoint="http://g2"))

        assert (await repo.get_provider_by_id("p-1")).api_endpoint == "http://g2"
        assert await repo.delete_provider("p-1") is True
        assert await repo.delete_provider("p-1") is False
        assert await repo.get_provider_by_id("p-1") is None

    async def test_update_missing_provider(self, repo):
        with pytest.raises(NotFoundError):
            await repo.update_provider(Provider(id="ghost", name="Ghost", api_endpoint="http://x"))

    async def test_linked_accounts_by_user_and_provider(self, repo):
        await repo.create_linked_account(LinkedAccount(id="la-1", user_id="u-1", provider_id="p-1", account_id="A"))
        await repo.create_linked_account(LinkedAccount(id="la-2", user_id="u-1", provider_id="p-2", account_id="B"))
        await repo.create_linked_account(LinkedAccount(id="la-3", user_id="u-2", provider_id="p-1", account_id="C"))

        by_user = await repo.get_linked_accounts_by_user_id("u-1")
        by_provider = await repo.get_linked_accounts_by_provider_id("p-1")

        assert sorted(a.id for a in by_user) == ["la-1", "la-2"]
        assert sorted(a.id for a in by_provider) == ["la-1", "la-3"]
        assert await repo.get_linked_accounts_by_user_id("nobody") == []

    async def test_update_and_delete_linked_account(self, repo):
        account = await repo.create_linked_account(
            LinkedAccount(id="la-1", user_id="u-1", provider_id="p-1", account_id="A", credentials="enc")
        )

        updated = await repo.update_linked_account(account.model_copy(update={"status": AccountStatus.ERROR}))
        stored = await repo.get_linked_account_by_id("la-1")

        assert stored.status == AccountStatus.ERROR
        assert stored.credentials == "enc"
        assert updated.updated_at >= account.updated_at
        assert await repo.delete_linked_account("la-1") is True
        assert await repo.delete_linked_account("la-1") is False

    async def test_bill_round_trip(self, repo):
        bill = make_bill("19.99", bill_id="b-1", linked_account_id="la-1", provider_id="p-1")

        await repo.create_bill(bill)
        stored = await repo.get_bill_by_id("b-1")

        assert stored.amount == Decimal("19.99")
        assert stored.due_date == bill.due_date
        assert isinstance(stored.due_date, date)
        assert stored.status == bill.status

    async def test_bill_without_id_is_rejected(self, repo):
        with pytest.raises(ValueError):
            await repo.create_bill(make_bill("1.00"))

    async def test_duplicate_bill_rejected(self, repo):
        await repo.create_bill(make_bill("1.00", bill_id="b-1", linked_account_id="la-1"))

        with pytest.raises(DuplicateError):
            await repo.create_bill(make_bill("2.00", bill_id="b-1", linked_account_id="la-1"))

    async def test_update_missing_bill(self, repo):
        with pytest.raises(NotFoundError):
            await repo.update_bill(make_bill("1.00", bill_id="ghost"))

    async def test_bills_by_user_follow_linked_accounts(self, repo):
        await repo.create_linked_account(LinkedAccount(id="la-1", user_id="u-1", provider_id="p-1", account_id="A"))
        await repo.create_linked_account(LinkedAccount(id="la-2", user_id="u-2", provider_id="p-1", account_id="B"))
        await repo.create_bill(make_bill("10.00", bill_id="b-1", linked_account_id="la-1"))
        await repo.create_bill(make_bill("20.00", bill_id="b-2", linked_account_id="la-2"))

        bills = await repo.get_bills_by_user_id("u-1")

        assert [b.id for b in bills] == ["b-1"]


class TestInMemoryRepository:

    async def test_returned_objects_are_copies(self):
        repo = InMemoryRepository()
        user = await repo.create_user(User(id="u-1", email="a@example.com", name="A"))

        user.name = "Changed"

        assert (await repo.get_user_by_id("u-1")).name == "A"


class TestGoogleSheetsRepository:

    async def test_rows_follow_column_order(self):
        client = FakeSheetsClient()
        repo = GoogleSheetsRepository(client=client)

        await repo.create_user(User(id="u-1", email="a@example.com"))

        header, row = client.sheets["Users"].values
        assert header == ["id", "email", "name", "created_at"]
        assert row[:3] == ["u-1", "a@example.com", ""]

    async def test_malformed_rows_are_skipped(self):
        client = FakeSheetsClient()
        repo = GoogleSheetsRepository(client=client)
        await repo.create_user(User(id="u-1", email="a@example.com"))
        client.sheets["Users"].values.append(["u-2", "x"])

        users = await repo.list_users()

        assert [u.id for u in users] == ["u-1"]

    async def test_delete_removes_row(self):
        client = FakeSheetsClient()
        repo = GoogleSheetsRepository(client=client)
        await repo.create_bill(make_bill("1.00", bill_id="b-1", linked_account_id="la-1"))
        await repo.create_bill(make_bill("2.00", bill_id="b-2", linked_account_id="la-1"))

        assert await repo.delete_bill("b-1") is True

        assert [row[0] for row in client.sheets["Bills"].values[1:]] == ["b-2"]

    async def test_backend_errors_become_storage_errors(self):
        repo = GoogleSheetsRepository(client=BrokenSheetsClient())

        with pytest.raises(StorageError, match="quota exceeded"):
            await repo.list_users()


class TestAuditStorage:

    @pytest.fixture(params=["memory", "google_sheets"])
    def audit(self, request):
        if request.param == "memory":
            return InMemoryAuditStorage()
        return GoogleSheetsAuditStorage(client=FakeSheetsClient())

    async def test_events_by_correlation_id(self, audit):
        await audit.append_event(AuditEventBuilder.fetch_started("u-1", 2, None, CORRELATION_ID))
        await audit.append_event(AuditEventBuilder.fetch_completed("u-1", 3, "12.00", 0, CORRELATION_ID))
        await audit.append_event(AuditEventBuilder.fetch_started("u-2", 1, None, OTHER_CORRELATION_ID))

        events = await audit.get_events_by_correlation_id(CORRELATION_ID)

        assert [e.event_type for e in events] == [
            AuditEventType.BILLS_FETCH_STARTED,
            AuditEventType.BILLS_FETCH_COMPLETED,
        ]

    async def test_recent_events_newest_first(self, audit):
        started = AuditEventBuilder.fetch_started("u-1", 1, None, CORRELATION_ID)
        completed = AuditEventBuilder.fetch_completed("u-1", 1, "1.00", 0, CORRELATION_ID)
        completed = completed.model_copy(update={"timestamp": started.timestamp + timedelta(seconds=1)})
        await audit.append_event(started)
        await audit.append_event(completed)

        events = await audit.get_recent_events(limit=1)

        assert [e.event_id for e in events] == [completed.event_id]
