"""
Stored Bill Summary

DESIGN DECISION: The summary read is DETERMINISTIC and local.
It aggregates whatever the refresh flow has persisted and never calls
a provider, so it answers even when every provider is down.
"""

from billsync.models.bill import BillSummary
from billsync.services.storage import BillStorageInterface


class BillSummaryReader:
    """Builds bill summaries from the repository."""

    def __init__(self, storage: BillStorageInterface):
        self._storage = storage

    async def get_bill_summary(self, user_id: str) -> BillSummary:
        """
        Summarize every stored bill of every account the user owns.

        A user with no accounts (or no stored bills) gets an empty summary.
        """
        bills = await self._storage.get_bills_by_user_id(user_id)
        return BillSummary.from_bills(bills)
