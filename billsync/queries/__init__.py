"""Stored bill queries package."""

from billsync.queries.summary import BillSummaryReader

__all__ = ["BillSummaryReader"]
