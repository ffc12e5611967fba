"""Validation package."""

from billsync.validation.validator import BillValidator

__all__ = ["BillValidator"]
