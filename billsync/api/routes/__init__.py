"""API routers, mounted under /api/v1."""

from billsync.api.routes import accounts, bills, providers, users

__all__ = ["accounts", "bills", "providers", "users"]
