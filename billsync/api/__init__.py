"""HTTP API package."""

from billsync.api.main import create_app

__all__ = ["create_app"]
