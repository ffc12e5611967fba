"""
billsync API server

Run with:
    python -m app.main

Configuration comes from the environment / .env (see billsync.config).
"""

import logging
import sys

import structlog
import uvicorn

from billsync.api import create_app
from billsync.config import get_settings, validate_all_settings


logger = structlog.get_logger(__name__)


def check_settings() -> bool:
    """Log every settings section that fails to load."""
    status = validate_all_settings()
    ok = True
    for section, valid in status.items():
        if section.endswith("_error") or valid:
            continue
        ok = False
        logger.error("settings_invalid", section=section, error=status.get(f"{section}_error"))
    return ok


def main() -> None:
    settings = get_settings().app
    logging.basicConfig(
        level=logging.DEBUG if settings.debug_mode else logging.INFO,
        format="%(message)s",
    )
    if not check_settings():
        sys.exit(1)
    uvicorn.run(create_app(), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
