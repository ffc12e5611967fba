"""
Mock provider server

Run with:
    python -m app.mock_provider

Point PROVIDER_MOCK_BASE_URL at it and set PROVIDER_BACKEND=http to have
the API fetch from it over HTTP.
"""

import logging

import uvicorn

from billsync.api.mock_provider import create_mock_provider_app
from billsync.config import get_settings


def main() -> None:
    settings = get_settings().app
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    uvicorn.run(create_mock_provider_app(), host=settings.api_host, port=settings.mock_provider_port)


if __name__ == "__main__":
    main()
