"""
Mock provider server

A deliberately slow and flaky stand-in for a third-party billing API,
consumed by HTTPBillProvider in local runs.

- GET /bills       random delay, 10% 500s, otherwise 5 random bills
- GET /bills/{id}  random delay, 10% 500s, otherwise one random bill
- GET /health      always 200
"""

import asyncio
import random
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse


PROVIDER_NAMES = [
    "Electricity Co",
    "Water Works",
    "Gas Supply",
    "Internet Provider",
    "Phone Company",
]

BILL_STATUSES = ["paid", "unpaid", "overdue"]


class MockBillGenerator:
    """Random provider-format bills."""

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def bill(self, bill_id: Optional[str] = None) -> dict:
        due_date = datetime.now(timezone.utc) + timedelta(days=self._rng.randint(0, 29))
        return {
            "id": bill_id or f"BILL-{self._rng.randint(0, 9999)}",
            "provider": self._rng.choice(PROVIDER_NAMES),
            "amount": round(self._rng.randint(0, 999) + self._rng.random(), 2),
            "due_date": due_date.isoformat().replace("+00:00", "Z"),
            "status": self._rng.choice(BILL_STATUSES),
            "description": f"Bill for {self._rng.choice(PROVIDER_NAMES)} services",
        }

    def bills(self, count: int) -> list[dict]:
        return [self.bill() for _ in range(count)]


def create_mock_provider_app(
    error_rate: float = 0.1,
    max_delay_seconds: float = 1.0,
    bills_per_response: int = 5,
    rng: Optional[random.Random] = None,
) -> FastAPI:
    """
    Create the mock provider application.

    Args:
        error_rate: Share of bill requests answered with a 500
        max_delay_seconds: Upper bound of the random response delay
        bills_per_response: Bills returned by GET /bills
        rng: Random source, seedable for tests
    """
    rng = rng or random.Random()
    generator = MockBillGenerator(rng)

    app = FastAPI(title="Mock Bill Provider")

    async def _flaky() -> Optional[JSONResponse]:
        if max_delay_seconds > 0:
            await asyncio.sleep(rng.random() * max_delay_seconds)
        if rng.random() < error_rate:
            return JSONResponse(status_code=500, content={"error": "Internal server error"})
        return None

    @app.get("/health", response_class=PlainTextResponse)
    async def health():
        return "OK"

    @app.get("/bills")
    async def list_bills(account_id: Optional[str] = None):
        failure = await _flaky()
        if failure is not None:
            return failure
        return generator.bills(bills_per_response)

    @app.get("/bills/{bill_id}")
    async def get_bill(bill_id: str):
        failure = await _flaky()
        if failure is not None:
            return failure
        return generator.bill(bill_id)

    return app
