"""
Simulated Provider

In-process stand-in for a slow, flaky third-party API. It fails a
configurable share of calls with a timeout and otherwise returns
randomly generated bills. Used for local runs without the mock server.
"""

import random
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from billsync.models.bill import AuthType, Bill, BillStatus, LinkedAccount, Provider, utcnow
from billsync.services.providers.base import (
    BaseBillProvider,
    InvalidCredentialsError,
    ProviderTimeoutError,
)


class SimulatedBillProvider(BaseBillProvider):
    """Random bills, random failures."""

    def __init__(
        self,
        provider: Provider,
        failure_rate: float = 0.2,
        bills_per_fetch: int = 1,
        rng: Optional[random.Random] = None,
    ):
        super().__init__(provider)
        self._failure_rate = failure_rate
        self._bills_per_fetch = bills_per_fetch
        self._rng = rng or random.Random()

    async def fetch_bills(self, account: LinkedAccount) -> list[Bill]:
        if self._rng.random() < self._failure_rate:
            raise ProviderTimeoutError("provider API timeout")

        today = utcnow().date()
        return [
            Bill(
                linked_account_id=account.id,
                provider_id=account.provider_id,
                amount=Decimal(str(round(self._rng.random() * 100, 2))),
                due_date=today + timedelta(days=self._rng.randint(0, 29)),
                bill_date=today,
                status=self._rng.choice(list(BillStatus)),
            )
            for _ in range(self._bills_per_fetch)
        ]

    async def validate_credentials(self, credentials: str) -> None:
        if self.provider.auth_type != AuthType.NONE and not credentials:
            raise InvalidCredentialsError("Credentials are required for this provider")
