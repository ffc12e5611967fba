"""
HTTP Provider Implementation

Talks to a provider's REST API over httpx. The wire format is a JSON
list of bills:

    [{"id": "...", "amount": 42.5, "due_date": "2024-07-01T00:00:00Z",
      "status": "unpaid", "description": "..."}]

which is what the bundled mock provider server serves.
"""

from typing import Optional

import httpx
from pydantic import ValidationError

from billsync.models.bill import AuthType, Bill, BillStatus, LinkedAccount, Provider, utcnow
from billsync.services.providers.base import (
    BaseBillProvider,
    InvalidCredentialsError,
    ProviderAPIError,
    ProviderError,
    ProviderResponseError,
    ProviderTimeoutError,
)
from billsync.services.security import CredentialEncryption


class HTTPBillProvider(BaseBillProvider):
    """
    REST-backed provider adapter.

    Special requirements:
    - Bearer auth from the account's decrypted credentials when the
      provider's auth type is not 'none'
    - Provider-side bill ids are kept; bills are re-stamped with our
      linked account and provider ids
    """

    def __init__(
        self,
        provider: Provider,
        encryption: Optional[CredentialEncryption] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(provider)
        self._base_url = provider.api_endpoint.rstrip("/")
        self._encryption = encryption
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    def _auth_headers(self, token: str) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.provider.auth_type != AuthType.NONE and token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def fetch_bills(self, account: LinkedAccount) -> list[Bill]:
        token = ""
        if account.credentials and self._encryption is not None:
            token = self._encryption.decrypt(account.credentials)

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self._base_url}/bills",
                    params={"account_id": account.account_id},
                    headers=self._auth_headers(token),
                )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Provider {self.provider.name} timed out") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to fetch bills: {e}") from e

        if response.status_code != 200:
            raise ProviderAPIError(response.status_code, response.text[:200])

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderResponseError("Failed to decode response") from e

        if not isinstance(payload, list):
            raise ProviderResponseError("Expected a JSON list of bills")

        return [self._to_bill(item, account) for item in payload]

    def _to_bill(self, item: dict, account: LinkedAccount) -> Bill:
        """Normalize one provider bill into our Bill model."""
        if not isinstance(item, dict):
            raise ProviderResponseError(f"Malformed bill in provider response: {item!r}")
        try:
            now = utcnow()
            return Bill(
                id=item.get("id") or None,
                linked_account_id=account.id,
                provider_id=account.provider_id,
                amount=item["amount"],
                due_date=self.parse_date(item["due_date"]),
                bill_date=self.parse_date(item["bill_date"]) if item.get("bill_date") else now.date(),
                status=BillStatus(item.get("status", BillStatus.UNPAID.value)),
                created_at=now,
                updated_at=now,
            )
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise ProviderResponseError(f"Malformed bill in provider response: {e}") from e

    async def validate_credentials(self, credentials: str) -> None:
        if self.provider.auth_type == AuthType.NONE:
            return
        if not credentials:
            raise InvalidCredentialsError("Credentials are required for this provider")

        try:
            async with self._client() as client:
                response = await client.get(
                    f"{self._base_url}/health",
                    headers=self._auth_headers(credentials),
                )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Provider {self.provider.name} timed out") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Failed to validate credentials: {e}") from e

        if response.status_code in (401, 403):
            raise InvalidCredentialsError("Provider rejected the credentials")
        if response.status_code != 200:
            raise ProviderAPIError(response.status_code, response.text[:200])
