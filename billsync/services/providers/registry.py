"""
Provider Registry

The provider gateway the orchestrators consume: it owns one adapter per
provider id and dispatches each linked account to the adapter of its
provider.
"""

from typing import Optional

from billsync.models.bill import Bill, LinkedAccount, Provider
from billsync.services.providers.base import BaseBillProvider, ProviderNotFoundError


class ProviderRegistry:
    """Maps provider ids to adapters."""

    def __init__(self, adapters: Optional[dict[str, BaseBillProvider]] = None):
        self._adapters: dict[str, BaseBillProvider] = dict(adapters or {})

    def register(self, provider_id: str, adapter: BaseBillProvider) -> None:
        self._adapters[provider_id] = adapter

    def unregister(self, provider_id: str) -> None:
        self._adapters.pop(provider_id, None)

    def has(self, provider_id: str) -> bool:
        return provider_id in self._adapters

    def get(self, provider_id: str) -> BaseBillProvider:
        try:
            return self._adapters[provider_id]
        except KeyError:
            raise ProviderNotFoundError(provider_id) from None

    @property
    def provider_ids(self) -> list[str]:
        return sorted(self._adapters)

    def provider_infos(self) -> list[Provider]:
        return [self._adapters[pid].get_provider_info() for pid in self.provider_ids]

    async def fetch_bills(self, account: LinkedAccount) -> list[Bill]:
        """
        Fetch bills for an account from its provider's adapter.

        Raises:
            ProviderNotFoundError: If no adapter serves the account's provider
            ProviderError: Whatever the adapter raises
        """
        return await self.get(account.provider_id).fetch_bills(account)

    async def validate_credentials(self, provider_id: str, credentials: str) -> None:
        await self.get(provider_id).validate_credentials(credentials)
