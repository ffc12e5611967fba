"""
Account Linking Flow

Links, lists, unlinks and re-checks users' provider accounts.

CRITICAL: Credentials are validated against the provider in plaintext
and only ever stored encrypted. They never leave this module in
plaintext and are never returned by the API.
"""

from typing import Optional

from billsync.audit import AuditLogger
from billsync.models.bill import AccountStatus, LinkedAccount, utcnow
from billsync.services.cache import BillCache, bills_cache_key
from billsync.services.providers import (
    InvalidCredentialsError,
    ProviderNotFoundError,
    ProviderRegistry,
)
from billsync.services.security import CredentialDecryptionError, CredentialEncryption
from billsync.services.storage import NotFoundError, RepositoryInterface


class AccountNotFoundError(NotFoundError):
    """No linked account with the given id."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Linked account not found: {account_id}")


class AccountLinkingFlow:
    """
    Orchestrates linking a user to a provider account.

    Flow:
    1. Provider → must exist in the catalog and have an adapter
    2. Credentials → validated by the provider adapter
    3. Store → credentials encrypted, status active
    """

    def __init__(
        self,
        repository: RepositoryInterface,
        providers: ProviderRegistry,
        encryption: CredentialEncryption,
        cache: Optional[BillCache] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._repository = repository
        self._providers = providers
        self._encryption = encryption
        self._cache = cache
        self._audit_logger = audit_logger or AuditLogger()

    async def link_account(
        self,
        user_id: str,
        provider_id: str,
        account_id: str,
        credentials: str,
    ) -> LinkedAccount:
        """
        Link a provider account to a user.

        Raises:
            ProviderNotFoundError: Unknown provider, or no adapter for it
            InvalidCredentialsError: The provider rejected the credentials
            NotFoundError: The user does not exist
        """
        provider = await self._repository.get_provider_by_id(provider_id)
        if provider is None:
            raise ProviderNotFoundError(provider_id)

        if await self._repository.get_user_by_id(user_id) is None:
            raise NotFoundError(f"User not found: {user_id}")

        try:
            await self._providers.validate_credentials(provider_id, credentials)
        except InvalidCredentialsError as e:
            await self._audit_logger.log_credentials_rejected(
                user_id=user_id,
                provider_id=provider_id,
                error_message=str(e),
            )
            raise

        account = LinkedAccount(
            user_id=user_id,
            provider_id=provider_id,
            account_id=account_id,
            credentials=self._encryption.encrypt(credentials),
            status=AccountStatus.ACTIVE,
        )
        account = await self._repository.create_linked_account(account)

        await self._audit_logger.log_account_linked(
            account_id=account.id,
            user_id=user_id,
            provider_id=provider_id,
        )
        return account

    async def get_linked_accounts(self, user_id: str) -> list[LinkedAccount]:
        return await self._repository.get_linked_accounts_by_user_id(user_id)

    async def get_linked_account(self, account_id: str) -> LinkedAccount:
        account = await self._repository.get_linked_account_by_id(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    async def unlink_account(self, account_id: str) -> None:
        """
        Remove a linked account and drop its cached bills.

        Raises:
            AccountNotFoundError: If the account does not exist
        """
        if not await self._repository.delete_linked_account(account_id):
            raise AccountNotFoundError(account_id)

        if self._cache is not None:
            await self._cache.invalidate(bills_cache_key(account_id))

        await self._audit_logger.log_account_unlinked(account_id)

    async def refresh_account_status(self, account_id: str) -> LinkedAccount:
        """
        Re-validate stored credentials and update the account status.

        Rejected credentials (or credentials we can no longer decrypt)
        put the account in `error`; accepted ones make it `active`.
        A provider that cannot be reached leaves the status unchanged.

        Raises:
            AccountNotFoundError: If the account does not exist
            ProviderError: If the provider could not answer
        """
        account = await self.get_linked_account(account_id)

        try:
            credentials = self._encryption.decrypt(account.credentials)
            await self._providers.validate_credentials(account.provider_id, credentials)
            new_status = AccountStatus.ACTIVE
        except (InvalidCredentialsError, ProviderNotFoundError, CredentialDecryptionError):
            new_status = AccountStatus.ERROR

        if new_status == account.status:
            return account

        old_status = account.status
        account = account.model_copy(update={"status": new_status, "updated_at": utcnow()})
        account = await self._repository.update_linked_account(account)

        await self._audit_logger.log_account_status_changed(
            account_id=account.id,
            old_status=old_status.value,
            new_status=new_status.value,
        )
        return account
