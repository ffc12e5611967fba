"""Credential security package."""

from billsync.services.security.encryption import (
    CredentialDecryptionError,
    CredentialEncryption,
)

__all__ = ["CredentialDecryptionError", "CredentialEncryption"]
