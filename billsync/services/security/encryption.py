"""
Credential Encryption

Provides encryption and decryption of linked account credentials using
Fernet symmetric encryption. The key is derived from the configured
secret key, so rotating SECURITY_SECRET_KEY invalidates stored credentials.
"""

import base64
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from billsync.config import get_settings


class CredentialDecryptionError(Exception):
    """Stored credentials could not be decrypted with the current key."""
    pass


class CredentialEncryption:
    """
    Encrypt and decrypt provider credentials for storage.

    All credentials are encrypted before they reach the repository and
    decrypted only inside provider adapters.
    """

    def __init__(self, secret_key: Optional[str] = None):
        """
        Initialize encryption cipher.

        The secret key is padded/truncated to 32 bytes and base64-encoded
        to create a valid Fernet key.
        """
        secret_key = secret_key or get_settings().security.secret_key

        # Fernet requires 32-byte key, base64-encoded
        key_bytes = secret_key.encode()[:32].ljust(32, b'0')
        self.cipher = Fernet(base64.urlsafe_b64encode(key_bytes))

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt credentials for storage.

        Example:
            >>> enc = CredentialEncryption("a-test-secret-key")
            >>> stored = enc.encrypt("api-key-123")
            >>> enc.decrypt(stored)
            'api-key-123'
        """
        if not plaintext:
            return ""
        return self.cipher.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt stored credentials.

        Raises:
            CredentialDecryptionError: If the token is corrupt or was
                encrypted under a different key
        """
        if not ciphertext:
            return ""
        try:
            return self.cipher.decrypt(ciphertext.encode()).decode()
        except (InvalidToken, ValueError) as e:
            raise CredentialDecryptionError("Stored credentials cannot be decrypted") from e
