"""
Credential encryption for the persisted integration config.

Secret fields (API tokens) are encrypted with Fernet before the config record
is written and decrypted when it is loaded. Encryption is enabled only when
INTEGRATION_ENCRYPTION_KEY is set.
"""

import os
import logging
from typing import Optional, Any, Iterable
from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Marks an encrypted value inside the JSON record
ENCRYPTED_PREFIX = "enc:"


class TokenManager:
    """
    Encrypts and decrypts credential values.

    Environment:
        INTEGRATION_ENCRYPTION_KEY: Base64-encoded 32-byte Fernet key
    """

    def __init__(self, encryption_key: Optional[str] = None):
        key = encryption_key or os.getenv("INTEGRATION_ENCRYPTION_KEY")

        if not key:
            raise ValueError(
                "INTEGRATION_ENCRYPTION_KEY environment variable is required. "
                "Generate one with TokenManager.generate_key()"
            )

        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    def encrypt(self, plaintext: str) -> str:
        return ENCRYPTED_PREFIX + self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a stored value.

        Values without the prefix were written before encryption was enabled
        and are returned unchanged.

        Raises:
            cryptography.fernet.InvalidToken: If the key does not match
        """
        if not ciphertext.startswith(ENCRYPTED_PREFIX):
            return ciphertext
        return self._fernet.decrypt(ciphertext[len(ENCRYPTED_PREFIX):].encode()).decode()

    def encrypt_fields(self, record: dict[str, Any], fields: Iterable[str]) -> dict[str, Any]:
        """Return a copy of `record` with the named string fields encrypted."""
        result = dict(record)
        for name in fields:
            value = result.get(name)
            if isinstance(value, str) and value and not value.startswith(ENCRYPTED_PREFIX):
                result[name] = self.encrypt(value)
        return result

    def decrypt_fields(self, record: dict[str, Any], fields: Iterable[str]) -> dict[str, Any]:
        """Return a copy of `record` with the named fields decrypted."""
        result = dict(record)
        for name in fields:
            value = result.get(name)
            if isinstance(value, str) and value:
                try:
                    result[name] = self.decrypt(value)
                except InvalidToken:
                    logger.error(f"[TOKENS] Could not decrypt {name}; check INTEGRATION_ENCRYPTION_KEY")
                    raise
        return result

    @staticmethod
    def generate_key() -> str:
        return Fernet.generate_key().decode()


# Singleton instance
_token_manager: Optional[TokenManager] = None


def get_token_manager() -> Optional[TokenManager]:
    """Get the global TokenManager, or None when no key is configured."""
    global _token_manager
    if _token_manager is None and os.getenv("INTEGRATION_ENCRYPTION_KEY"):
        _token_manager = TokenManager()
    return _token_manager
