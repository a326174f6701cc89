"""Encryption utilities for sensitive data storage.

Provides symmetric encryption for sensitive database fields such as:
- Webhook HMAC secrets
- WordPress API keys for site health checks

Uses Fernet (symmetric encryption) from the cryptography library:
- AES 128-bit encryption in CBC mode
- HMAC for authentication
- URL-safe base64 encoding
"""

import os
import logging
from typing import Optional
from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_ENV = "DASHPILOT_ENCRYPTION_KEY"


class EncryptionService:
    """Service for encrypting and decrypting sensitive data.

    Key Generation:
        python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"

    Environment Variable:
        DASHPILOT_ENCRYPTION_KEY: Base64-encoded Fernet key (44 characters)

    Example:
        >>> service = EncryptionService()
        >>> encrypted = service.encrypt("webhook-secret")
        >>> service.decrypt(encrypted)
        'webhook-secret'
    """

    def __init__(self, encryption_key: Optional[str] = None):
        """Initialize encryption service.

        Args:
            encryption_key: Base64-encoded Fernet key (default: from env var)

        Raises:
            ValueError: If encryption key is not configured or invalid
        """
        key_str = encryption_key or os.getenv(ENCRYPTION_KEY_ENV)

        if not key_str:
            raise ValueError(
                f"Encryption key not configured. Set {ENCRYPTION_KEY_ENV} environment variable. "
                "Generate a key with: python -c \"from cryptography.fernet import Fernet; "
                "print(Fernet.generate_key().decode())\""
            )

        try:
            self.cipher = Fernet(key_str.encode("utf-8"))
            logger.debug("Encryption service initialized successfully")
        except (ValueError, TypeError) as e:
            raise ValueError(
                f"Invalid encryption key format: {e}. "
                "Key must be a valid base64-encoded Fernet key (44 characters)."
            )

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string.

        Args:
            plaintext: String to encrypt

        Returns:
            Base64-encoded encrypted string

        Raises:
            ValueError: If plaintext is None
        """
        if plaintext is None:
            raise ValueError("Cannot encrypt None value")

        if plaintext == "":
            return ""

        return self.cipher.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt an encrypted string.

        Args:
            ciphertext: Base64-encoded encrypted string

        Returns:
            Decrypted plaintext string

        Raises:
            ValueError: If ciphertext is None, was tampered with, or the key changed
        """
        if ciphertext is None:
            raise ValueError("Cannot decrypt None value")

        if ciphertext == "":
            return ""

        try:
            return self.cipher.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            logger.error("Decryption failed: Invalid token (wrong key or tampered data)")
            raise ValueError(
                "Failed to decrypt data. The encryption key may have changed or the "
                "value was encrypted with a different key. Re-enter the value to fix it."
            )


# Global encryption service instance (lazy initialization)
_encryption_service: Optional[EncryptionService] = None


def get_encryption_service() -> EncryptionService:
    """Get or create the global encryption service instance."""
    global _encryption_service

    if _encryption_service is None:
        _encryption_service = EncryptionService()

    return _encryption_service


def encrypt_value(plaintext: str) -> str:
    """Convenience function to encrypt a value using the global service."""
    return get_encryption_service().encrypt(plaintext)


def decrypt_value(ciphertext: str) -> str:
    """Convenience function to decrypt a value using the global service."""
    return get_encryption_service().decrypt(ciphertext)


def is_encryption_configured() -> bool:
    """Check if encryption is configured (key present in environment)."""
    return bool(os.getenv(ENCRYPTION_KEY_ENV))
