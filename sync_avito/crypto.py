"""
Symmetric encryption for Avito credentials stored in the integrations table.

Tokens are encrypted with Fernet (AES-128-CBC + HMAC) using TOKEN_ENCRYPTION_KEY.
"""

from __future__ import annotations

from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from sync_avito.config import TOKEN_ENCRYPTION_KEY

_fernet = Fernet(TOKEN_ENCRYPTION_KEY or "")


def encrypt_token(value: Optional[str]) -> Optional[str]:
    """
    Encrypt a credential for storage.

    Args:
        value: Plaintext token, or None

    Returns:
        URL-safe ciphertext, or None when value is empty
    """
    if not value:
        return None
    return _fernet.encrypt(value.encode()).decode()


def decrypt_token(value: Optional[str]) -> Optional[str]:
    """
    Decrypt a stored credential.

    Args:
        value: Ciphertext produced by encrypt_token, or None

    Returns:
        Plaintext token, or None when value is empty

    Raises:
        ValueError: If the ciphertext was not produced with the configured key
    """
    if not value:
        return None
    try:
        return _fernet.decrypt(value.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Stored token cannot be decrypted with TOKEN_ENCRYPTION_KEY") from e
