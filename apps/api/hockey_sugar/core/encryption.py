"""Encryption of Dexcom OAuth tokens at rest.

Fernet (AES-128-CBC with HMAC) from the cryptography library, keyed by a
PBKDF2-HMAC-SHA256 derivation of ENCRYPTION_KEY (or SECRET_KEY when unset).
"""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from hockey_sugar.config import settings

_PBKDF2_ITERATIONS = 600_000
# Changing the salt invalidates every stored token.
_PBKDF2_SALT = b"hockey-sugar-token-encryption-v1"


def _get_raw_key() -> str:
    return settings.encryption_key if settings.encryption_key else settings.secret_key


@lru_cache(maxsize=4)
def _fernet_for(raw_key: str) -> Fernet:
    """Derive (once per key) a Fernet instance from the raw key material."""
    key_bytes = hashlib.pbkdf2_hmac(
        "sha256",
        raw_key.encode("utf-8"),
        _PBKDF2_SALT,
        _PBKDF2_ITERATIONS,
    )
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_credential(plaintext: str) -> str:
    """Encrypt a token string.

    Args:
        plaintext: The token value to encrypt

    Returns:
        The Fernet token as a string
    """
    return _fernet_for(_get_raw_key()).encrypt(plaintext.encode("utf-8")).decode(
        "utf-8"
    )


def decrypt_credential(encrypted: str) -> str:
    """Decrypt a token string.

    Raises:
        ValueError: If the key is wrong or the data is corrupted
    """
    try:
        decrypted = _fernet_for(_get_raw_key()).decrypt(encrypted.encode("utf-8"))
    except InvalidToken as e:
        raise ValueError(
            "Failed to decrypt credential - invalid key or corrupted data"
        ) from e
    return decrypted.decode("utf-8")
