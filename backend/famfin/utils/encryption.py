"""
Encryption for secrets stored in the database.

Xero OAuth tokens and bank account numbers are stored as Fernet tokens
derived from the configured encryption key.
"""

import base64
import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from famfin.config import get_settings

logger = logging.getLogger(__name__)

DEV_KEY = "family-finance-development-key"

_fernet: Optional[Fernet] = None


def _get_fernet() -> Fernet:
    global _fernet

    if _fernet is None:
        key = get_settings().encryption_key
        if not key:
            logger.warning("ENCRYPTION_KEY not set, using development key")
            key = DEV_KEY

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=b"family-finance-salt",
            iterations=100000,
        )
        _fernet = Fernet(base64.urlsafe_b64encode(kdf.derive(key.encode())))

    return _fernet


def encrypt_value(value: str) -> str:
    """
    Encrypt a string value.

    Args:
        value: Plain text value to encrypt

    Returns:
        Fernet token as text
    """
    return _get_fernet().encrypt(value.encode()).decode()


def decrypt_value(encrypted_value: str) -> str:
    """
    Decrypt a value produced by encrypt_value.

    Raises:
        ValueError: If the token is invalid or was made with another key
    """
    try:
        return _get_fernet().decrypt(encrypted_value.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Unable to decrypt value") from e


def encrypt_optional(value: Optional[str]) -> Optional[str]:
    return encrypt_value(value) if value else None


def decrypt_optional(value: Optional[str]) -> Optional[str]:
    return decrypt_value(value) if value else None
