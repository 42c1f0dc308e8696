"""
Encryption utilities for provider credentials (OAuth access and refresh tokens).
Uses Fernet symmetric encryption with the configured ENCRYPTION_KEY.
"""
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def _get_fernet():
    """Get a Fernet cipher using the configured encryption key."""
    from cryptography.fernet import Fernet
    from tandril.config import get_settings
    settings = get_settings()

    key = settings.encryption_key
    if not key:
        logger.warning("ENCRYPTION_KEY not configured - storing values as-is")
        return None

    return Fernet(key.encode() if isinstance(key, str) else key)


def encrypt_value(plaintext: Optional[str]) -> Optional[str]:
    """
    Encrypt a string value. Returns the encrypted token as a string.
    Stores plaintext if the encryption key is not configured.
    """
    if not plaintext:
        return plaintext

    fernet = _get_fernet()
    if fernet is None:
        return plaintext

    return fernet.encrypt(plaintext.encode()).decode()


def decrypt_value(encrypted: Optional[str]) -> Optional[str]:
    """
    Decrypt a string value. Values that are not valid Fernet tokens are
    returned as-is (rows written before ENCRYPTION_KEY was set).
    """
    if not encrypted:
        return encrypted

    fernet = _get_fernet()
    if fernet is None:
        return encrypted

    from cryptography.fernet import InvalidToken
    try:
        return fernet.decrypt(encrypted.encode()).decode()
    except InvalidToken:
        return encrypted
