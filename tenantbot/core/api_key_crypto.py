"""Encryption at rest for the bot API keys.

Values are stored as ``enc:v1:<fernet token>`` with a key derived from
``API_KEY_ENCRYPTION_SECRET``. Plaintext values (no prefix) are accepted on
read so rows written before the secret was configured keep working.
"""
import base64
import hashlib
import logging
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken

from tenantbot.config.settings import get_settings

logger = logging.getLogger(__name__)

ENCRYPTED_PREFIX = "enc:v1:"


def _encryption_secret() -> Optional[str]:
    return get_settings().api_key_encryption_secret


def _fernet(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def is_encrypted_secret(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith(ENCRYPTED_PREFIX)


def encrypt_secret_for_storage(plaintext: str) -> str:
    """Encrypt a secret for storage; without a configured secret the input is returned unchanged"""
    secret = _encryption_secret()
    if not secret:
        logger.warning("API_KEY_ENCRYPTION_SECRET not set; storing secret in plaintext")
        return plaintext

    if is_encrypted_secret(plaintext):
        return plaintext

    token = _fernet(secret).encrypt(plaintext.encode("utf-8"))
    return f"{ENCRYPTED_PREFIX}{token.decode('ascii')}"


def decrypt_secret_from_storage(stored: Optional[str]) -> Optional[str]:
    """
    Decrypt a stored secret.

    Plaintext passes through. An encrypted value returns None when the
    secret is missing or the payload is malformed or was not produced
    with the current secret.
    """
    if not stored:
        return None
    if not is_encrypted_secret(stored):
        return stored

    secret = _encryption_secret()
    if not secret:
        logger.error("Encrypted secret present but API_KEY_ENCRYPTION_SECRET is not set")
        return None

    payload = stored[len(ENCRYPTED_PREFIX):]
    if not payload:
        logger.error("Encrypted secret payload is malformed")
        return None

    try:
        return _fernet(secret).decrypt(payload.encode("ascii")).decode("utf-8")
    except (InvalidToken, UnicodeError):
        logger.error("Failed to decrypt secret")
        return None


def with_decrypted_api_key(bot: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a bot profile with its api_key decrypted (None if it cannot be)"""
    config = dict(bot)
    config["api_key"] = decrypt_secret_from_storage(bot.get("api_key") or bot.get("_encrypted_api_key"))
    return config
