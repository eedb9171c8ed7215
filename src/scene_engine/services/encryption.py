"""Encryption of per-user generation API keys at rest.

Uses Fernet symmetric encryption with the master key from ``ENCRYPTION_MASTER_KEY``.
"""

from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from scene_engine.config import settings
from scene_engine.logging import get_logger

logger = get_logger(__name__)

# Generated dev key (persists for process lifetime)
_generated_dev_key: str | None = None


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""

    pass


def _get_master_key() -> bytes:
    """Get the master encryption key.

    Production requires the key to be configured; development falls back to a
    random key generated once per process.
    """
    global _generated_dev_key

    key = settings.encryption_master_key
    if not key:
        if settings.environment == "production":
            raise EncryptionError(
                "ENCRYPTION_MASTER_KEY is required in production. "
                "Generate one with: scene-engine keys generate"
            )

        if _generated_dev_key is None:
            _generated_dev_key = Fernet.generate_key().decode()
            logger.warning(
                "encryption_using_generated_key",
                hint="Set ENCRYPTION_MASTER_KEY in .env so stored API keys survive restarts",
            )
        key = _generated_dev_key

    return key.encode()


@lru_cache(maxsize=1)
def get_fernet() -> Fernet:
    """Get a cached Fernet instance with the master key."""
    try:
        return Fernet(_get_master_key())
    except ValueError as e:
        raise EncryptionError(f"Failed to initialize encryption: {e}") from e


def encrypt_api_key(api_key: str) -> str:
    """Encrypt a generation-service API key for storage on the user profile.

    Raises:
        EncryptionError: If the key is empty
    """
    if not api_key:
        raise EncryptionError("Cannot encrypt empty API key")
    return get_fernet().encrypt(api_key.encode()).decode()


def decrypt_api_key(encrypted: str) -> str:
    """Decrypt a stored API key.

    Raises:
        EncryptionError: If decryption fails (invalid key or corrupted data)
    """
    if not encrypted:
        raise EncryptionError("Cannot decrypt empty API key")

    try:
        return get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken as e:
        raise EncryptionError(
            "Failed to decrypt API key: invalid key or corrupted data. "
            "This may happen if ENCRYPTION_MASTER_KEY changed."
        ) from e


def generate_master_key() -> str:
    """Generate a new Fernet-compatible master key."""
    return Fernet.generate_key().decode()
