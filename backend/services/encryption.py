"""Fernet symmetric encryption for stored custody signing keys."""

from cryptography.fernet import Fernet, InvalidToken

from backend.config import settings
from backend.services.errors import ConfigurationError

_fernet: Fernet | None = None
_fernet_key: str | None = None


def _get_fernet() -> Fernet:
    global _fernet, _fernet_key
    key = settings.encryption_key
    if not key:
        raise ConfigurationError(
            "TK_ENCRYPTION_KEY not set. Generate one with: "
            "python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\"",
            setting="encryption_key",
        )
    # Rebuild when the configured key changes (tests patch settings)
    if _fernet is None or _fernet_key != key:
        try:
            _fernet = Fernet(key.encode())
        except ValueError as e:
            raise ConfigurationError(f"TK_ENCRYPTION_KEY is not a valid Fernet key: {e}", setting="encryption_key")
        _fernet_key = key
    return _fernet


def encrypt(plaintext: str) -> str:
    """Encrypt a string and return base64-encoded ciphertext."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    """Decrypt a base64-encoded ciphertext and return plaintext.

    Raises ConfigurationError when the ciphertext was produced with another key.
    """
    try:
        return _get_fernet().decrypt(ciphertext.encode()).decode()
    except InvalidToken:
        raise ConfigurationError("Stored signing key cannot be decrypted with TK_ENCRYPTION_KEY", setting="encryption_key")
