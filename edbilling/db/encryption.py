"""At-rest encryption for assessment tool credentials (Fernet, keyed by FERNET_KEY)."""

from cryptography.fernet import Fernet, InvalidToken

from edbilling.config import get_settings
from edbilling.errors import AssessmentToolError


def _fernet() -> Fernet:
    return Fernet(get_settings().fernet_key.encode())


def encrypt_credential(value: str | None) -> str | None:
    """Encrypt a credential for storage. Empty values are stored as NULL."""
    if not value:
        return None
    return _fernet().encrypt(value.encode()).decode()


def decrypt_credential(token: str | None) -> str | None:
    if not token:
        return None
    try:
        return _fernet().decrypt(token.encode()).decode()
    except InvalidToken as e:
        # Key rotated or column tampered with
        raise AssessmentToolError("Stored credential could not be decrypted") from e
