"""Fernet encryption for credentials stored at rest (mail passwords, OAuth tokens, ERP keys)."""

from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from aris.core.config import settings


@lru_cache(maxsize=1)
def get_fernet() -> Fernet:
    if not settings.FERNET_KEY:
        raise RuntimeError(
            "FERNET_KEY not configured. "
            'Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"'
        )
    return Fernet(settings.FERNET_KEY.encode())


def encrypt_token(token: str | None) -> str:
    """Empty input stays empty so optional secrets round-trip as ``""``."""
    if not token:
        return ""
    return get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str | None) -> str:
    if not encrypted:
        return ""
    try:
        return get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken:
        raise ValueError("Invalid or corrupted encrypted token")
