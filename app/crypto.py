"""
Encryption of delegated Google tokens at rest using Fernet (symmetric, from cryptography).

Tokens are encrypted before being stored on the User row and decrypted only
when a Drive client is built for that user. Handles None for the optional
refresh token.
"""
from cryptography.fernet import Fernet

from config import TOKEN_ENCRYPTION_KEY as FERNET_KEY

if not FERNET_KEY:
    raise RuntimeError("TOKEN_ENCRYPTION_KEY environment variable is required")
fernet = Fernet(FERNET_KEY.encode() if isinstance(FERNET_KEY, str) else FERNET_KEY)


def encrypt(value: str) -> str:
    """Encrypt a string (google access or refresh token) for storage."""
    return fernet.encrypt(value.encode()).decode()


def decrypt(value: str | None) -> str | None:
    """
    Decrypt a stored token. Returns None if value is None (e.g. missing refresh token).
    """
    if value is None:
        return None
    return fernet.decrypt(value.encode()).decode()
