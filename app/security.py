"""
Opaque bearer tokens for the gateway's own API.

A token is minted on every successful Google login and matched verbatim
against users.access_token. Lifetime is governed by API_TOKEN_MAX_AGE
(0 = valid until the next login replaces it).
"""
import uuid
from datetime import datetime, timedelta, UTC

from config import API_TOKEN_MAX_AGE
from models import as_utc


def create_api_token() -> str:
    return uuid.uuid4().hex


def api_token_expired(issued_at: datetime | None, max_age: int = API_TOKEN_MAX_AGE) -> bool:
    """True if a token issued at issued_at is older than max_age seconds."""
    if max_age <= 0:
        return False
    issued_at = as_utc(issued_at)
    if issued_at is None:
        return True
    return datetime.now(UTC) >= issued_at + timedelta(seconds=max_age)
