"""
Credential lifecycle: builds Drive clients from a user's stored tokens and
writes refreshed tokens back to the User row.

Components that need Drive go through CredentialManager.session (or pair
authorized_client with persist_refreshes in a finally) so a refresh observed
during a request is persisted exactly once, on every exit path of that request.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy.orm import Session

from crypto import decrypt, encrypt
from models import User
from services.drive_service import DriveClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[..., DriveClient]


class CredentialManager:
    def __init__(self, db: Session, client_factory: ClientFactory = DriveClient):
        self.db = db
        self.client_factory = client_factory

    def authorized_client(self, user: User) -> DriveClient:
        """Client seeded with the user's current (access, refresh) pair."""
        return self.client_factory(
            decrypt(user.encrypted_google_access_token),
            decrypt(user.encrypted_google_refresh_token),
            user.google_token_expires_at,
        )

    def persist_refreshes(self, user: User, client: DriveClient) -> int:
        """
        Drain client.refreshes onto the user row and commit. A missing
        refresh token in an event leaves the stored one untouched.
        Returns the number of events written.
        """
        events = list(client.refreshes)
        client.refreshes.clear()
        if not events:
            return 0
        for event in events:
            user.encrypted_google_access_token = encrypt(event.access_token)
            user.google_token_expires_at = event.expires_at
            if event.refresh_token:
                user.encrypted_google_refresh_token = encrypt(event.refresh_token)
        self.db.commit()
        logger.info("Persisted %d refreshed Google token(s) for %s", len(events), user.email)
        return len(events)

    @contextmanager
    def session(self, user: User) -> Iterator[DriveClient]:
        """Yield an authorized client; persist any token refresh when the block exits."""
        client = self.authorized_client(user)
        try:
            yield client
        finally:
            self.persist_refreshes(user, client)
