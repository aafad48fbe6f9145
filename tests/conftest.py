"""Pytest fixtures for the Drive bucket gateway.

Environment is set before any app module is imported: config.py and
crypto.py validate it at import time.
"""
import os
import tempfile

from cryptography.fernet import Fernet

os.environ["ENV"] = "test"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["GOOGLE_REDIRECT_URI"] = "http://testserver/oauth/callback"
os.environ["TOKEN_ENCRYPTION_KEY"] = Fernet.generate_key().decode()
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SKIP_DB_INIT"] = "true"
os.environ["UPLOAD_TMP_DIR"] = tempfile.mkdtemp(prefix="gateway-uploads-")

import itertools  # noqa: E402
from datetime import datetime, timedelta, UTC  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from crypto import encrypt  # noqa: E402
from database import Base, get_db  # noqa: E402
from dependencies import get_client_factory  # noqa: E402
from models import User  # noqa: E402
from services.credentials import CredentialManager  # noqa: E402
from services.drive_service import DriveError, TokenRefresh  # noqa: E402


class FakeDrive:
    """In-memory stand-in for Google Drive shared by every client a test builds."""

    def __init__(self):
        self.items: dict[str, dict] = {}
        self.clients: list["FakeDriveClient"] = []
        self.fail_create_folder = False
        self.fail_upload = False
        self.fail_delete: set[str] = set()
        self.pending_refresh: TokenRefresh | None = None
        self._ids = itertools.count(1)

    def new_id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def factory(self, access_token, refresh_token=None, expires_at=None):
        client = FakeDriveClient(self, access_token, refresh_token, expires_at)
        self.clients.append(client)
        return client

    def children(self, folder_id: str) -> list[dict]:
        return [i for i in self.items.values() if i.get("parent") == folder_id]


class FakeDriveClient:
    def __init__(self, drive: FakeDrive, access_token, refresh_token, expires_at):
        self.drive = drive
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_at = expires_at
        self.refreshes: list[TokenRefresh] = []

    def _maybe_refresh(self):
        if self.drive.pending_refresh is not None:
            event, self.drive.pending_refresh = self.drive.pending_refresh, None
            self.access_token = event.access_token
            self.refreshes.append(event)

    def create_folder(self, name, parent_id=None):
        self._maybe_refresh()
        if self.drive.fail_create_folder:
            raise DriveError("Google Drive returned 500", status=500)
        folder_id = self.drive.new_id("folder")
        self.drive.items[folder_id] = {"id": folder_id, "name": name, "folder": True}
        return folder_id

    def upload_file(self, path, name, mime_type, folder_id=None):
        self._maybe_refresh()
        if self.drive.fail_upload:
            raise DriveError("Google Drive returned 503", status=503)
        with open(path, "rb") as f:
            content = f.read()
        file_id = self.drive.new_id("file")
        self.drive.items[file_id] = {
            "id": file_id,
            "name": name,
            "parent": folder_id,
            "mime_type": mime_type,
            "content": content,
        }
        return {"id": file_id, "name": name}

    def open_stream(self, file_id):
        self._maybe_refresh()
        item = self.drive.items.get(file_id)
        if item is None or item.get("folder"):
            raise DriveError("Google Drive returned 404", status=404)
        return iter([item["content"]])

    def delete(self, file_id):
        self._maybe_refresh()
        if file_id in self.drive.fail_delete or file_id not in self.drive.items:
            raise DriveError("Google Drive returned 404", status=404)
        del self.drive.items[file_id]
        for child in self.drive.children(file_id):
            del self.drive.items[child["id"]]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def credentials(db, drive):
    return CredentialManager(db, client_factory=drive.factory)


def make_user(db, email: str, token: str, refresh_token: str | None = "g-refresh") -> User:
    user = User(
        email=email,
        access_token=token,
        access_token_issued_at=datetime.now(UTC),
        encrypted_google_access_token=encrypt(f"g-access-{email}"),
        encrypted_google_refresh_token=encrypt(refresh_token) if refresh_token else None,
        google_token_expires_at=datetime.now(UTC) + timedelta(hours=1),
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def alice(db):
    return make_user(db, "alice@example.com", "token-alice")


@pytest.fixture
def bob(db):
    return make_user(db, "bob@example.com", "token-bob")


@pytest.fixture
def client(db, drive):
    from main import app

    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_client_factory] = lambda: drive.factory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
