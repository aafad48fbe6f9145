"""
Data models for the Drive-backed bucket gateway.

"""
import uuid
from datetime import datetime, UTC

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class User(Base):
    """
    User identity, gateway bearer token and delegated Google OAuth state.

    - email: from Google profile; the upsert key on every OAuth callback.
    - access_token: opaque bearer token presented to this gateway. Replaced
      on every login; access_token_issued_at drives optional expiry.
    - encrypted_google_access_token / encrypted_google_refresh_token:
      Fernet-encrypted delegated pair, decrypted only to build a Drive client.
      The refresh token stays null until Google returns one (offline consent).
    - google_token_expires_at: UTC expiry of the Google access token, so the
      client can refresh before calling Drive.
    """
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)

    access_token = Column(String(64), unique=True, nullable=True, index=True)
    access_token_issued_at = Column(DateTime(timezone=True), nullable=True)

    # OAuth tokens encrypted at rest (crypto.encrypt / crypto.decrypt)
    encrypted_google_access_token = Column(String(2048), nullable=True)
    encrypted_google_refresh_token = Column(String(2048), nullable=True)
    google_token_expires_at = Column(DateTime(timezone=True), nullable=True)

    buckets = relationship("Bucket", back_populates="user")


class Bucket(Base):
    """
    Named per-user container backed by exactly one Drive folder.

    (user_id, name) is unique at the table level so concurrent creates of
    the same bucket cannot both persist. drive_folder_id never changes.
    """
    __tablename__ = "buckets"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_bucket_user_name"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    drive_folder_id = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    user = relationship("User", back_populates="buckets")
    files = relationship("File", back_populates="bucket")


class File(Base):
    """
    An object stored in a bucket.

    file_name is the obfuscated stored name and the lookup key inside the
    bucket; original_file_name is what clients see. public_token and
    expires_at are set together by presigning and cleared together on revoke.
    """
    __tablename__ = "files"
    __table_args__ = (UniqueConstraint("bucket_id", "file_name", name="uq_file_bucket_name"),)

    id = Column(String(32), primary_key=True, default=_new_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False, index=True)
    bucket_id = Column(String(32), ForeignKey("buckets.id"), nullable=False, index=True)
    drive_file_id = Column(String(255), nullable=False)
    file_name = Column(String(255), nullable=False)
    original_file_name = Column(String(1024), nullable=True)
    mime_type = Column(String(255), nullable=True)
    public_token = Column(String(64), nullable=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)

    user = relationship("User")
    bucket = relationship("Bucket", back_populates="files")

    @property
    def display_name(self) -> str:
        return self.original_file_name or self.file_name
