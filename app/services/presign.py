"""
Presigned public access: a random token stored on the File row grants
anyone holding it read access until expires_at.

Expiry is checked when the link is used; nothing sweeps expired tokens.
Wrong token and missing object look the same to the caller.
"""
import logging
import secrets
from datetime import datetime, timedelta, UTC
from urllib.parse import quote, urlencode

from sqlalchemy.orm import Session

from config import PRESIGN_TTL_DAYS
from errors import Forbidden, NotFound, Unauthorized
from models import Bucket, File, User, as_utc
from services.credentials import CredentialManager
from services.objects import DEFAULT_MIME_TYPE, ObjectStore, ObjectStream

logger = logging.getLogger(__name__)

TOKEN_BYTES = 24


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def wants_download(value: str | None) -> bool:
    return (value or "").strip().lower() in ("1", "true", "yes")


class PresignController:
    def __init__(
        self,
        db: Session,
        credentials: CredentialManager,
        objects: ObjectStore,
        ttl: timedelta = timedelta(days=PRESIGN_TTL_DAYS),
    ):
        self.db = db
        self.credentials = credentials
        self.objects = objects
        self.ttl = ttl

    def issue_token(self, user: User, bucket_name: str, stored_name: str, base_url: str) -> dict:
        """
        Put a fresh token on the object, replacing any previous one, and
        return the public URL with its expiry.
        """
        bucket = self.objects.buckets.get_bucket(user, bucket_name)
        f = self.objects.find_object(bucket, stored_name, user)

        token = generate_token()
        expires_at = datetime.now(UTC) + self.ttl
        f.public_token = token
        f.expires_at = expires_at
        self.db.commit()

        url = (
            f"{base_url.rstrip('/')}/public/{quote(bucket.name, safe='')}/"
            f"{quote(stored_name, safe='')}?{urlencode({'token': token})}"
        )
        logger.info("Issued public link for %s in bucket %r", stored_name, bucket.name)
        return {"url": url, "expires_at": expires_at.isoformat()}

    def revoke_token(self, user: User, bucket_name: str, stored_name: str) -> None:
        bucket = self.objects.buckets.get_bucket(user, bucket_name)
        f = (
            self.db.query(File)
            .filter_by(bucket_id=bucket.id, file_name=stored_name, user_id=user.id)
            .first()
        )
        if not f or not f.public_token:
            raise NotFound("No active token for this file")
        f.public_token = None
        f.expires_at = None
        self.db.commit()
        logger.info("Revoked public link for %s in bucket %r", stored_name, bucket.name)

    def serve_public(
        self,
        bucket_name: str,
        stored_name: str,
        token: str | None,
        download: bool = False,
    ) -> ObjectStream:
        """
        Anonymous read gated only by the token. Bytes are fetched with the
        owning user's Google credentials.
        """
        if not token:
            raise Unauthorized("Missing token")

        f = (
            self.db.query(File)
            .join(Bucket, File.bucket_id == Bucket.id)
            .filter(
                Bucket.name == bucket_name,
                File.file_name == stored_name,
                File.public_token == token,
            )
            .first()
        )
        if not f:
            logger.warning("Public token lookup failed for %r/%r", bucket_name, stored_name)
            raise NotFound("File not found or token invalid")

        expires_at = as_utc(f.expires_at)
        if expires_at is None or datetime.now(UTC) > expires_at:
            raise Forbidden("Token expired")

        with self.credentials.session(f.user) as drive:
            body = drive.open_stream(f.drive_file_id)
        return ObjectStream(
            body=body,
            mime_type=f.mime_type or DEFAULT_MIME_TYPE,
            display_name=f.display_name,
            disposition="attachment" if download else "inline",
        )
