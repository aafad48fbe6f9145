"""
Object lifecycle inside a bucket: upload under an obfuscated name, stream
back under the display name, list, delete.

Uploads and single-object deletes are all-or-nothing against Drive: a Drive
failure aborts the operation before any record is written or removed.
"""
import logging
import mimetypes
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import BinaryIO, Iterator
from urllib.parse import quote

from sqlalchemy.orm import Session

from config import UPLOAD_TMP_DIR
from errors import NotFound, UpstreamError, ValidationError
from models import Bucket, File, User
from services.buckets import BucketManager
from services.credentials import CredentialManager
from services.naming import derive_stored_name

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class ObjectStream:
    """Lazily pulled object bytes plus what the response headers need."""
    body: Iterator[bytes]
    mime_type: str
    display_name: str
    disposition: str = "inline"

    @property
    def content_disposition(self) -> str:
        """Header value with an ASCII fallback name and the exact UTF-8 name."""
        fallback = "".join(
            c if " " <= c <= "~" and c not in '"\\' else "_" for c in self.display_name
        )
        return (
            f'{self.disposition}; filename="{fallback}"; '
            f"filename*=UTF-8''{quote(self.display_name, safe='')}"
        )


@contextmanager
def buffered_upload(source: BinaryIO | None, tmp_dir: str = UPLOAD_TMP_DIR) -> Iterator[str]:
    """
    Copy an incoming upload to a private file under tmp_dir and yield its
    path. The file is removed when the block exits, whether the upload
    succeeded or not.
    """
    if source is None:
        raise ValidationError("No file uploaded (multipart field 'file')")
    os.makedirs(tmp_dir, exist_ok=True)
    fd, path = tempfile.mkstemp(prefix="upload-", dir=tmp_dir)
    try:
        with os.fdopen(fd, "wb") as out:
            shutil.copyfileobj(source, out)
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove upload buffer %s: %s", path, e)


def file_to_dict(f: File) -> dict:
    """Client-facing projection of a File record; ownership fields stay internal."""
    return {
        "id": f.id,
        "bucket": f.bucket_id,
        "drive_file_id": f.drive_file_id,
        "file_name": f.file_name,
        "original_file_name": f.original_file_name,
        "mime_type": f.mime_type,
        "public_token": f.public_token,
        "expires_at": f.expires_at.isoformat() if f.expires_at else None,
        "created_at": f.created_at.isoformat() if f.created_at else None,
    }


class ObjectStore:
    def __init__(self, db: Session, credentials: CredentialManager, buckets: BucketManager):
        self.db = db
        self.credentials = credentials
        self.buckets = buckets

    def find_object(self, bucket: Bucket, stored_name: str, user: User) -> File:
        f = (
            self.db.query(File)
            .filter_by(bucket_id=bucket.id, file_name=stored_name, user_id=user.id)
            .first()
        )
        if not f:
            raise NotFound("File not found in bucket")
        return f

    def put_object(
        self,
        user: User,
        bucket_name: str,
        requested_name: str | None,
        source_path: str,
        mime_type: str | None,
        original_name: str | None,
    ) -> dict:
        """
        Upload the file at source_path into the bucket's folder under a
        derived name and record it. Returns {"id": drive id, "name": stored name}.
        """
        bucket = self.buckets.get_bucket(user, bucket_name)
        display_name = (requested_name or "").strip() or original_name
        if not display_name:
            raise ValidationError("Object name required")
        if any(ord(c) < 32 or ord(c) == 127 for c in display_name):
            raise ValidationError("Object name contains control characters")
        stored_name = derive_stored_name(display_name)
        mime_type = mime_type or mimetypes.guess_type(display_name)[0] or DEFAULT_MIME_TYPE

        with self.credentials.session(user) as drive:
            try:
                uploaded = drive.upload_file(source_path, stored_name, mime_type, bucket.drive_folder_id)
            except UpstreamError:
                logger.exception("Upload of %r to bucket %r failed", display_name, bucket.name)
                raise

            record = File(
                user_id=user.id,
                bucket_id=bucket.id,
                drive_file_id=uploaded["id"],
                file_name=stored_name,
                original_file_name=display_name,
                mime_type=mime_type,
            )
            self.db.add(record)
            try:
                self.db.commit()
            except Exception:
                self.db.rollback()
                logger.exception("Recording upload %s failed; removing Drive copy", stored_name)
                try:
                    drive.delete(uploaded["id"])
                except UpstreamError as e:
                    logger.warning("Drive file %s is orphaned: %s", uploaded["id"], e.message)
                raise

        logger.info("Stored %r as %s in bucket %r", display_name, stored_name, bucket.name)
        return {"id": uploaded["id"], "name": stored_name}

    def get_object(self, user: User, bucket_name: str, stored_name: str) -> ObjectStream:
        bucket = self.buckets.get_bucket(user, bucket_name)
        f = self.find_object(bucket, stored_name, user)
        with self.credentials.session(user) as drive:
            body = drive.open_stream(f.drive_file_id)
        return ObjectStream(
            body=body,
            mime_type=f.mime_type or DEFAULT_MIME_TYPE,
            display_name=f.display_name,
        )

    def delete_object(self, user: User, bucket_name: str, stored_name: str) -> None:
        """Delete from Drive first; the record goes only if that succeeded."""
        bucket = self.buckets.get_bucket(user, bucket_name)
        f = self.find_object(bucket, stored_name, user)
        with self.credentials.session(user) as drive:
            try:
                drive.delete(f.drive_file_id)
            except UpstreamError:
                logger.exception("Delete of %s from bucket %r failed", stored_name, bucket.name)
                raise
        self.db.delete(f)
        self.db.commit()
        logger.info("Deleted %s from bucket %r", stored_name, bucket.name)

    def list_objects(self, bucket_name: str, user: User) -> list[dict]:
        bucket = self.buckets.get_bucket(user, bucket_name)
        files = self.db.query(File).filter_by(bucket_id=bucket.id).all()
        return [file_to_dict(f) for f in files]
