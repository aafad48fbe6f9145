"""
Bucket lifecycle: one Drive folder per bucket, unique name per user,
cascading delete that always cleans up local records.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Callable

from cryptography.fernet import InvalidToken
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import Conflict, NotFound, UpstreamError, ValidationError
from models import Bucket, File, User
from services.credentials import CredentialManager

logger = logging.getLogger(__name__)

MAX_BUCKET_NAME_LENGTH = 255


@dataclass
class DeletionOutcome:
    """Result of one remote delete attempted during a bucket cascade."""
    kind: str  # "file" or "folder"
    remote_id: str
    ok: bool
    error: str | None = None


@dataclass
class DeletionReport:
    bucket: str
    outcomes: list[DeletionOutcome] = field(default_factory=list)
    records_removed: int = 0

    @property
    def failures(self) -> list[DeletionOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def complete(self) -> bool:
        return not self.failures

    def to_dict(self) -> dict:
        return {
            "bucket": self.bucket,
            "complete": self.complete,
            "records_removed": self.records_removed,
            "outcomes": [asdict(o) for o in self.outcomes],
        }


def clean_bucket_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Bucket name required")
    if len(name) > MAX_BUCKET_NAME_LENGTH:
        raise ValidationError(f"Bucket name longer than {MAX_BUCKET_NAME_LENGTH} characters")
    return name


def bucket_to_dict(bucket: Bucket) -> dict:
    return {
        "id": bucket.id,
        "name": bucket.name,
        "drive_folder_id": bucket.drive_folder_id,
        "created_at": bucket.created_at.isoformat() if bucket.created_at else None,
    }


def _attempt(kind: str, remote_id: str, delete: Callable[[str], None]) -> DeletionOutcome:
    try:
        delete(remote_id)
    except UpstreamError as e:
        logger.warning("Failed to delete %s %s from Drive: %s", kind, remote_id, e.message)
        return DeletionOutcome(kind, remote_id, ok=False, error=e.message)
    return DeletionOutcome(kind, remote_id, ok=True)


class BucketManager:
    def __init__(self, db: Session, credentials: CredentialManager):
        self.db = db
        self.credentials = credentials

    def get_bucket(self, user: User, name: str) -> Bucket:
        """Bucket named `name` owned by `user`; NotFound otherwise."""
        bucket = (
            self.db.query(Bucket)
            .filter_by(user_id=user.id, name=clean_bucket_name(name))
            .first()
        )
        if not bucket:
            raise NotFound("Bucket not found")
        return bucket

    def list_buckets(self, user: User) -> list[Bucket]:
        return self.db.query(Bucket).filter_by(user_id=user.id).all()

    def create_bucket(self, user: User, name: str) -> Bucket:
        """
        Create the Drive folder, then the record. No record is written if the
        folder cannot be created. A concurrent create of the same name loses
        on the unique constraint and its freshly made folder is removed.
        """
        name = clean_bucket_name(name)
        if self.db.query(Bucket).filter_by(user_id=user.id, name=name).first():
            raise Conflict("Bucket already exists")

        with self.credentials.session(user) as drive:
            try:
                folder_id = drive.create_folder(name)
            except UpstreamError:
                logger.exception("Create bucket %r failed for %s", name, user.email)
                raise

            bucket = Bucket(user_id=user.id, name=name, drive_folder_id=folder_id)
            self.db.add(bucket)
            try:
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                _attempt("folder", folder_id, drive.delete)
                raise Conflict("Bucket already exists")

        self.db.refresh(bucket)
        logger.info("Created bucket %r (folder %s) for %s", name, folder_id, user.email)
        return bucket

    def delete_bucket(self, user: User, name: str) -> DeletionReport:
        """
        Best-effort remote cleanup, guaranteed local cleanup. Each Drive file
        and then the folder is deleted; failures are logged and recorded in
        the report but never stop the cascade. All File records and the
        Bucket record are removed regardless.
        """
        bucket = self.get_bucket(user, name)
        files = self.db.query(File).filter_by(bucket_id=bucket.id).all()
        report = DeletionReport(bucket=bucket.name)

        targets = [("file", f.drive_file_id) for f in files]
        targets.append(("folder", bucket.drive_folder_id))

        try:
            drive = self.credentials.authorized_client(user)
        except (InvalidToken, UpstreamError) as exc:
            logger.warning("No usable Google credentials for %s, skipping Drive cleanup: %r", user.email, exc)
            report.outcomes.extend(
                DeletionOutcome(kind, remote_id, ok=False, error="Google credentials unavailable")
                for kind, remote_id in targets
            )
        else:
            try:
                for kind, remote_id in targets:
                    report.outcomes.append(_attempt(kind, remote_id, drive.delete))
            finally:
                self.credentials.persist_refreshes(user, drive)

        for f in files:
            self.db.delete(f)
        report.records_removed = len(files)
        self.db.delete(bucket)
        self.db.commit()

        if report.complete:
            logger.info("Deleted bucket %r for %s", bucket.name, user.email)
        else:
            logger.warning(
                "Deleted bucket %r for %s; %d Drive item(s) may be orphaned",
                bucket.name,
                user.email,
                len(report.failures),
            )
        return report
