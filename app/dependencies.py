"""
FastAPI dependencies that wire services per request.

One CredentialManager per request is shared by every service that request
touches; tests swap the Drive client via get_client_factory.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from database import get_db
from services.buckets import BucketManager
from services.credentials import ClientFactory, CredentialManager
from services.drive_service import DriveClient
from services.objects import ObjectStore
from services.presign import PresignController


def get_client_factory() -> ClientFactory:
    return DriveClient


def get_credential_manager(
    db: Session = Depends(get_db),
    client_factory: ClientFactory = Depends(get_client_factory),
) -> CredentialManager:
    return CredentialManager(db, client_factory)


def get_bucket_manager(
    db: Session = Depends(get_db),
    credentials: CredentialManager = Depends(get_credential_manager),
) -> BucketManager:
    return BucketManager(db, credentials)


def get_object_store(
    db: Session = Depends(get_db),
    credentials: CredentialManager = Depends(get_credential_manager),
    buckets: BucketManager = Depends(get_bucket_manager),
) -> ObjectStore:
    return ObjectStore(db, credentials, buckets)


def get_presign_controller(
    db: Session = Depends(get_db),
    credentials: CredentialManager = Depends(get_credential_manager),
    objects: ObjectStore = Depends(get_object_store),
) -> PresignController:
    return PresignController(db, credentials, objects)
