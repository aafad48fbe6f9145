"""
Storage router: S3-style bucket and object endpoints.

Delegates business logic to services.buckets and services.objects. Every
endpoint requires a bearer token (auth.get_current_user). Registered after
the fixed-prefix routers so /oauth, /presign and /public win.
"""
from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import StreamingResponse

from auth import get_current_user
from dependencies import get_bucket_manager, get_object_store
from models import User
from services.buckets import BucketManager, bucket_to_dict
from services.objects import ObjectStore, ObjectStream, buffered_upload

router = APIRouter()


def stream_response(obj: ObjectStream) -> StreamingResponse:
    return StreamingResponse(
        obj.body,
        media_type=obj.mime_type,
        headers={"Content-Disposition": obj.content_disposition},
    )


# --- Buckets ---


@router.get("/")
def list_buckets(
    user: User = Depends(get_current_user),
    buckets: BucketManager = Depends(get_bucket_manager),
):
    """List the caller's buckets."""
    return {"buckets": [bucket_to_dict(b) for b in buckets.list_buckets(user)]}


@router.put("/{bucket}", status_code=201)
def create_bucket(
    bucket: str,
    user: User = Depends(get_current_user),
    buckets: BucketManager = Depends(get_bucket_manager),
):
    """Create a bucket and its backing Drive folder. 409 if the name is taken."""
    created = buckets.create_bucket(user, bucket)
    return {"message": "Bucket created", "id": created.id, "name": created.name}


@router.delete("/{bucket}")
def delete_bucket(
    bucket: str,
    user: User = Depends(get_current_user),
    buckets: BucketManager = Depends(get_bucket_manager),
):
    """
    Delete a bucket, its objects and (best effort) the Drive folder and files.
    The report lists every Drive delete attempted and whether it worked.
    """
    report = buckets.delete_bucket(user, bucket)
    return {
        "message": f"Bucket '{report.bucket}' and all its files have been deleted.",
        "report": report.to_dict(),
    }


@router.get("/{bucket}")
def list_objects(
    bucket: str,
    user: User = Depends(get_current_user),
    objects: ObjectStore = Depends(get_object_store),
):
    return {"bucket": bucket, "files": objects.list_objects(bucket, user)}


# --- Objects ---


@router.put("/{bucket}/{object_name}")
def put_object(
    bucket: str,
    object_name: str,
    file: UploadFile | None = File(None),
    user: User = Depends(get_current_user),
    objects: ObjectStore = Depends(get_object_store),
):
    """
    Upload the multipart field "file". The object is stored under a random
    name (returned as "name"); object_name becomes its display name.
    """
    with buffered_upload(file.file if file else None) as path:
        return objects.put_object(
            user,
            bucket,
            object_name,
            path,
            file.content_type,
            file.filename,
        )


@router.get("/{bucket}/{object_name}")
def get_object(
    bucket: str,
    object_name: str,
    user: User = Depends(get_current_user),
    objects: ObjectStore = Depends(get_object_store),
):
    """Stream an object by stored name, served inline under its display name."""
    return stream_response(objects.get_object(user, bucket, object_name))


@router.delete("/{bucket}/{object_name}")
def delete_object(
    bucket: str,
    object_name: str,
    user: User = Depends(get_current_user),
    objects: ObjectStore = Depends(get_object_store),
):
    objects.delete_object(user, bucket, object_name)
    return {"message": "File deleted successfully"}
