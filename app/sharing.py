"""
Sharing router: presigned links and the anonymous download they unlock.

POST/DELETE /presign/... require a bearer token. GET /public/... does not;
the ?token= query parameter is the only authorization.
"""
from fastapi import APIRouter, Depends, Request

from auth import get_current_user
from config import PUBLIC_BASE_URL
from dependencies import get_presign_controller
from models import User
from services.presign import PresignController, wants_download
from storage import stream_response

router = APIRouter()


@router.post("/presign/{bucket}/{object_name}")
def presign(
    bucket: str,
    object_name: str,
    request: Request,
    user: User = Depends(get_current_user),
    presigner: PresignController = Depends(get_presign_controller),
):
    """Issue (or replace) the object's public token; returns {url, expires_at}."""
    base_url = PUBLIC_BASE_URL or str(request.base_url)
    return presigner.issue_token(user, bucket, object_name, base_url)


@router.delete("/presign/{bucket}/{object_name}")
def revoke(
    bucket: str,
    object_name: str,
    user: User = Depends(get_current_user),
    presigner: PresignController = Depends(get_presign_controller),
):
    presigner.revoke_token(user, bucket, object_name)
    return {"message": "Public token revoked successfully"}


@router.get("/public/{bucket}/{object_name}")
def public_download(
    bucket: str,
    object_name: str,
    token: str | None = None,
    download: str | None = None,
    presigner: PresignController = Depends(get_presign_controller),
):
    """Anonymous download; download=true sends it as an attachment."""
    obj = presigner.serve_public(bucket, object_name, token, wants_download(download))
    return stream_response(obj)
