"""
Image storage endpoints.

upload-url hands an admin a short-lived upload target. With STORAGE_MODE=s3
or minio the target is a presigned S3 URL and the bytes never pass through
the API; with STORAGE_MODE=local the API serves the signed upload and
download routes below itself.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse

from schoolsite.core.exceptions import ResourceNotFoundError
from schoolsite.models.user import User
from schoolsite.modules.auth.dependencies import get_optional_user
from schoolsite.schemas.storage import UploadTargetResponse, UploadResult
from schoolsite.services.storage_service import (
    LocalObjectStorage,
    ObjectStorage,
    get_object_storage,
    request_upload_target,
)

router = APIRouter()


def _local_backend(storage: ObjectStorage) -> LocalObjectStorage:
    if not isinstance(storage, LocalObjectStorage):
        raise ResourceNotFoundError("route", "storage", message="Not served by this storage backend")
    return storage


@router.post("/upload-url", response_model=UploadTargetResponse)
async def generate_upload_url(
    current_user: Optional[User] = Depends(get_optional_user),
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Short-lived URL for uploading one image (admin only)"""
    target = await request_upload_target(current_user, storage)
    return UploadTargetResponse(
        upload_url=target.upload_url,
        storage_id=target.storage_id,
        method=target.method,
        expires_in=target.expires_in,
    )


@router.api_route("/upload/{token}", methods=["PUT", "POST"], response_model=UploadResult)
async def upload_image(
    token: str,
    request: Request,
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Receive raw image bytes for a signed upload URL"""
    local = _local_backend(storage)
    content = await request.body()
    storage_id = await local.store(token, content, request.headers.get("content-type"))
    return UploadResult(storage_id=storage_id)


@router.get("/files/{token}")
async def download_image(
    token: str,
    storage: ObjectStorage = Depends(get_object_storage),
):
    """Serve an image for a signed download URL"""
    local = _local_backend(storage)
    path, content_type = await local.open(token)
    return FileResponse(path, media_type=content_type)
