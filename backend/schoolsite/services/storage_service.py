"""
Storage Service - Image attachments in S3/MinIO or a local directory

Uploads are two-step: the API hands out a short-lived write URL together
with the storage id, the client sends the bytes straight to that URL, then
passes the storage id to a create/update call. Retrieval URLs are computed
on every read and never stored.
"""

import asyncio
import json
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import partial
from pathlib import Path
from typing import List, Optional, Tuple

import aiofiles
import aiofiles.os
import boto3
from botocore.config import Config
from botocore.exceptions import ClientError, BotoCoreError

from schoolsite.core.config import settings
from schoolsite.core.exceptions import (
    ConflictError,
    ImageNotFoundError,
    InvalidImageError,
    StorageError,
    ValidationError,
)
from schoolsite.core.logging_config import logger
from schoolsite.core.security import create_storage_token, decode_token
from schoolsite.models.user import User
from schoolsite.modules.auth.guard import require_admin

STORAGE_ID_RE = re.compile(r"^[0-9a-f]{32}$")
S3_KEY_PREFIX = "images/"


@dataclass
class UploadTarget:
    upload_url: str
    storage_id: str
    method: str
    expires_in: int


@dataclass
class StoredObject:
    storage_id: str
    last_modified: datetime  # timezone-aware UTC


def new_storage_id() -> str:
    return uuid.uuid4().hex


def validate_storage_id(storage_id: str) -> str:
    """Reject anything that is not a storage id before it reaches a backend"""
    if not isinstance(storage_id, str) or not STORAGE_ID_RE.fullmatch(storage_id):
        raise ValidationError("Invalid image id", field="image_id")
    return storage_id


class ObjectStorage(ABC):
    """Binary object storage for image attachments"""

    @abstractmethod
    async def generate_upload_target(self) -> UploadTarget:
        ...

    @abstractmethod
    async def exists(self, storage_id: str) -> bool:
        ...

    @abstractmethod
    async def get_url(self, storage_id: str) -> Optional[str]:
        """Retrieval URL for an existing object, None if it does not exist"""

    @abstractmethod
    async def delete(self, storage_id: str) -> None:
        ...

    @abstractmethod
    async def list_objects(self) -> List[StoredObject]:
        ...

    async def resolve_url(self, storage_id: Optional[str]) -> Optional[str]:
        """
        Materialize a display URL for a read.

        Returns None when the id or the object is missing, and when the
        backend cannot read the object.
        """
        if not storage_id:
            return None
        if not STORAGE_ID_RE.fullmatch(storage_id):
            return None
        try:
            return await self.get_url(storage_id)
        except StorageError as e:
            logger.warning(f"[Storage] No URL for image {storage_id}: {e.message}")
            return None


class S3ObjectStorage(ObjectStorage):
    """
    S3 / MinIO backend.

    Upload targets are presigned put_object URLs; retrieval URLs are
    presigned get_object URLs issued after a head_object existence check.
    """

    def __init__(self):
        self._client = None
        self._public_client = None  # Separate client for presigned URLs with public endpoint
        self._bucket_name = settings.S3_BUCKET_NAME
        self._initialized = False
        logger.info(f"S3ObjectStorage initialized with bucket: {self._bucket_name}")

    def _get_client(self):
        """Lazy initialization of S3/MinIO client"""
        if self._client is None:
            if settings.use_minio:
                self._client = boto3.client(
                    's3',
                    endpoint_url=f"http://{settings.MINIO_ENDPOINT}",
                    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                    config=Config(
                        signature_version='s3v4',
                        s3={'addressing_style': 'path'}
                    ),
                    region_name=settings.AWS_REGION
                )
            elif settings.AWS_ACCESS_KEY_ID and settings.AWS_SECRET_ACCESS_KEY:
                self._client = boto3.client(
                    's3',
                    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                    region_name=settings.AWS_REGION
                )
            else:
                # Use IAM role credentials (automatic in ECS/EC2)
                self._client = boto3.client('s3', region_name=settings.AWS_REGION)
                logger.info("S3 client using IAM role credentials")

            self._ensure_bucket()

        return self._client

    def _get_public_client(self):
        """Get client configured with the browser-reachable endpoint for presigned URLs"""
        if self._public_client is None:
            if settings.use_minio and settings.MINIO_PUBLIC_ENDPOINT:
                self._public_client = boto3.client(
                    's3',
                    endpoint_url=f"http://{settings.MINIO_PUBLIC_ENDPOINT}",
                    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
                    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
                    config=Config(
                        signature_version='s3v4',
                        s3={'addressing_style': 'path'}
                    ),
                    region_name=settings.AWS_REGION
                )
            else:
                self._public_client = self._get_client()

        return self._public_client

    def _ensure_bucket(self):
        """Create bucket if it doesn't exist"""
        if self._initialized:
            return

        try:
            self._client.head_bucket(Bucket=self._bucket_name)
        except ClientError as e:
            error_code = e.response.get('Error', {}).get('Code', '')
            if error_code not in ['404', 'NoSuchBucket']:
                raise StorageError(f"Cannot access bucket '{self._bucket_name}': {error_code}")
            if settings.use_minio or settings.AWS_REGION == 'us-east-1':
                self._client.create_bucket(Bucket=self._bucket_name)
            else:
                self._client.create_bucket(
                    Bucket=self._bucket_name,
                    CreateBucketConfiguration={'LocationConstraint': settings.AWS_REGION}
                )
            logger.info(f"Created bucket '{self._bucket_name}'")

        self._initialized = True

    @staticmethod
    def _key(storage_id: str) -> str:
        return f"{S3_KEY_PREFIX}{storage_id}"

    async def _run(self, func, *args, **kwargs):
        """Run a blocking boto3 call off the event loop"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def generate_upload_target(self) -> UploadTarget:
        storage_id = new_storage_id()
        try:
            client = self._get_public_client()
            url = await self._run(
                client.generate_presigned_url,
                'put_object',
                Params={'Bucket': self._bucket_name, 'Key': self._key(storage_id)},
                ExpiresIn=settings.UPLOAD_URL_EXPIRY
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[S3] Failed to presign upload: {e}")
            raise StorageError("Could not create upload URL")

        return UploadTarget(
            upload_url=url,
            storage_id=storage_id,
            method="PUT",
            expires_in=settings.UPLOAD_URL_EXPIRY,
        )

    async def exists(self, storage_id: str) -> bool:
        validate_storage_id(storage_id)
        try:
            await self._run(self._get_client().head_object, Bucket=self._bucket_name, Key=self._key(storage_id))
            return True
        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in ('404', 'NoSuchKey', 'NotFound'):
                return False
            logger.error(f"[S3] head_object failed for {storage_id}: {e}")
            raise StorageError("Could not read image metadata", storage_id=storage_id)

    async def get_url(self, storage_id: str) -> Optional[str]:
        if not await self.exists(storage_id):
            return None
        try:
            return await self._run(
                self._get_public_client().generate_presigned_url,
                'get_object',
                Params={'Bucket': self._bucket_name, 'Key': self._key(storage_id)},
                ExpiresIn=settings.STORAGE_URL_EXPIRY
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[S3] Failed to presign download for {storage_id}: {e}")
            raise StorageError("Could not create image URL", storage_id=storage_id)

    async def delete(self, storage_id: str) -> None:
        validate_storage_id(storage_id)
        try:
            await self._run(self._get_client().delete_object, Bucket=self._bucket_name, Key=self._key(storage_id))
            logger.info(f"[S3] Deleted image {storage_id}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[S3] Failed to delete image {storage_id}: {e}")
            raise StorageError("Could not delete image", storage_id=storage_id)

    def _list_sync(self) -> List[StoredObject]:
        client = self._get_client()
        paginator = client.get_paginator('list_objects_v2')
        objects = []
        for page in paginator.paginate(Bucket=self._bucket_name, Prefix=S3_KEY_PREFIX):
            for obj in page.get('Contents', []):
                storage_id = obj['Key'][len(S3_KEY_PREFIX):]
                if STORAGE_ID_RE.fullmatch(storage_id):
                    objects.append(StoredObject(storage_id=storage_id, last_modified=obj['LastModified']))
        return objects

    async def list_objects(self) -> List[StoredObject]:
        try:
            return await self._run(self._list_sync)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"[S3] Failed to list images: {e}")
            raise StorageError("Could not list images")


class LocalObjectStorage(ObjectStorage):
    """
    Filesystem backend for development and tests.

    The API itself serves the signed upload and download URLs
    (see schoolsite.api.v1.endpoints.storage). Each object is stored as
    <storage_id> with a <storage_id>.json sidecar holding its content type.
    """

    def __init__(self, base_dir: Optional[Path] = None):
        self.base_dir = Path(base_dir) if base_dir else settings.LOCAL_STORAGE_DIR

    def _path(self, storage_id: str) -> Path:
        return self.base_dir / validate_storage_id(storage_id)

    def _meta_path(self, storage_id: str) -> Path:
        return self.base_dir / f"{validate_storage_id(storage_id)}.json"

    def _url(self, action: str, token: str) -> str:
        return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/{settings.API_VERSION}/storage/{action}/{token}"

    async def generate_upload_target(self) -> UploadTarget:
        storage_id = new_storage_id()
        token = create_storage_token(storage_id, "upload", settings.UPLOAD_URL_EXPIRY)
        return UploadTarget(
            upload_url=self._url("upload", token),
            storage_id=storage_id,
            method="PUT",
            expires_in=settings.UPLOAD_URL_EXPIRY,
        )

    async def store(self, token: str, content: bytes, content_type: Optional[str]) -> str:
        """Accept bytes sent to an upload URL; returns the storage id"""
        payload = decode_token(token, expected_type="upload")
        storage_id = validate_storage_id(payload.get("sid", ""))

        media_type = (content_type or "").split(";")[0].strip().lower()
        if media_type not in settings.ALLOWED_IMAGE_TYPES:
            raise InvalidImageError(
                f"Content type '{media_type or 'unknown'}' not allowed. "
                f"Allowed: {', '.join(settings.ALLOWED_IMAGE_TYPES)}"
            )
        if not content:
            raise InvalidImageError("Empty upload")
        if len(content) > settings.MAX_IMAGE_SIZE:
            raise InvalidImageError(f"Image exceeds {settings.MAX_IMAGE_SIZE} bytes")

        if await self.exists(storage_id):
            raise ConflictError("Upload URL has already been used")

        # Blob first: a sidecar never exists without its blob
        try:
            await aiofiles.os.makedirs(self.base_dir, exist_ok=True)
            async with aiofiles.open(self._path(storage_id), "wb") as f:
                await f.write(content)
            async with aiofiles.open(self._meta_path(storage_id), "w") as f:
                await f.write(json.dumps({"content_type": media_type, "size": len(content)}))
        except OSError as e:
            logger.error(f"[LocalStorage] Failed to store {storage_id}: {e}")
            raise StorageError("Could not store image", storage_id=storage_id)

        logger.info(f"[LocalStorage] Stored image {storage_id} ({len(content)} bytes)")
        return storage_id

    async def open(self, token: str) -> Tuple[Path, str]:
        """Resolve a download token to the file path and its content type"""
        payload = decode_token(token, expected_type="download")
        storage_id = validate_storage_id(payload.get("sid", ""))
        if not await self.exists(storage_id):
            raise ImageNotFoundError(storage_id)

        content_type = "application/octet-stream"
        meta_path = self._meta_path(storage_id)
        if await aiofiles.os.path.exists(meta_path):
            async with aiofiles.open(meta_path, "r") as f:
                content_type = json.loads(await f.read()).get("content_type", content_type)
        return self._path(storage_id), content_type

    async def exists(self, storage_id: str) -> bool:
        return await aiofiles.os.path.isfile(self._path(storage_id))

    async def get_url(self, storage_id: str) -> Optional[str]:
        if not await self.exists(storage_id):
            return None
        token = create_storage_token(storage_id, "download", settings.STORAGE_URL_EXPIRY)
        return self._url("files", token)

    async def delete(self, storage_id: str) -> None:
        # Sidecar first: if it cannot go, the blob is still there for a rollback
        for path in (self._meta_path(storage_id), self._path(storage_id)):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.error(f"[LocalStorage] Failed to delete {path}: {e}")
                raise StorageError("Could not delete image", storage_id=storage_id)
        logger.info(f"[LocalStorage] Deleted image {storage_id}")

    async def list_objects(self) -> List[StoredObject]:
        try:
            names = await aiofiles.os.listdir(self.base_dir)
        except FileNotFoundError:
            return []

        objects = []
        for name in names:
            if not STORAGE_ID_RE.fullmatch(name):
                continue
            path = self.base_dir / name
            if not await aiofiles.os.path.isfile(path):
                continue
            stat = await aiofiles.os.stat(path)
            modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
            objects.append(StoredObject(storage_id=name, last_modified=modified))
        return objects


async def request_upload_target(caller: Optional[User], storage: ObjectStorage) -> UploadTarget:
    """Admin-only: a short-lived URL the client can send image bytes to"""
    require_admin(caller)
    return await storage.generate_upload_target()


_object_storage: Optional[ObjectStorage] = None


def get_object_storage() -> ObjectStorage:
    """Get or create the configured storage backend (FastAPI dependency)"""
    global _object_storage
    if _object_storage is None:
        mode = settings.STORAGE_MODE.lower()
        if mode in ("s3", "minio"):
            _object_storage = S3ObjectStorage()
        elif mode == "local":
            _object_storage = LocalObjectStorage()
        else:
            raise RuntimeError(f"Unknown STORAGE_MODE '{settings.STORAGE_MODE}'")
    return _object_storage


def reset_object_storage() -> None:
    """Forget the cached backend (used when settings change)"""
    global _object_storage
    _object_storage = None
