"""
Object Storage Gateway

S3-compatible storage for uploaded recommendation letters.

Provides:
- Pre-signed PUT URLs so browsers upload directly to the bucket
- A synchronous server-side fallback upload for when the direct PUT fails
  (CORS or network trouble in the recipient's environment)
- Pre-signed GET URLs for in-browser preview or forced download

Design Principles:
- The boto3 client is created once by the process entry point and passed in
- Type and size limits are enforced before any storage call is made
- boto3 is synchronous, so calls run in a worker thread
- Every storage failure is surfaced as StorageUnavailableError
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import quote, unquote

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import Request

from letterflow.core.config import Settings

logger = logging.getLogger(__name__)

ALLOWED_LETTER_CONTENT_TYPES: dict[str, str] = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
}
MAX_LETTER_FILE_SIZE = 10 * 1024 * 1024  # 10MB
DEFAULT_URL_TTL_SECONDS = 300  # 5 minutes


class StorageError(Exception):
    """Base exception for storage gateway errors."""

    def __init__(self, message: str, error_code: str, status_code: int):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class StorageUnavailableError(StorageError):
    """Raised when the object store call fails."""

    def __init__(
        self,
        message: str = "File storage is temporarily unavailable.",
        retry_after_seconds: int = 30,
    ):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            message=message,
            error_code="STORAGE_UNAVAILABLE",
            status_code=503,
        )


class FileValidationError(StorageError):
    """Raised when a file fails the type or size checks."""

    def __init__(self, message: str, field: str):
        self.field = field
        super().__init__(
            message=message,
            error_code="VALIDATION_ERROR",
            status_code=400,
        )


@dataclass(frozen=True)
class UploadTarget:
    """A pre-signed upload destination."""

    upload_url: str
    file_url: str
    key: str
    content_type: str
    expires_at: datetime


@dataclass(frozen=True)
class StoredObject:
    """An object written by the server-side upload path."""

    key: str
    file_url: str
    content_type: str
    size: int


@dataclass(frozen=True)
class ViewTarget:
    """A pre-signed download/preview URL."""

    url: str
    expires_at: datetime
    disposition: str


def validate_upload(content_type: str | None, size: int | None) -> None:
    """
    Enforce the letter file allow-list and size ceiling.

    Raises:
        FileValidationError: If the type is not PDF/DOC/DOCX or the size is
            missing, empty or over 10MB
    """
    if not content_type or content_type not in ALLOWED_LETTER_CONTENT_TYPES:
        raise FileValidationError("Only PDF, DOC, and DOCX files are allowed", field="content_type")

    if size is None or size <= 0:
        raise FileValidationError("File is empty", field="file_size")

    if size > MAX_LETTER_FILE_SIZE:
        raise FileValidationError("File size exceeds 10MB limit", field="file_size")


def _content_disposition(force_download: bool, filename: str | None) -> str:
    kind = "attachment" if force_download else "inline"
    if not filename:
        return kind
    safe_name = filename.replace('"', "").replace("\\", "")
    return f"{kind}; filename=\"{safe_name}\"; filename*=UTF-8''{quote(safe_name)}"


class ObjectStorageGateway:
    """
    Pre-signed URL issuance and server-side uploads against one bucket.

    Args:
        client: A boto3 S3 client
        bucket: Bucket holding letter files
        region: Bucket region, used to build object URLs
        public_base_url: Override for object URLs (S3-compatible endpoints)
    """

    def __init__(
        self,
        client: Any,
        bucket: str,
        region: str,
        public_base_url: str | None = None,
    ):
        self._client = client
        self.bucket = bucket
        self.region = region
        self._base_url = (
            public_base_url.rstrip("/")
            if public_base_url
            else f"https://{bucket}.s3.{region}.amazonaws.com"
        )

    def object_url(self, key: str) -> str:
        """Permanent (non-signed) URL of an object."""
        return f"{self._base_url}/{quote(key)}"

    def key_from_url(self, url: str) -> str | None:
        """Recover the object key from a URL built by ``object_url``."""
        prefix = self._base_url + "/"
        if not url.startswith(prefix):
            return None
        return unquote(url[len(prefix) :].split("?", 1)[0]) or None

    async def _call(self, operation: str, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Storage {operation} failed: {e}")
            raise StorageUnavailableError() from e

    async def create_upload_target(
        self,
        key: str,
        content_type: str,
        size: int,
        ttl_seconds: int = DEFAULT_URL_TTL_SECONDS,
    ) -> UploadTarget:
        """
        Issue a pre-signed PUT URL for a direct browser upload.

        The declared size is validated here and re-validated on the real
        bytes by ``fallback_upload``.

        Raises:
            FileValidationError: Before any storage call, on bad type/size
            StorageUnavailableError: If the URL cannot be signed
        """
        validate_upload(content_type, size)

        upload_url = await self._call(
            "presign_put",
            self._client.generate_presigned_url,
            "put_object",
            Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
            ExpiresIn=ttl_seconds,
        )

        logger.info(f"Issued pre-signed upload URL for {key} (ttl={ttl_seconds}s)")

        return UploadTarget(
            upload_url=upload_url,
            file_url=self.object_url(key),
            key=key,
            content_type=content_type,
            expires_at=datetime.now(UTC) + timedelta(seconds=ttl_seconds),
        )

    async def fallback_upload(self, key: str, content_type: str, data: bytes) -> StoredObject:
        """
        Upload bytes from the server when the direct PUT failed.

        Writing the same key again overwrites the object, so retries are safe.

        Raises:
            FileValidationError: On bad type/size of the actual bytes
            StorageUnavailableError: If the upload fails
        """
        validate_upload(content_type, len(data))

        await self._call(
            "put_object",
            self._client.put_object,
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
            ACL="private",
        )

        logger.info(f"Server-side upload stored {key} ({len(data)} bytes)")

        return StoredObject(
            key=key,
            file_url=self.object_url(key),
            content_type=content_type,
            size=len(data),
        )

    async def create_view_target(
        self,
        key: str,
        ttl_seconds: int = DEFAULT_URL_TTL_SECONDS,
        force_download: bool = False,
        filename: str | None = None,
    ) -> ViewTarget:
        """
        Issue a pre-signed GET URL.

        ``force_download=False`` is used for in-browser preview; ``True``
        adds an attachment content-disposition for the download flow.

        Raises:
            StorageUnavailableError: If the URL cannot be signed
        """
        disposition = _content_disposition(force_download, filename)

        url = await self._call(
            "presign_get",
            self._client.generate_presigned_url,
            "get_object",
            Params={
                "Bucket": self.bucket,
                "Key": key,
                "ResponseContentDisposition": disposition,
            },
            ExpiresIn=ttl_seconds,
        )

        return ViewTarget(
            url=url,
            expires_at=datetime.now(UTC) + timedelta(seconds=ttl_seconds),
            disposition=disposition,
        )


def create_storage_gateway(settings: Settings) -> ObjectStorageGateway:
    """Build the gateway from settings. Called once by the application lifespan."""
    client = boto3.client(
        "s3",
        region_name=settings.aws_region,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        endpoint_url=settings.s3_endpoint_url,
        config=BotoConfig(signature_version="s3v4"),
    )

    public_base_url = (
        f"{settings.s3_endpoint_url.rstrip('/')}/{settings.aws_s3_bucket}"
        if settings.s3_endpoint_url
        else None
    )

    return ObjectStorageGateway(
        client=client,
        bucket=settings.aws_s3_bucket,
        region=settings.aws_region,
        public_base_url=public_base_url,
    )


def get_storage(request: Request) -> ObjectStorageGateway:
    """
    FastAPI dependency returning the gateway created in the lifespan.

    Tests override this dependency with a fake gateway.
    """
    return request.app.state.storage
