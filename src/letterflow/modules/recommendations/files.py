"""
Letter File Storage

Letter-specific layer over the object storage gateway: object key
layout, upload paths for recipients and view/download URLs.

Object keys look like ``recommendations/{request_id}/{random}.{ext}``.
Storage and validation failures are re-raised as recommendation service
errors so routers handle them like every other service error.
"""

import contextlib
import logging
import uuid
from collections.abc import Iterator
from pathlib import PurePosixPath

from letterflow.core.config import settings
from letterflow.core.storage import (
    ALLOWED_LETTER_CONTENT_TYPES,
    FileValidationError,
    ObjectStorageGateway,
    StoredObject,
    UploadTarget,
    ViewTarget,
)
from letterflow.core.storage import StorageUnavailableError as GatewayUnavailableError
from letterflow.modules.recommendations.errors import (
    LetterNotFoundError,
    StorageUnavailableError,
    ValidationFailedError,
)
from letterflow.modules.recommendations.models import RecommendationLetter, RecommendationRequest

logger = logging.getLogger(__name__)

KEY_PREFIX = "recommendations"


@contextlib.contextmanager
def _storage_errors() -> Iterator[None]:
    try:
        yield
    except FileValidationError as e:
        raise ValidationFailedError(e.message, field=e.field) from e
    except GatewayUnavailableError as e:
        raise StorageUnavailableError(retry_after_seconds=e.retry_after_seconds) from e


def request_key_prefix(request_id: uuid.UUID) -> str:
    return f"{KEY_PREFIX}/{request_id}/"


def build_letter_key(request_id: uuid.UUID, file_name: str, content_type: str | None = None) -> str:
    """
    A fresh object key for a letter file.

    The extension comes from the content type when it is an allowed one,
    otherwise from the original file name. The file name itself is not
    part of the key.
    """
    extension = ALLOWED_LETTER_CONTENT_TYPES.get(content_type or "")
    if extension is None:
        extension = PurePosixPath(file_name).suffix.lstrip(".").lower() or "bin"
    return f"{request_key_prefix(request_id)}{uuid.uuid4().hex}.{extension}"


async def create_letter_upload(
    storage: ObjectStorageGateway,
    request: RecommendationRequest,
    file_name: str,
    content_type: str,
    file_size: int,
) -> UploadTarget:
    """
    Pre-signed PUT target for a recipient's letter file.

    Raises:
        ValidationFailedError: Bad type or size, before storage is contacted
        StorageUnavailableError: The URL could not be signed
    """
    key = build_letter_key(request.id, file_name, content_type)
    with _storage_errors():
        return await storage.create_upload_target(
            key=key,
            content_type=content_type,
            size=file_size,
            ttl_seconds=settings.upload_url_ttl_seconds,
        )


async def upload_letter_fallback(
    storage: ObjectStorageGateway,
    request: RecommendationRequest,
    file_name: str,
    content_type: str,
    data: bytes,
    key: str | None = None,
) -> StoredObject:
    """
    Server-side upload used when the browser's direct PUT failed.

    Passing the key from an earlier ``create_letter_upload`` (or an earlier
    fallback attempt) overwrites that object instead of creating a new one.

    Raises:
        ValidationFailedError: Bad type or size, or a key outside this request
        StorageUnavailableError: The upload failed
    """
    if key is None:
        key = build_letter_key(request.id, file_name, content_type)
    elif not key.startswith(request_key_prefix(request.id)) or ".." in key:
        raise ValidationFailedError("Upload key does not belong to this request", field="key")

    with _storage_errors():
        return await storage.fallback_upload(key=key, content_type=content_type, data=data)


def letter_file_key(storage: ObjectStorageGateway, letter: RecommendationLetter) -> str | None:
    """Object key of a letter's file, recovered from its URL for older rows."""
    if letter.file_key:
        return letter.file_key
    if letter.file_url:
        return storage.key_from_url(letter.file_url)
    return None


async def letter_view_target(
    storage: ObjectStorageGateway,
    letter: RecommendationLetter,
    force_download: bool = False,
) -> ViewTarget:
    """
    Pre-signed GET URL for a letter's file.

    Raises:
        LetterNotFoundError: The letter has no stored file
        StorageUnavailableError: The URL could not be signed
    """
    key = letter_file_key(storage, letter)
    if key is None:
        raise LetterNotFoundError("This letter has no uploaded file.")

    with _storage_errors():
        return await storage.create_view_target(
            key=key,
            ttl_seconds=settings.view_url_ttl_seconds,
            force_download=force_download,
            filename=letter.file_name,
        )
