"""
Object Storage Service
======================

Uploads avatars and listing photos to an S3-compatible bucket (Cloudflare
R2, MinIO or AWS S3) and builds their public URLs.

Key layout:
  - ``avatars/{user_id}/avatar.{ext}``                          (overwritten)
  - ``service-images/{provider_id}/{service_id}/image-{i}.{ext}``

boto3 is synchronous, so every call is pushed onto a worker thread with
``asyncio.to_thread`` to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from truelocal.core.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class StorageError(Exception):
    """Raised when an object storage call fails."""
    pass


class InvalidFileError(StorageError, ValueError):
    """Raised when an upload has no usable content or extension."""
    pass


@dataclass(frozen=True)
class UploadedFile:
    """An in-memory upload as received from a multipart form."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

_client: Any = None


def get_storage_client() -> Any:
    """Return a shared boto3 S3 client configured from settings."""
    global _client
    if _client is None:
        _client = boto3.client(
            "s3",
            endpoint_url=settings.storage_endpoint_url or None,
            aws_access_key_id=settings.storage_access_key_id or None,
            aws_secret_access_key=settings.storage_secret_access_key or None,
            config=Config(signature_version="s3v4"),
            region_name=settings.storage_region,
        )
    return _client


def file_extension(filename: str) -> str:
    """Lower-cased extension without the dot (``"photo.JPG"`` -> ``"jpg"``)."""
    if "." not in filename:
        raise InvalidFileError(f"File '{filename}' has no extension")
    ext = filename.rsplit(".", 1)[1].lower()
    if not ext.isalnum():
        raise InvalidFileError(f"File '{filename}' has an invalid extension")
    return ext


def public_url(bucket: str, key: str) -> str:
    base = settings.storage_public_base_url.rstrip("/")
    return f"{base}/{bucket}/{key}"


def avatar_key(user_id: uuid.UUID | str, filename: str) -> str:
    return f"{user_id}/avatar.{file_extension(filename)}"


def service_image_key(
    provider_id: uuid.UUID | str,
    service_id: uuid.UUID | str,
    index: int,
    filename: str,
) -> str:
    return f"{provider_id}/{service_id}/image-{index}.{file_extension(filename)}"


async def _put_object(bucket: str, key: str, content: bytes, content_type: str) -> None:
    client = get_storage_client()
    try:
        await asyncio.to_thread(
            client.put_object,
            Bucket=bucket,
            Key=key,
            Body=content,
            ContentType=content_type,
            CacheControl="max-age=3600",
        )
    except (ClientError, BotoCoreError) as exc:
        raise StorageError(f"Upload of '{bucket}/{key}' failed: {exc}") from exc


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def upload_avatar(
    user_id: uuid.UUID | str,
    filename: str,
    content: bytes,
    content_type: str,
) -> str:
    """Store (or replace) the user's avatar and return its public URL."""
    if not content:
        raise InvalidFileError("Avatar file is empty")
    bucket = settings.avatar_bucket
    key = avatar_key(user_id, filename)
    await _put_object(bucket, key, content, content_type)
    logger.info("Avatar uploaded: user=%s key=%s", user_id, key)
    return public_url(bucket, key)


async def upload_service_image(
    provider_id: uuid.UUID | str,
    service_id: uuid.UUID | str,
    index: int,
    filename: str,
    content: bytes,
    content_type: str,
) -> str:
    """Store one listing photo and return its public URL."""
    if not content:
        raise InvalidFileError(f"Image {index} is empty")
    bucket = settings.service_image_bucket
    key = service_image_key(provider_id, service_id, index, filename)
    await _put_object(bucket, key, content, content_type)
    logger.info("Service image uploaded: service=%s key=%s", service_id, key)
    return public_url(bucket, key)


async def delete_service_images(
    provider_id: uuid.UUID | str,
    service_id: uuid.UUID | str,
) -> int:
    """Delete every photo stored for a listing.  Returns the number removed."""
    client = get_storage_client()
    bucket = settings.service_image_bucket
    prefix = f"{provider_id}/{service_id}/"

    try:
        listing = await asyncio.to_thread(
            client.list_objects_v2, Bucket=bucket, Prefix=prefix,
        )
        keys = [{"Key": obj["Key"]} for obj in listing.get("Contents", [])]
        if not keys:
            return 0
        await asyncio.to_thread(
            client.delete_objects,
            Bucket=bucket,
            Delete={"Objects": keys, "Quiet": True},
        )
    except (ClientError, BotoCoreError) as exc:
        raise StorageError(f"Deleting '{bucket}/{prefix}' failed: {exc}") from exc

    logger.info("Deleted %d images for service=%s", len(keys), service_id)
    return len(keys)
