"""
Unit tests for the object storage service.  The boto3 client is replaced
with a ``MagicMock``; no network calls are made.
"""

import uuid
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from truelocal.core.config import settings
from truelocal.services import storageService
from truelocal.services.storageService import (
    InvalidFileError,
    StorageError,
    avatar_key,
    delete_service_images,
    file_extension,
    service_image_key,
    upload_avatar,
    upload_service_image,
)

pytestmark = pytest.mark.asyncio


@pytest.fixture
def s3_client():
    client = MagicMock()
    with patch.object(storageService, "get_storage_client", return_value=client):
        yield client


class TestKeys:

    async def test_extension_is_lowercased(self):
        assert file_extension("Photo.JPG") == "jpg"

    async def test_missing_extension_rejected(self):
        with pytest.raises(InvalidFileError):
            file_extension("README")

    async def test_key_layout(self):
        user = uuid.UUID("aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa")
        service = uuid.UUID("bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb")
        assert avatar_key(user, "me.png") == f"{user}/avatar.png"
        assert service_image_key(user, service, 2, "a.webp") == f"{user}/{service}/image-2.webp"


class TestUploads:

    async def test_avatar_upload_returns_public_url(self, s3_client):
        user = uuid.uuid4()
        url = await upload_avatar(user, "me.png", b"\x89PNG", "image/png")

        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Bucket"] == settings.avatar_bucket
        assert kwargs["Key"] == f"{user}/avatar.png"
        assert kwargs["ContentType"] == "image/png"
        assert url.endswith(f"/{settings.avatar_bucket}/{user}/avatar.png")

    async def test_empty_file_rejected_before_upload(self, s3_client):
        with pytest.raises(InvalidFileError):
            await upload_service_image(uuid.uuid4(), uuid.uuid4(), 0, "a.jpg", b"", "image/jpeg")
        s3_client.put_object.assert_not_called()

    async def test_client_error_becomes_storage_error(self, s3_client):
        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject",
        )
        with pytest.raises(StorageError):
            await upload_service_image(uuid.uuid4(), uuid.uuid4(), 0, "a.jpg", b"x", "image/jpeg")


class TestDeleteImages:

    async def test_deletes_everything_under_listing_prefix(self, s3_client):
        provider, service = uuid.uuid4(), uuid.uuid4()
        s3_client.list_objects_v2.return_value = {
            "Contents": [
                {"Key": f"{provider}/{service}/image-0.jpg"},
                {"Key": f"{provider}/{service}/image-1.jpg"},
            ],
        }
        removed = await delete_service_images(provider, service)

        assert removed == 2
        assert s3_client.list_objects_v2.call_args.kwargs["Prefix"] == f"{provider}/{service}/"
        objects = s3_client.delete_objects.call_args.kwargs["Delete"]["Objects"]
        assert len(objects) == 2

    async def test_nothing_stored(self, s3_client):
        s3_client.list_objects_v2.return_value = {}
        assert await delete_service_images(uuid.uuid4(), uuid.uuid4()) == 0
        s3_client.delete_objects.assert_not_called()
