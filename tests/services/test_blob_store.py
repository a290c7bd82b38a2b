"""
Tests del almacén de archivos S3.

Se usa un cliente falso que imita la API de boto3: registra las
llamadas y puede lanzar ClientError / BotoCoreError a demanda.
"""

from typing import Any

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from crm.config import Settings
from crm.services.blob_store import InMemoryBlobStore, S3BlobStore, build_blob_store
from crm.services.errors import StorageError

PATH = "leads/lead-1/dni-abc.pdf"


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class StubS3Client:
    """Cliente S3 mínimo con fallos configurables."""

    def __init__(self, put_error: Exception | None = None, delete_error: Exception | None = None) -> None:
        self.put_error = put_error
        self.delete_error = delete_error
        self.objects: dict[str, bytes] = {}

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str) -> dict[str, Any]:
        if self.put_error:
            raise self.put_error
        self.objects[Key] = Body
        return {}

    def delete_object(self, Bucket: str, Key: str) -> dict[str, Any]:
        if self.delete_error:
            raise self.delete_error
        self.objects.pop(Key, None)
        return {}

    def generate_presigned_url(self, operation: str, Params: dict, ExpiresIn: int) -> str:
        return f"https://signed.example/{Params['Key']}?expires={ExpiresIn}"


def make_settings(**overrides: Any) -> Settings:
    values = {"S3_BUCKET_NAME": "crm-docs", "S3_PUBLIC_URL": "https://cdn.intercapital.com/"}
    values.update(overrides)
    return Settings(**values)


class TestS3Put:

    async def test_put_returns_public_url(self) -> None:
        client = StubS3Client()
        store = S3BlobStore(make_settings(), client=client)

        url = await store.put(PATH, b"%PDF")

        assert url == f"https://cdn.intercapital.com/{PATH}"
        assert client.objects[PATH] == b"%PDF"

    async def test_put_without_public_url_returns_presigned(self) -> None:
        store = S3BlobStore(make_settings(S3_PUBLIC_URL=None), client=StubS3Client())
        url = await store.put(PATH, b"%PDF")
        assert url.startswith(f"https://signed.example/{PATH}")

    async def test_put_client_error_returns_placeholder(self) -> None:
        """Si la subida falla no se corta el flujo: URL de marcador."""
        settings = make_settings()
        client = StubS3Client(put_error=client_error("AccessDenied", "PutObject"))
        store = S3BlobStore(settings, client=client)

        url = await store.put(PATH, b"%PDF")

        assert url == f"{settings.BLOB_PLACEHOLDER_URL}/{PATH}"
        assert PATH not in client.objects

    async def test_put_connection_error_returns_placeholder(self) -> None:
        settings = make_settings()
        client = StubS3Client(put_error=EndpointConnectionError(endpoint_url="https://s3.local"))
        store = S3BlobStore(settings, client=client)

        url = await store.put(PATH, b"%PDF")

        assert url == f"{settings.BLOB_PLACEHOLDER_URL}/{PATH}"


class TestS3Delete:

    async def test_delete_removes_object(self) -> None:
        client = StubS3Client()
        client.objects[PATH] = b"%PDF"
        store = S3BlobStore(make_settings(), client=client)

        await store.delete(PATH)

        assert PATH not in client.objects

    async def test_delete_missing_key_is_ignored(self) -> None:
        """NoSuchKey cuenta como ya eliminado."""
        client = StubS3Client(delete_error=client_error("NoSuchKey", "DeleteObject"))
        store = S3BlobStore(make_settings(), client=client)

        await store.delete(PATH)

    async def test_delete_other_error_raises_storage_error(self) -> None:
        client = StubS3Client(delete_error=client_error("AccessDenied", "DeleteObject"))
        store = S3BlobStore(make_settings(), client=client)

        with pytest.raises(StorageError):
            await store.delete(PATH)


class TestBuildBlobStore:

    def test_without_bucket_uses_memory(self) -> None:
        assert isinstance(build_blob_store(make_settings(S3_BUCKET_NAME=None)), InMemoryBlobStore)
