"""
Almacenamiento de archivos de leads (DNI, PUHR, tasaciones...).

S3 compatible: Supabase Storage, Cloudflare R2, AWS S3, MinIO, etc.
Si la subida falla se devuelve una URL de marcador para no
bloquear el flujo de trabajo por una mala configuración.
"""

import asyncio
import logging
from abc import ABC, abstractmethod

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from crm.config import Settings
from crm.services.errors import StorageError

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """Interfaz del almacén de archivos."""

    @abstractmethod
    async def put(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        """Guarda el archivo y devuelve su URL."""
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Elimina el archivo. Si no existe no hace nada."""
        ...


class S3BlobStore(BlobStore):
    """Archivos en un bucket S3."""

    def __init__(self, settings: Settings, client=None) -> None:
        self.bucket = settings.S3_BUCKET_NAME
        self.public_url = (settings.S3_PUBLIC_URL or "").rstrip("/")
        self.placeholder_url = settings.BLOB_PLACEHOLDER_URL.rstrip("/")
        self._client = client or boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            region_name=settings.S3_REGION or "us-east-1",
            config=Config(signature_version="s3v4"),
        )

    def _url_for(self, path: str) -> str:
        if self.public_url:
            return f"{self.public_url}/{path}"
        return self._client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": path},
            ExpiresIn=3600,
        )

    async def put(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
            url = self._url_for(path)
        except (BotoCoreError, ClientError) as e:
            logger.warning("⚠️ Subida fallida (%s), se usa URL de marcador: %s", path, e)
            return f"{self.placeholder_url}/{path}"

        logger.info("Archivo subido (%d bytes): %s", len(data), path)
        return url

    async def delete(self, path: str) -> None:
        try:
            await asyncio.to_thread(self._client.delete_object, Bucket=self.bucket, Key=path)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404", "NotFound"):
                logger.info("Archivo ya eliminado: %s", path)
                return
            raise StorageError(f"Error eliminando archivo {path}: {e}") from e
        logger.info("✅ Archivo eliminado: %s", path)


class InMemoryBlobStore(BlobStore):
    """Archivos en memoria. Se usa si no hay bucket configurado."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}

    async def put(self, path: str, data: bytes, content_type: str = "application/pdf") -> str:
        self.files[path] = data
        return f"memory://{path}"

    async def delete(self, path: str) -> None:
        self.files.pop(path, None)


def build_blob_store(settings: Settings) -> BlobStore:
    """S3 si hay bucket configurado; si no, memoria."""
    if settings.S3_BUCKET_NAME:
        return S3BlobStore(settings)
    logger.warning("S3_BUCKET_NAME no configurado, archivos en memoria")
    return InMemoryBlobStore()
