"""
MinIO Object Storage Client
Storage for encrypted document bodies
"""

import io
from typing import Optional

from minio import Minio
from minio.error import MinioException

from docvault.core.config import settings
from docvault.core.exceptions import StorageException
from docvault.core.logging import get_logger

logger = get_logger(__name__)

# Global MinIO client
_client: Optional[Minio] = None


def get_minio_client() -> Minio:
    """Get MinIO client"""
    if _client is None:
        raise StorageException("MinIO client not initialized")
    return _client


async def init_minio() -> None:
    """Initialize MinIO client and create the document bucket"""
    global _client

    try:
        logger.info(f"Connecting to MinIO at {settings.MINIO_ENDPOINT}")

        # Parse endpoint
        endpoint = settings.MINIO_ENDPOINT
        if "://" in endpoint:
            endpoint = endpoint.split("://")[1]

        _client = Minio(
            endpoint,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_USE_SSL,
        )

        if not _client.bucket_exists(settings.STORAGE_BUCKET):
            _client.make_bucket(settings.STORAGE_BUCKET)
            logger.info(f"Created bucket: {settings.STORAGE_BUCKET}")
        else:
            logger.debug(f"Bucket exists: {settings.STORAGE_BUCKET}")

        logger.info("MinIO initialized successfully")

    except MinioException as e:
        logger.error(f"Failed to initialize MinIO: {e}")
        raise StorageException(
            message="Failed to initialize object storage",
            details={"error": str(e)},
        )


async def upload_file(
    bucket: str,
    object_name: str,
    data: bytes,
    content_type: str = "application/octet-stream",
) -> str:
    """Upload a file to MinIO"""
    client = get_minio_client()

    try:
        client.put_object(
            bucket,
            object_name,
            io.BytesIO(data),
            length=len(data),
            content_type=content_type,
        )
        logger.debug(f"Uploaded file: {bucket}/{object_name}")
        return object_name

    except MinioException as e:
        logger.error(f"Failed to upload file {bucket}/{object_name}: {e}")
        raise StorageException(
            message="Failed to upload file",
            details={"bucket": bucket, "object_name": object_name},
        )


async def download_file(bucket: str, object_name: str) -> bytes:
    """Download a file from MinIO"""
    client = get_minio_client()

    response = None
    try:
        response = client.get_object(bucket, object_name)
        data = response.read()
        logger.debug(f"Downloaded file: {bucket}/{object_name}")
        return data

    except MinioException as e:
        logger.error(f"Failed to download file {bucket}/{object_name}: {e}")
        raise StorageException(
            message="Failed to download file",
            details={"bucket": bucket, "object_name": object_name},
        )
    finally:
        if response is not None:
            response.close()
            response.release_conn()


async def delete_file(bucket: str, object_name: str) -> None:
    """Delete a file from MinIO"""
    client = get_minio_client()

    try:
        client.remove_object(bucket, object_name)
        logger.debug(f"Deleted file: {bucket}/{object_name}")

    except MinioException as e:
        logger.error(f"Failed to delete file {bucket}/{object_name}: {e}")
        raise StorageException(
            message="Failed to delete file",
            details={"bucket": bucket, "object_name": object_name},
        )
