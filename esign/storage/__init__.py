"""Document storage backends"""

from esign.core.config import Settings
from esign.storage.base import DocumentStorage, StoredObject
from esign.storage.local import LocalDocumentStorage
from esign.storage.s3 import S3DocumentStorage


def create_storage(settings: Settings) -> DocumentStorage:
    """Build the backend selected by STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "local":
        return LocalDocumentStorage(settings.STORAGE_LOCAL_ROOT)
    return S3DocumentStorage(
        bucket=settings.STORAGE_BUCKET,
        endpoint_url=settings.STORAGE_ENDPOINT_URL,
        region=settings.STORAGE_REGION,
        access_key_id=settings.STORAGE_ACCESS_KEY_ID,
        secret_access_key=settings.STORAGE_SECRET_ACCESS_KEY,
    )


__all__ = [
    "DocumentStorage",
    "LocalDocumentStorage",
    "S3DocumentStorage",
    "StoredObject",
    "create_storage",
]
