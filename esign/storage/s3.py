"""S3-compatible document storage (AWS S3, Cloudflare R2, MinIO)."""

import logging
import mimetypes
import uuid
from typing import Any, Dict, Iterator, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from esign.core.errors import NotFound, StorageError
from esign.storage.base import DEFAULT_CHUNK_SIZE, DocumentStorage, StoredObject, join_folder

logger = logging.getLogger(__name__)

_MISSING_KEY_CODES = {"NoSuchKey", "404", "NotFound"}


class S3DocumentStorage(DocumentStorage):
    """Folders are key prefixes inside one bucket; a ref is the object key."""

    backend_name = "s3"

    def __init__(
        self,
        bucket: str,
        endpoint_url: Optional[str] = None,
        region: str = "auto",
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client: Any = None,
    ):
        if not bucket:
            raise StorageError("STORAGE_BUCKET is not configured")
        self.bucket = bucket
        # signature_version='s3v4' is required by R2 and presigned URLs
        self.client = client or boto3.client(
            service_name="s3",
            endpoint_url=endpoint_url or None,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(signature_version="s3v4", retries={"max_attempts": 3, "mode": "standard"}),
            region_name=region,
        )

    def _fail(self, action: str, error: Exception) -> StorageError:
        code = ""
        if isinstance(error, ClientError):
            code = error.response.get("Error", {}).get("Code", "")
        logger.error(
            f"Storage {action} failed",
            extra={"backend": self.backend_name, "error_type": type(error).__name__, "code": code},
        )
        return StorageError(f"Storage {action} failed")

    def list_pdfs(self, folder: str) -> List[StoredObject]:
        prefix = join_folder(folder)
        prefix = f"{prefix}/" if prefix else ""
        objects: List[StoredObject] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix, Delimiter="/"):
                for item in page.get("Contents", []):
                    key = item["Key"]
                    name = key[len(prefix):]
                    if not name.lower().endswith(".pdf"):
                        continue
                    objects.append(
                        StoredObject(
                            ref=key,
                            name=name,
                            modified=item.get("LastModified"),
                            size=item.get("Size"),
                            content_type="application/pdf",
                        )
                    )
        except (ClientError, BotoCoreError) as e:
            raise self._fail("listing", e) from e

        objects.sort(key=lambda o: o.modified.timestamp() if o.modified else 0.0, reverse=True)
        return objects

    def _get_object(self, ref: str) -> Dict[str, Any]:
        try:
            return self.client.get_object(Bucket=self.bucket, Key=ref)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code", "") in _MISSING_KEY_CODES:
                raise NotFound("Stored document not found") from e
            raise self._fail("download", e) from e
        except BotoCoreError as e:
            raise self._fail("download", e) from e

    def download(self, ref: str) -> bytes:
        response = self._get_object(ref)
        try:
            return response["Body"].read()
        except (ClientError, BotoCoreError) as e:
            raise self._fail("download", e) from e

    def iter_download(self, ref: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        # Fetch eagerly so a missing object raises before streaming starts
        body = self._get_object(ref)["Body"]
        return self._stream(body, chunk_size)

    @staticmethod
    def _stream(body: Any, chunk_size: int) -> Iterator[bytes]:
        try:
            for chunk in body.iter_chunks(chunk_size=chunk_size):
                yield chunk
        finally:
            body.close()

    def upload(self, data: bytes, name: str, content_type: str, folder: str) -> StoredObject:
        key = join_folder(folder, name)
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or mimetypes.guess_type(name)[0] or "application/octet-stream",
            )
        except (ClientError, BotoCoreError) as e:
            raise self._fail("upload", e) from e

        logger.info("Stored document", extra={"backend": self.backend_name, "object": key, "size": len(data)})
        return StoredObject(ref=key, name=name, size=len(data), content_type=content_type)

    def ensure_folder(self, parent: str, name: str) -> str:
        # Prefixes exist implicitly once an object is written under them
        return join_folder(parent, name)

    def check(self, folder: str, write_probe: bool = False) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "backend": self.backend_name,
            "bucket": self.bucket,
            "folder": join_folder(folder),
            "reachable": False,
            "writable": None,
            "error": None,
        }
        try:
            self.client.head_bucket(Bucket=self.bucket)
            result["reachable"] = True
            if write_probe:
                key = join_folder(folder, f"esign-check-{uuid.uuid4().hex}.txt")
                self.client.put_object(
                    Bucket=self.bucket, Key=key, Body=b"esign storage check\n", ContentType="text/plain"
                )
                self.client.delete_object(Bucket=self.bucket, Key=key)
                result["writable"] = True
        except (ClientError, BotoCoreError) as e:
            result["error"] = type(e).__name__
            if result["reachable"]:
                result["writable"] = False
        return result
