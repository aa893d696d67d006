"""Database-backed staging area for template documents.

A template is staged when a session opens (or a document is uploaded) and
removed once the signed document is stored. Rows are encrypted with the
application key when ENCRYPT_STAGED_DOCUMENTS is on. The store only adds
and flushes; the caller owns the transaction.
"""

import logging
import uuid
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from esign.core.utils.encryption import DecryptionError, DocumentEncryption, get_document_encryption
from esign.db.base import utcnow
from esign.db.models.staged_document import StagedDocument

logger = logging.getLogger(__name__)

KEY_PREFIX = "template:"


class StagedDocumentStore:
    def __init__(
        self,
        db: Session,
        encrypt: bool = True,
        ttl: Optional[timedelta] = timedelta(hours=24),
        encryption_factory: Callable[[], DocumentEncryption] = get_document_encryption,
    ):
        self.db = db
        self.encrypt = encrypt
        self.ttl = ttl
        self._encryption_factory = encryption_factory

    def _row(self, key: str) -> Optional[StagedDocument]:
        return self.db.scalar(select(StagedDocument).where(StagedDocument.key == key))

    def put(self, data: bytes, filename: str, content_type: str = "application/pdf") -> str:
        """Stage ``data`` and return its opaque key."""
        key = f"{KEY_PREFIX}{uuid.uuid4().hex}"
        payload = self._encryption_factory().encrypt(data) if self.encrypt else data
        row = StagedDocument(
            key=key,
            filename=filename,
            content_type=content_type,
            size=len(data),
            encrypted=self.encrypt,
            data=payload,
            expires_at=utcnow() + self.ttl if self.ttl else None,
        )
        self.db.add(row)
        self.db.flush()
        logger.debug("Document staged", extra={"key": key, "size": len(data), "encrypted": self.encrypt})
        return key

    def get(self, key: str) -> Optional[bytes]:
        """Plain bytes of a staged document, or None when it is gone or unreadable."""
        row = self._row(key)
        if row is None:
            return None
        if row.expires_at is not None and row.expires_at < utcnow():
            return None
        if not row.encrypted:
            return row.data
        try:
            return self._encryption_factory().decrypt(row.data)
        except DecryptionError:
            # Key rotated since staging; the session has to stage again
            return None

    def exists(self, key: str) -> bool:
        return self.db.scalar(select(StagedDocument.id).where(StagedDocument.key == key)) is not None

    def delete(self, key: str) -> None:
        self.db.execute(delete(StagedDocument).where(StagedDocument.key == key))
        self.db.flush()

    def purge_expired(self) -> int:
        """Drop staged documents past their expiry; returns the number removed."""
        result = self.db.execute(
            delete(StagedDocument).where(
                StagedDocument.expires_at.is_not(None), StagedDocument.expires_at < utcnow()
            )
        )
        self.db.flush()
        removed = result.rowcount or 0
        if removed:
            logger.info("Purged expired staged documents", extra={"count": removed})
        return removed
