"""
Signing workflow orchestration.

Each method loads the caller's record, checks the requested step against
the status transition table, does the work, and commits. Storage writes
always happen before the record is flipped to ``signed`` so a failed
compose leaves the record where it was and can simply be retried.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Iterator, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from esign.core.config import Settings
from esign.core.errors import (
    BadSignature,
    BadState,
    InvalidStatusTransition,
    NoFile,
    NotFound,
    PayloadTooLarge,
    SignatureNotReady,
    UnsupportedMedia,
)
from esign.core.schemas.esign import AccessParams
from esign.db.models.signing_session import SigningSession, SigningStatus, can_transition, new_session_id
from esign.imaging.pdf_compositor import PlacementRequest, page_count, stamp
from esign.imaging.signature_filter import prepare_signature
from esign.services.signature_cache import EphemeralSignatureCache
from esign.services.staging import StagedDocumentStore
from esign.storage.base import DocumentStorage
from esign.storage.templates import pick_template, signed_file_names

logger = logging.getLogger(__name__)

PDF_CONTENT_TYPE = "application/pdf"
SIGNATURE_CONTENT_TYPES = frozenset({"image/png", "image/jpeg", "image/jpg", "image/webp"})


@dataclass
class SignedResult:
    record: SigningSession
    signed_ref: str
    signature_ref: str


class SigningWorkflow:
    """Per-request facade over the record store, staging area, storage and signature cache."""

    def __init__(
        self,
        db: Session,
        storage: DocumentStorage,
        cache: EphemeralSignatureCache,
        settings: Settings,
        staging: Optional[StagedDocumentStore] = None,
    ):
        self.db = db
        self.storage = storage
        self.cache = cache
        self.settings = settings
        self.staging = staging or StagedDocumentStore(
            db,
            encrypt=settings.ENCRYPT_STAGED_DOCUMENTS,
            ttl=timedelta(hours=settings.STAGED_DOCUMENT_TTL_HOURS),
        )

    # -- helpers -------------------------------------------------------

    def _load(self, record_id: str, access: AccessParams) -> SigningSession:
        """The record, provided it belongs to the caller; anything else is NotFound."""
        try:
            pk = int(record_id)
        except (TypeError, ValueError):
            raise NotFound("Record not found") from None

        record = self.db.get(SigningSession, pk)
        if record is None or record.user_email.lower() != str(access.email).lower():
            raise NotFound("Record not found")
        return record

    @staticmethod
    def _require_transition(record: SigningSession, target: SigningStatus) -> None:
        if not can_transition(record.current_status, target):
            raise InvalidStatusTransition(record.status, target.value)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to save signing session")
            raise

    def _check_size(self, data: bytes) -> None:
        if len(data) > self.settings.MAX_UPLOAD_BYTES:
            raise PayloadTooLarge()

    # -- operations ----------------------------------------------------

    def init_session(self, access: AccessParams) -> SigningSession:
        record = SigningSession(
            session_id=new_session_id(),
            user_email=str(access.email),
            user_display_name=access.name,
            doc_type=access.doc_type,
            status=SigningStatus.INITIALIZED.value,
        )
        self.db.add(record)
        self._commit()
        self.db.refresh(record)
        logger.info("Signing session created", extra={"record_id": record.record_id, "doc_type": record.doc_type})
        return record

    def open_session(self, record_id: str, access: AccessParams) -> SigningSession:
        """Mark the record opened and, when auto-staging is on, stage its template."""
        record = self._load(record_id, access)
        self._require_transition(record, SigningStatus.OPENED)

        template_bytes: Optional[bytes] = None
        template_name = ""
        if self.settings.AUTO_STAGE_TEMPLATE:
            # Fetch before touching the record so a storage failure leaves it retryable
            template = pick_template(self.storage, record.doc_type, self.settings)
            template_bytes = self.storage.download(template.ref)
            page_count(template_bytes)
            template_name = template.name

        record.advance_to(SigningStatus.OPENED)
        if template_bytes is not None:
            key = self.staging.put(template_bytes, template_name, PDF_CONTENT_TYPE)
            record.attach_template(key, template_name)
        self._commit()

        logger.info(
            "Signing session opened",
            extra={"record_id": record.record_id, "status": record.status, "template": template_name or None},
        )
        return record

    def upload_document(
        self,
        record_id: str,
        access: AccessParams,
        data: bytes,
        content_type: Optional[str],
        filename: Optional[str] = None,
    ) -> SigningSession:
        """Stage a caller-supplied template instead of one picked from storage."""
        record = self._load(record_id, access)
        if not data:
            raise NoFile("No PDF uploaded")
        if (content_type or "").lower() != PDF_CONTENT_TYPE:
            raise UnsupportedMedia("Only PDF")
        self._check_size(data)
        self._require_transition(record, SigningStatus.DOCUMENT_UPLOADED)
        page_count(data)

        name = filename or "document.pdf"
        key = self.staging.put(data, name, PDF_CONTENT_TYPE)
        record.attach_template(key, name)
        self._commit()

        logger.info("Template document uploaded", extra={"record_id": record.record_id, "size": len(data)})
        return record

    def upload_signature(
        self,
        record_id: str,
        access: AccessParams,
        data: bytes,
        content_type: Optional[str],
    ) -> SigningSession:
        """Clean up the signature image and hold it in memory until compose."""
        record = self._load(record_id, access)
        if not data:
            raise NoFile("No signature uploaded")
        if (content_type or "").lower() not in SIGNATURE_CONTENT_TYPES:
            raise UnsupportedMedia("PNG/JPG/WEBP only")
        self._check_size(data)
        self._require_transition(record, SigningStatus.SIGNATURE_UPLOADED)

        png = prepare_signature(data, self.settings.SIGNATURE_MAX_WIDTH)
        if not png:
            raise BadSignature("Signature image could not be processed")

        self.cache.put(record.record_id, png)
        record.advance_to(SigningStatus.SIGNATURE_UPLOADED)
        self._commit()

        logger.info("Signature uploaded", extra={"record_id": record.record_id, "size": len(png)})
        return record

    def compose(self, record_id: str, access: AccessParams, placement: PlacementRequest) -> SignedResult:
        """
        Stamp the cached signature onto the staged template and store the result.

        Raises:
            BadState: No staged template
            SignatureNotReady: The signature expired, was consumed, or never arrived
            MalformedDocument, InvalidPlacement: From the compositor
            StorageError: Upload failed; the record is unchanged
        """
        record = self._load(record_id, access)
        if record.current_status is SigningStatus.SIGNED:
            raise BadState("Document already signed")
        if not record.template_ref:
            raise BadState("Template not ready")

        signature = self.cache.get(record.record_id)
        if not signature:
            raise SignatureNotReady()
        self._require_transition(record, SigningStatus.SIGNED)

        template = self.staging.get(record.template_ref)
        if not template:
            raise BadState("Template PDF missing")

        stamped = stamp(
            template,
            signature,
            placement,
            min_width=self.settings.MIN_SIGNATURE_WIDTH,
            policy=self.settings.PLACEMENT_POLICY,
        )

        names = signed_file_names(record.user_display_name, self.settings.SIGNED_TIMEZONE)
        folder = self.storage.ensure_folder(self.settings.SIGNED_FOLDER, names.folder)
        signed = self.storage.upload(stamped, names.signed_pdf, PDF_CONTENT_TYPE, folder)
        stored_signature = self.storage.upload(signature, names.signature_png, "image/png", folder)

        template_ref = record.template_ref
        record.mark_signed(signed.ref, stored_signature.ref)
        self.staging.delete(template_ref)
        self._commit()
        self.cache.delete(record.record_id)

        logger.info("Document signed", extra={"record_id": record.record_id, "page": placement.page})
        return SignedResult(record=record, signed_ref=signed.ref, signature_ref=stored_signature.ref)

    def staged_template(self, record_id: str, access: AccessParams) -> Tuple[bytes, str]:
        """Bytes and file name of the staged template, for the browser preview."""
        record = self._load(record_id, access)
        if not record.template_ref:
            raise NotFound("No staged template")
        data = self.staging.get(record.template_ref)
        if not data:
            raise NotFound("No staged template")
        return data, record.template_name or "template.pdf"

    def signed_document(self, record_id: str, access: AccessParams) -> Iterator[bytes]:
        record = self._load(record_id, access)
        if not record.signed_ref:
            raise NotFound("No signed PDF")
        return self.storage.iter_download(record.signed_ref)

    def describe(self, record_id: str, access: AccessParams) -> dict:
        record = self._load(record_id, access)
        return {
            "recordId": record.record_id,
            "sessionId": record.session_id,
            "status": record.status,
            "docType": record.doc_type,
            "templateName": record.template_name,
            "hasTemplate": bool(record.template_ref),
            "signatureReady": self.cache.get(record.record_id) is not None,
            "signedRef": record.signed_ref,
            "createdAt": record.created_at,
            "signedAt": record.signed_at,
        }
