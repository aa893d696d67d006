"""Template selection and signed-output naming."""

import logging
from datetime import datetime, timezone
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo

from esign.core.config import Settings
from esign.core.errors import StorageError
from esign.core.security import sanitize_filename
from esign.storage.base import DocumentStorage, StoredObject

logger = logging.getLogger(__name__)


class SignedFileNames(NamedTuple):
    folder: str
    signed_pdf: str
    signature_png: str


def pick_template(storage: DocumentStorage, doc_type: str, settings: Settings) -> StoredObject:
    """
    Choose the template PDF for a document type.

    Looks in the per-type folder when one is configured, else the shared
    folder. Prefers the newest PDF whose name contains the document type
    (case-insensitive), falling back to the newest PDF.

    Raises:
        StorageError: If no folder is configured or it holds no PDF
    """
    folder = settings.template_folder_for(doc_type)
    if not folder:
        raise StorageError(f"Template folder missing for {doc_type}")

    candidates = storage.list_pdfs(folder)
    if not candidates:
        raise StorageError("No PDF found in template folder")

    token = doc_type.lower()
    preferred = next((c for c in candidates if token in c.name.lower()), None)
    picked = preferred or candidates[0]
    logger.info(
        "Template selected",
        extra={"doc_type": doc_type, "template": picked.name, "matched_doc_type": preferred is not None},
    )
    return picked


def signed_file_names(
    display_name: str,
    tz_name: str = "Asia/Kolkata",
    now: Optional[datetime] = None,
) -> SignedFileNames:
    """Folder and file names for a signer's output, dated dd-mm-yyyy in ``tz_name``."""
    name_safe = sanitize_filename(display_name, fallback="user")
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    stamp = moment.astimezone(ZoneInfo(tz_name)).strftime("%d-%m-%Y")
    return SignedFileNames(
        folder=name_safe,
        signed_pdf=f"{name_safe}_{stamp}_signed.pdf",
        signature_png=f"{name_safe}_{stamp}_signature.png",
    )
