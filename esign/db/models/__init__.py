"""Database models"""

from esign.db.models.signing_session import SigningSession, SigningStatus
from esign.db.models.staged_document import StagedDocument

__all__ = [
    "SigningSession",
    "SigningStatus",
    "StagedDocument",
]
