import secrets
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from esign.core.errors import InvalidStatusTransition
from esign.db.base import Base, utcnow


class SigningStatus(str, Enum):
    """Workflow milestones of a signing session"""

    INITIALIZED = "initialized"
    OPENED = "opened"
    DOCUMENT_UPLOADED = "document_uploaded"
    SIGNATURE_UPLOADED = "signature_uploaded"
    SIGNED = "signed"


# Re-uploading a signature keeps the record in signature_uploaded
ALLOWED_TRANSITIONS: Dict[SigningStatus, FrozenSet[SigningStatus]] = {
    SigningStatus.INITIALIZED: frozenset({SigningStatus.OPENED}),
    SigningStatus.OPENED: frozenset({SigningStatus.DOCUMENT_UPLOADED}),
    SigningStatus.DOCUMENT_UPLOADED: frozenset({SigningStatus.SIGNATURE_UPLOADED}),
    SigningStatus.SIGNATURE_UPLOADED: frozenset(
        {SigningStatus.SIGNATURE_UPLOADED, SigningStatus.SIGNED}
    ),
    SigningStatus.SIGNED: frozenset(),
}


def can_transition(current: SigningStatus, target: SigningStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def new_session_id() -> str:
    return secrets.token_urlsafe(16)


class SigningSession(Base):
    """One recipient's pass through the signing workflow"""

    # Base provides: id (the public recordId), created_at, updated_at
    session_id: Mapped[str] = mapped_column(
        String(64), unique=True, index=True, nullable=False, default=new_session_id
    )
    user_email: Mapped[str] = mapped_column(String(320), index=True, nullable=False)
    user_display_name: Mapped[str] = mapped_column(String(200), nullable=False)
    doc_type: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=SigningStatus.INITIALIZED.value
    )
    template_ref: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    template_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    signed_ref: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    signature_ref: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    signed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def record_id(self) -> str:
        return str(self.id)

    @property
    def current_status(self) -> SigningStatus:
        return SigningStatus(self.status)

    @property
    def user(self) -> Dict[str, str]:
        return {"email": self.user_email, "displayName": self.user_display_name}

    def advance_to(self, target: SigningStatus) -> None:
        """Move forward along the transition table or raise InvalidStatusTransition."""
        current = self.current_status
        if not can_transition(current, target):
            raise InvalidStatusTransition(current.value, target.value)
        self.status = target.value

    def attach_template(self, template_ref: str, template_name: str) -> None:
        self.advance_to(SigningStatus.DOCUMENT_UPLOADED)
        self.template_ref = template_ref
        self.template_name = template_name

    def mark_signed(self, signed_ref: str, signature_ref: Optional[str] = None) -> None:
        """Record the durable signed document; the staged template reference goes with it."""
        self.advance_to(SigningStatus.SIGNED)
        self.signed_ref = signed_ref
        self.signature_ref = signature_ref
        self.signed_at = utcnow()
        self.template_ref = None

    def __repr__(self) -> str:  # pragma: no cover - debug helper
        return f"<SigningSession(id={self.id!r}, status={self.status!r})>"
