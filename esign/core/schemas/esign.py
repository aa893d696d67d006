"""Signing workflow request and response schemas"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class DocType(str, Enum):
    """Contract kinds a recipient can be asked to sign"""

    ICA = "ICA"
    NDA = "NDA"


class AccessParams(BaseModel):
    """The recipient's {email, name, secret, docType} shape, shared by every endpoint"""

    email: EmailStr
    name: str = Field(..., min_length=1, max_length=200)
    secret: str = Field(..., min_length=8, max_length=256)
    docType: DocType

    # Query parameters forwarded to webhooks, never persisted
    query: Dict[str, str] = Field(default_factory=dict, exclude=True)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("docType", mode="before")
    @classmethod
    def normalize_doc_type(cls, v: Any) -> Any:
        if v is None:
            return ""
        return str(v).strip().upper()

    @property
    def doc_type(self) -> str:
        return self.docType.value


class AuthorizeResponse(BaseModel):
    ok: bool
    reason: Optional[str] = None


class RecordRef(BaseModel):
    """Body carrying only a record id"""

    model_config = ConfigDict(populate_by_name=True)

    record_id: str = Field(..., alias="recordId", min_length=1)


class ComposeRequest(BaseModel):
    """Where to place the signature, as fractions of the page from its top-left corner"""

    model_config = ConfigDict(populate_by_name=True)

    record_id: str = Field(..., alias="recordId", min_length=1)
    page: int = Field(..., ge=1, description="1-based page index")
    x_pct: float = Field(..., alias="xPct", ge=0, le=1)
    y_pct: float = Field(..., alias="yPct", ge=0, le=1)
    width_pct: float = Field(..., alias="widthPct", ge=0.01, le=1)


class InitSessionResponse(BaseModel):
    sessionId: str
    recordId: str


class OpenSessionResponse(BaseModel):
    ok: bool = True
    status: str
    templateName: Optional[str] = None


class OkResponse(BaseModel):
    ok: bool = True
    status: Optional[str] = None


class ComposeResponse(BaseModel):
    signedRef: str
    signedAt: datetime


class SigningSessionOut(BaseModel):
    """Public view of a signing record"""

    recordId: str
    sessionId: str
    status: str
    docType: str
    templateName: Optional[str] = None
    hasTemplate: bool
    signatureReady: bool
    signedRef: Optional[str] = None
    createdAt: datetime
    signedAt: Optional[datetime] = None
