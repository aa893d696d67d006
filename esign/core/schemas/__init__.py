"""Pydantic schemas for request and response validation"""

from esign.core.schemas.esign import (
    AccessParams,
    AuthorizeResponse,
    ComposeRequest,
    ComposeResponse,
    DocType,
    InitSessionResponse,
    OkResponse,
    OpenSessionResponse,
    RecordRef,
    SigningSessionOut,
)

__all__ = [
    "AccessParams",
    "AuthorizeResponse",
    "ComposeRequest",
    "ComposeResponse",
    "DocType",
    "InitSessionResponse",
    "OkResponse",
    "OpenSessionResponse",
    "RecordRef",
    "SigningSessionOut",
]
