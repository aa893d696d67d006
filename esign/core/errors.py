"""
Domain exceptions for the signing workflow.

Each exception carries the HTTP status and short error code used when it
reaches the API layer, so handlers can raise them without knowing about HTTP.
"""

from typing import Optional


class EsignError(Exception):
    """Base exception for the signing workflow."""

    status_code: int = 500
    error: str = "ServerError"
    default_message: str = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message}


class NotFound(EsignError):
    status_code = 404
    error = "NotFound"
    default_message = "Not found"


class Unauthorized(EsignError):
    status_code = 401
    error = "Unauthorized"
    default_message = "Invalid secret"


class Forbidden(EsignError):
    status_code = 403
    error = "Forbidden"
    default_message = "Access denied"


class BadState(EsignError):
    """The record is not at a step where the request makes sense."""

    status_code = 400
    error = "BadState"
    default_message = "Session is not ready for this step"


class SignatureNotReady(BadState):
    """No live signature is cached for the record (expired, consumed or never uploaded)."""

    default_message = "Upload a signature first"


class NoFile(EsignError):
    status_code = 400
    error = "NoFile"
    default_message = "No file uploaded"


class BadSignature(EsignError):
    status_code = 400
    error = "BadSignature"
    default_message = "Signature image could not be processed"


class UnsupportedMedia(EsignError):
    status_code = 415
    error = "Unsupported"
    default_message = "Unsupported media type"


class PayloadTooLarge(EsignError):
    status_code = 413
    error = "PayloadTooLarge"
    default_message = "Uploaded file is too large"


class InvalidStatusTransition(EsignError):
    status_code = 409
    error = "InvalidTransition"
    default_message = "Status transition not allowed"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move from '{current}' to '{target}'")


class MalformedDocument(EsignError):
    status_code = 422
    error = "MalformedDocument"
    default_message = "Document is not a valid PDF"


class InvalidPlacement(EsignError):
    status_code = 422
    error = "InvalidPlacement"
    default_message = "Signature placement is out of range"


class StorageError(EsignError):
    status_code = 502
    error = "StorageError"
    default_message = "Storage service error"
