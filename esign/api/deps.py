"""
Shared FastAPI dependencies: settings, access guard, and the services built
in the application lifespan.
"""

from typing import Optional

from fastapi import Depends, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from esign.core.config import Settings, settings
from esign.core.errors import Forbidden, Unauthorized
from esign.core.logging_config import log_authentication_attempt
from esign.core.schemas.esign import AccessParams
from esign.core.security import email_domain_allowed, secrets_match
from esign.db.session import get_db
from esign.services.notifier import WebhookNotifier
from esign.services.signature_cache import EphemeralSignatureCache
from esign.services.workflow import SigningWorkflow
from esign.storage.base import DocumentStorage

ACCESS_HEADERS = {
    "email": "x-esign-email",
    "name": "x-esign-name",
    "secret": "x-esign-secret",
    "docType": "x-esign-doctype",
}


def get_settings() -> Settings:
    return settings


def access_denial_reason(access: AccessParams, config: Settings) -> Optional[str]:
    """Why ``access`` must be refused, or None when it may proceed."""
    if not secrets_match(access.secret, config.ESIGN_SECRET_TOKEN):
        return "invalid_secret"
    if not email_domain_allowed(str(access.email), config.ALLOWED_EMAIL_DOMAINS):
        return "domain_not_allowed"
    return None


def require_access(request: Request, config: Settings = Depends(get_settings)) -> AccessParams:
    """
    Guard for every signing endpoint except authorize.

    Reads the recipient's parameters from the X-Esign-* headers, falling back
    to the docType query parameter. Malformed parameters are a validation
    error (400), a wrong secret is Unauthorized (401), and an e-mail outside
    the allowed domains is Forbidden (403).
    """
    raw = {field: request.headers.get(header, "") for field, header in ACCESS_HEADERS.items()}
    if not raw["docType"]:
        raw["docType"] = request.query_params.get("docType", "")

    try:
        access = AccessParams(**raw, query=dict(request.query_params))
    except ValidationError as e:
        raise RequestValidationError(e.errors()) from e

    reason = access_denial_reason(access, config)
    if reason is not None:
        log_authentication_attempt(
            False, email=str(access.email), reason=reason, ip_address=get_remote_address(request)
        )
        if reason == "invalid_secret":
            raise Unauthorized()
        raise Forbidden("E-mail domain not allowed")

    request.state.access = access
    return access


def get_storage(request: Request) -> DocumentStorage:
    return request.app.state.storage


def get_signature_cache(request: Request) -> EphemeralSignatureCache:
    return request.app.state.signature_cache


def get_notifier(request: Request) -> WebhookNotifier:
    return request.app.state.notifier


def get_workflow(
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_storage),
    cache: EphemeralSignatureCache = Depends(get_signature_cache),
    config: Settings = Depends(get_settings),
) -> SigningWorkflow:
    return SigningWorkflow(db=db, storage=storage, cache=cache, settings=config)
