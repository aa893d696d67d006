"""
Signing workflow API endpoints with rate limiting.

All endpoints except ``/authorize`` are guarded by ``require_access`` and
receive the recipient's parameters from the X-Esign-* headers.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse, Response, StreamingResponse
from slowapi.util import get_remote_address

from esign.api.deps import (
    access_denial_reason,
    get_notifier,
    get_settings,
    get_workflow,
    require_access,
)
from esign.core.config import Settings, settings
from esign.core.limiter import limiter
from esign.core.logging_config import log_authentication_attempt
from esign.core.schemas.esign import (
    AccessParams,
    AuthorizeResponse,
    ComposeRequest,
    ComposeResponse,
    InitSessionResponse,
    OkResponse,
    OpenSessionResponse,
    RecordRef,
    SigningSessionOut,
)
from esign.db.models.signing_session import SigningSession
from esign.imaging.pdf_compositor import PlacementRequest
from esign.services.notifier import DOCUMENT_SIGNED, DOCUMENT_VIEWED, WebhookNotifier
from esign.services.workflow import SigningWorkflow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/esign", tags=["esign"])


def _event_payload(request: Request, record: SigningSession, access: AccessParams) -> Dict[str, Any]:
    return {
        "recordId": record.record_id,
        "email": record.user_email,
        "name": record.user_display_name,
        "docType": record.doc_type,
        "sessionId": request.headers.get("x-session-id") or record.session_id,
        "userAgent": request.headers.get("user-agent"),
        "clientIp": get_remote_address(request),
        "params": access.query,
    }


def _read_upload(upload: Optional[UploadFile], limit: int) -> bytes:
    """Upload body, reading at most one byte past ``limit`` so oversize files are detectable."""
    if upload is None:
        return b""
    return upload.file.read(limit + 1)


@router.post("/authorize", response_model=AuthorizeResponse)
@limiter.limit(settings.rate_limit_auth_endpoints)
def authorize(request: Request, params: AccessParams, config: Settings = Depends(get_settings)):
    """
    Check a recipient's link parameters before the signing page loads.

    Answers ``{"ok": true}`` or 403 ``{"ok": false, "reason": "Invalid params"}``.
    """
    reason = access_denial_reason(params, config)
    log_authentication_attempt(
        reason is None, email=str(params.email), reason=reason, ip_address=get_remote_address(request)
    )
    if reason is not None:
        return JSONResponse(status_code=403, content={"ok": False, "reason": "Invalid params"})
    return {"ok": True}


@router.post("/session/init", response_model=InitSessionResponse)
@limiter.limit(settings.rate_limit_write_endpoints)
def init_session(
    request: Request,
    access: AccessParams = Depends(require_access),
    workflow: SigningWorkflow = Depends(get_workflow),
):
    record = workflow.init_session(access)
    return {"sessionId": record.session_id, "recordId": record.record_id}


@router.post("/session/open", response_model=OpenSessionResponse)
@limiter.limit(settings.rate_limit_write_endpoints)
def open_session(
    request: Request,
    body: RecordRef,
    background_tasks: BackgroundTasks,
    access: AccessParams = Depends(require_access),
    workflow: SigningWorkflow = Depends(get_workflow),
    notifier: WebhookNotifier = Depends(get_notifier),
):
    """Record that the recipient opened the document and stage its template."""
    record = workflow.open_session(body.record_id, access)
    background_tasks.add_task(notifier.emit, DOCUMENT_VIEWED, _event_payload(request, record, access))
    return {"ok": True, "status": record.status, "templateName": record.template_name}


@router.get("/session/pdf/{record_id}")
@limiter.limit(settings.rate_limit_read_endpoints)
def preview_template(
    request: Request,
    record_id: str,
    access: AccessParams = Depends(require_access),
    workflow: SigningWorkflow = Depends(get_workflow),
):
    """Staged template for the pdf.js preview"""
    data, name = workflow.staged_template(record_id, access)
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{name}"', "Cache-Control": "no-store"},
    )


@router.get("/session/{record_id}", response_model=SigningSessionOut)
@limiter.limit(settings.rate_limit_read_endpoints)
def session_status(
    request: Request,
    record_id: str,
    access: AccessParams = Depends(require_access),
    workflow: SigningWorkflow = Depends(get_workflow),
):
    return workflow.describe(record_id, access)


@router.post("/upload/document", response_model=OkResponse)
@limiter.limit(settings.rate_limit_write_endpoints)
def upload_document(
    request: Request,
    recordId: str = Form(..., min_length=1),
    document: Optional[UploadFile] = File(None),
    access: AccessParams = Depends(require_access),
    workflow: SigningWorkflow = Depends(get_workflow),
    config: Settings = Depends(get_settings),
):
    """Manual template upload, for deployments that do not auto-stage templates"""
    data = _read_upload(document, config.MAX_UPLOAD_BYTES)
    record = workflow.upload_document(
        recordId,
        access,
        data,
        document.content_type if document else None,
        document.filename if document else None,
    )
    return {"ok": True, "status": record.status}


@router.post("/upload/signature", response_model=OkResponse)
@limiter.limit(settings.rate_limit_write_endpoints)
def upload_signature(
    request: Request,
    recordId: str = Form(..., min_length=1),
    signature: Optional[UploadFile] = File(None),
    access: AccessParams = Depends(require_access),
    workflow: SigningWorkflow = Depends(get_workflow),
    config: Settings = Depends(get_settings),
):
    """
    Accept a PNG, JPEG or WEBP signature.

    The light background is removed and the result is held in memory only,
    until compose or until its time-to-live runs out.
    """
    data = _read_upload(signature, config.MAX_UPLOAD_BYTES)
    record = workflow.upload_signature(recordId, access, data, signature.content_type if signature else None)
    return {"ok": True, "status": record.status}


@router.post("/compose", response_model=ComposeResponse)
@limiter.limit(settings.rate_limit_write_endpoints)
def compose(
    request: Request,
    body: ComposeRequest,
    background_tasks: BackgroundTasks,
    access: AccessParams = Depends(require_access),
    workflow: SigningWorkflow = Depends(get_workflow),
    notifier: WebhookNotifier = Depends(get_notifier),
):
    placement = PlacementRequest(
        page=body.page, x_pct=body.x_pct, y_pct=body.y_pct, width_pct=body.width_pct
    )
    result = workflow.compose(body.record_id, access, placement)

    payload = _event_payload(request, result.record, access)
    payload.update({"signedRef": result.signed_ref, "signedAt": result.record.signed_at})
    background_tasks.add_task(notifier.emit, DOCUMENT_SIGNED, payload)

    return {"signedRef": result.signed_ref, "signedAt": result.record.signed_at}


@router.get("/{record_id}/download")
@limiter.limit(settings.rate_limit_read_endpoints)
def download_signed(
    request: Request,
    record_id: str,
    access: AccessParams = Depends(require_access),
    workflow: SigningWorkflow = Depends(get_workflow),
):
    chunks = workflow.signed_document(record_id, access)
    return StreamingResponse(
        chunks,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="signed.pdf"'},
    )
