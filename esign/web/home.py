"""Signing page"""

from fastapi import APIRouter, Request

from esign.core.config import settings
from esign.core.templates import templates

router = APIRouter()


@router.get("/")
async def index(request: Request):
    """Signing page; the recipient's parameters arrive in the query string and are read by the page script"""
    return templates.TemplateResponse(
        request,
        "index.html",
        {"max_upload_mb": settings.MAX_UPLOAD_BYTES // (1024 * 1024)},
    )
