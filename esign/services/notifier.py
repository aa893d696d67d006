"""Webhook notifications for signing milestones."""

import hashlib
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DOCUMENT_VIEWED = "document.viewed"
DOCUMENT_SIGNED = "document.signed"

SIGNATURE_HEADER = "X-Esign-Signature"


def sign_body(body: bytes, key: str) -> str:
    """HMAC-SHA256 of the request body, formatted as ``sha256=<hex>``."""
    digest = hmac.new(key.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


class WebhookNotifier:
    """
    POSTs workflow events to a configured URL.

    Delivery is best-effort: a missing URL makes ``emit`` a no-op, and
    transport errors or non-2xx answers are logged, never raised.

    Args:
        url: Receiver endpoint; empty disables notifications
        signing_key: Shared secret used to sign bodies; empty sends unsigned
        timeout: Per-request timeout in seconds
        transport: Optional httpx transport (tests use httpx.MockTransport)
    """

    def __init__(
        self,
        url: str,
        signing_key: str = "",
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url
        self.signing_key = signing_key
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def build_body(self, event: str, payload: Dict[str, Any]) -> bytes:
        document = {"event": event, "at": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")}
        document.update({k: v for k, v in payload.items() if v is not None})
        return json.dumps(document, default=str, separators=(",", ":")).encode("utf-8")

    def emit(self, event: str, payload: Optional[Dict[str, Any]] = None) -> bool:
        """Deliver one event; returns True when the receiver answered 2xx."""
        if not self.enabled:
            return False

        body = self.build_body(event, payload or {})
        headers = {"Content-Type": "application/json"}
        if self.signing_key:
            headers[SIGNATURE_HEADER] = sign_body(body, self.signing_key)

        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(self.url, content=body, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("Webhook POST failed", extra={"webhook_event": event, "error_type": type(e).__name__})
            return False

        if response.is_success:
            logger.info("Webhook delivered", extra={"webhook_event": event, "status_code": response.status_code})
            return True

        logger.warning("Webhook rejected", extra={"webhook_event": event, "status_code": response.status_code})
        return False
