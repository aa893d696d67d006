"""
Security utilities for the eSign service

This module provides secret key handling, shared-secret comparison,
e-mail domain allow-listing, filename and error sanitizing, and the
security headers middleware.
"""

import hmac
import logging
import os
import re
import secrets
import unicodedata
from contextvars import ContextVar
from pathlib import Path
from typing import Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Context variable to store the current request's nonce
_request_nonce: ContextVar[str] = ContextVar("request_nonce", default="")

# Placeholder values that must never encrypt staged documents
WEAK_SECRET_KEYS = frozenset({"change-me", "changeme", "secret", "password", "esign", "test"})
MIN_SECRET_KEY_LENGTH = 32


def generate_secret_key() -> str:
    """64 URL-safe characters from the OS random source."""
    return secrets.token_urlsafe(48)


def get_or_create_secret_key(key_file: str = "data/.secret_key") -> str:
    """
    Resolve the application SECRET_KEY.

    The environment wins, then the key file. When neither holds a key a new
    one is generated and written to ``key_file`` with owner-only permissions,
    so staged documents stay readable across restarts.

    Raises:
        ValueError: If the configured key is too weak
    """
    env_key = os.environ.get("SECRET_KEY")
    if env_key:
        validate_secret_key(env_key)
        return env_key

    path = Path(key_file)
    if path.is_file():
        try:
            stored = path.read_text().strip()
        except OSError as e:
            logger.warning("Secret key file %s is unreadable: %s", key_file, e)
        else:
            if stored:
                validate_secret_key(stored)
                logger.info("Loaded SECRET_KEY from %s", key_file)
                return stored

    key = generate_secret_key()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(key)
        os.chmod(path, 0o600)
        logger.warning("Generated a new SECRET_KEY in %s", key_file)
    except OSError as e:
        # Staged documents encrypted with this key will not survive a restart
        logger.error("Could not persist generated SECRET_KEY: %s", e)
    return key


def validate_secret_key(secret_key: str) -> None:
    """Raise ValueError for empty, short, placeholder or repetitive keys."""
    if not secret_key:
        raise ValueError("SECRET_KEY cannot be empty")
    if len(secret_key) < MIN_SECRET_KEY_LENGTH:
        raise ValueError(f"SECRET_KEY must be at least {MIN_SECRET_KEY_LENGTH} characters long")
    if secret_key.lower() in WEAK_SECRET_KEYS:
        raise ValueError("SECRET_KEY is a placeholder value")
    if len(set(secret_key.lower())) < 8:
        raise ValueError("SECRET_KEY has insufficient entropy (too repetitive)")


def secrets_match(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison of a presented shared secret with the configured one.

    An unconfigured (empty) expected secret never matches.
    """
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def email_domain_allowed(email: str, allowed_domains: Iterable[str]) -> bool:
    """True when the allow-list is empty or the e-mail's domain is on it."""
    allowed = [d.strip().lower() for d in allowed_domains if d and d.strip()]
    if not allowed:
        return True
    _, _, domain = email.rpartition("@")
    return bool(domain) and domain.lower() in allowed


def sanitize_filename(name: str, fallback: str = "file") -> str:
    """
    Make a string safe for use as a storage object name.

    NFKD-normalizes the text, drops combining accents, and replaces every
    run of characters outside ``[A-Za-z0-9_.-]`` with a single underscore.
    """
    decomposed = unicodedata.normalize("NFKD", str(name or ""))
    normalized = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = re.sub(r"[^\w.\-]+", "_", normalized, flags=re.ASCII)
    # "." and ".." are not usable as names
    if not cleaned.strip("._"):
        return fallback
    return cleaned


def mask_email(email: Optional[str]) -> str:
    """Keep the first letter and the domain of an e-mail address."""
    if not email or "@" not in email:
        return "****"
    local, _, domain = email.partition("@")
    return f"{local[:1]}****@{domain}"


def sanitize_error_message(error_msg: str) -> str:
    """
    Sanitize error messages to prevent sensitive data leakage.

    Args:
        error_msg: The raw error message to sanitize

    Returns:
        A sanitized error message safe for API responses
    """
    if not error_msg:
        return "Unknown error occurred"

    sensitive_patterns = [
        # Storage access keys
        (r"AKIA[A-Z0-9]{16}", "AKIA****"),
        # Potential secret keys (20+ alphanumeric characters)
        (r"\b[A-Za-z0-9+/]{20,}\b", "****"),
        (r"token['\"\s]*[:=]['\"\s]*[^\s'\"]+", "token=****"),
        (r"secret['\"\s]*[:=]['\"\s]*[^\s'\"]+", "secret=****"),
        (r"key['\"\s]*[:=]['\"\s]*[^\s'\"]+", "key=****"),
        (r"password['\"\s]*[:=]['\"\s]*[^\s'\"]+", "password=****"),
    ]

    sanitized = str(error_msg)
    for pattern, replacement in sensitive_patterns:
        sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

    if len(sanitized) > 200:
        sanitized = sanitized[:200] + "..."

    return sanitized


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware adding security headers to every response.

    Uses a per-request nonce in the Content-Security-Policy so the signing
    page can run its inline bootstrap script without 'unsafe-inline'.
    """

    def __init__(self, app, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    def _generate_nonce(self) -> str:
        return secrets.token_urlsafe(32)

    async def dispatch(self, request: Request, call_next):
        if not self.enabled:
            return await call_next(request)

        nonce = self._generate_nonce()
        _request_nonce.set(nonce)

        response = await call_next(request)

        security_headers = {
            "X-Content-Type-Options": "nosniff",
            "X-Frame-Options": "DENY",
            # pdf.js is served from a CDN and renders the template from a blob
            "Content-Security-Policy": (
                "default-src 'self'; "
                f"script-src 'self' 'nonce-{nonce}' cdnjs.cloudflare.com; "
                "worker-src 'self' blob: cdnjs.cloudflare.com; "
                "style-src 'self' 'unsafe-inline'; "
                "img-src 'self' data: blob:; "
                "connect-src 'self'; "
                "form-action 'self'; "
                "frame-ancestors 'none'; "
                "base-uri 'self'"
            ),
            "Referrer-Policy": "no-referrer",
            "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=()",
        }

        for header_name, header_value in security_headers.items():
            response.headers[header_name] = header_value

        return response


def get_current_nonce() -> str:
    """Current request's CSP nonce for use in templates."""
    return _request_nonce.get()
