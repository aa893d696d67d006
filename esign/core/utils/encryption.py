"""
Encryption utilities for documents held in the staging area.
"""

import base64
import hashlib
import logging
import os
import secrets
from functools import lru_cache
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from esign.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_KDF_ITERATIONS = 300_000
SALT_LENGTH = 16


class DecryptionError(Exception):
    """Raised when staged bytes cannot be decrypted with the current key."""


def _salt_file_path() -> Optional[Path]:
    """Salt lives beside the SQLite database; other databases use a derived salt."""
    db_url = settings.DATABASE_URL
    if not db_url.startswith("sqlite:///"):
        return None
    db_path = Path(db_url[len("sqlite:///"):]).resolve()
    return db_path.parent / ".encryption_salt"


def _derived_salt(secret_key: str) -> bytes:
    return hashlib.sha256(("esign-salt:" + secret_key).encode("utf-8")).digest()[:SALT_LENGTH]


def get_or_create_salt(secret_key: str) -> bytes:
    """
    Read the deployment salt, creating it with 0o600 permissions when missing.

    Falls back to a salt derived from the secret key when the file system
    cannot be used.
    """
    salt_file = _salt_file_path()
    if salt_file is None:
        return _derived_salt(secret_key)

    try:
        if salt_file.exists():
            salt = salt_file.read_bytes()
            if len(salt) == SALT_LENGTH:
                return salt
            logger.warning("Invalid encryption salt file, regenerating")
            salt_file.unlink()

        salt_file.parent.mkdir(parents=True, exist_ok=True)
        salt = secrets.token_bytes(SALT_LENGTH)
        try:
            fd = os.open(salt_file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        except FileExistsError:
            # Another worker created it first
            existing = salt_file.read_bytes()
            if len(existing) == SALT_LENGTH:
                return existing
            raise
        try:
            os.write(fd, salt)
        finally:
            os.close(fd)
        logger.info("Created new encryption salt file")
        return salt
    except OSError as e:
        logger.warning(
            "Using derived encryption salt due to file system issues",
            extra={"error_type": type(e).__name__},
        )
        return _derived_salt(secret_key)


def _kdf_iterations() -> int:
    raw = os.environ.get("ENCRYPTION_KDF_ITERATIONS", str(DEFAULT_KDF_ITERATIONS))
    try:
        iterations = int(raw)
    except ValueError:
        logger.warning("Invalid KDF iterations value, using default")
        return DEFAULT_KDF_ITERATIONS
    if iterations < 100_000:
        logger.warning("KDF iterations below recommended minimum, using default")
        return DEFAULT_KDF_ITERATIONS
    return min(iterations, 1_000_000)


class DocumentEncryption:
    """Fernet cipher keyed from the application's SECRET_KEY via PBKDF2."""

    def __init__(self, secret_key: str):
        salt = get_or_create_salt(secret_key)
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=_kdf_iterations(),
        )
        key = base64.urlsafe_b64encode(kdf.derive(secret_key.encode("utf-8")))
        self.cipher = Fernet(key)

    def encrypt(self, data: bytes) -> bytes:
        return self.cipher.encrypt(data)

    def decrypt(self, token: bytes) -> bytes:
        try:
            return self.cipher.decrypt(token)
        except InvalidToken as e:
            logger.error("Failed to decrypt staged document")
            raise DecryptionError("Staged document could not be decrypted") from e


@lru_cache(maxsize=1)
def get_document_encryption() -> DocumentEncryption:
    """Process-wide cipher; key derivation is slow so it runs once."""
    return DocumentEncryption(settings.get_secret_key())
