"""
Global test configuration and fixtures for the eSign service

Environment overrides are applied before any application module is
imported, since settings are read once at import time. Each test gets its
own SQLite database and local storage directory.
"""

import os
import tempfile
from pathlib import Path

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="esign-tests-"))

os.environ.update(
    {
        "ENVIRONMENT": "test",
        "DEV_MODE": "false",
        "LOG_JSON": "false",
        "LOG_LEVEL": "WARNING",
        "SECRET_KEY": "test-secret-key-for-testing-only-7f3a9c1e5b",
        "ESIGN_SECRET_TOKEN": "test-shared-secret-0123",
        "ALLOWED_EMAIL_DOMAINS": "",
        "DATABASE_URL": f"sqlite:///{_TEST_ROOT / 'esign.db'}",
        "STORAGE_BACKEND": "local",
        "STORAGE_LOCAL_ROOT": str(_TEST_ROOT / "storage"),
        "TEMPLATE_FOLDER": "templates",
        "SIGNED_FOLDER": "signed",
        "WEBHOOK_URL": "",
        "ENCRYPTION_KDF_ITERATIONS": "100000",
        "REDIS_URL": "",
    }
)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from esign.api.deps import get_notifier, get_storage  # noqa: E402
from esign.core.config import settings  # noqa: E402
from esign.core.limiter import limiter  # noqa: E402
from esign.db.base import Base  # noqa: E402
from esign.db.session import get_db  # noqa: E402
from esign.main import app  # noqa: E402
from esign.services.notifier import WebhookNotifier  # noqa: E402
from esign.services.signature_cache import EphemeralSignatureCache  # noqa: E402
from esign.storage.local import LocalDocumentStorage  # noqa: E402
from tests.utils.factories import PdfFactory, SignatureFactory, SignerFactory  # noqa: E402


# ============================================================================
# Test Environment Setup
# ============================================================================


@pytest.fixture(scope="session")
def test_settings():
    return settings


@pytest.fixture(autouse=True)
def reset_limiter():
    """Clear rate limit counters so tests never see each other's traffic"""
    limiter.reset()
    yield
    limiter.reset()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def db_engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Provide database session for tests"""
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def override_get_db(db_session):
    """Override database dependency for testing"""

    def _override():
        yield db_session

    return _override


# ============================================================================
# Storage, cache and document fixtures
# ============================================================================


@pytest.fixture
def storage(tmp_path):
    return LocalDocumentStorage(tmp_path / "storage")


@pytest.fixture
def template_pdf():
    return PdfFactory.create(pages=2)


@pytest.fixture
def seeded_storage(storage, template_pdf):
    """Local storage holding one ICA and one NDA template"""
    storage.upload(template_pdf, "ICA_template.pdf", "application/pdf", "templates")
    storage.upload(PdfFactory.create(label="NDA"), "NDA_template.pdf", "application/pdf", "templates")
    return storage


@pytest.fixture
def signature_cache():
    return EphemeralSignatureCache(ttl_seconds=60)


@pytest.fixture
def signature_png():
    return SignatureFactory.create()


@pytest.fixture
def signer_params():
    return SignerFactory.create_params()


@pytest.fixture
def signer_headers():
    return SignerFactory.create_headers()


# ============================================================================
# Application Client Fixtures
# ============================================================================


@pytest.fixture
def notifier():
    """Webhooks disabled unless a test swaps in its own notifier"""
    return WebhookNotifier("")


@pytest.fixture(scope="function")
def client(db_session, seeded_storage, notifier):
    """Create FastAPI test client"""
    app.dependency_overrides[get_db] = override_get_db(db_session)
    app.dependency_overrides[get_storage] = lambda: seeded_storage
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
