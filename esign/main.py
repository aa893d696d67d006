import asyncio
import logging
import re
import sys
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from esign.api import esign as esign_api
from esign.api.deps import ACCESS_HEADERS
from esign.core.config import settings
from esign.core.errors import EsignError
from esign.core.limiter import limiter
from esign.core.logging_config import init_application_logging, set_correlation_id
from esign.core.security import SecurityHeadersMiddleware, sanitize_error_message
from esign.core.templates import PACKAGE_DIR
from esign.core.utils.database_helpers import check_database_health
from esign.db.init_db import init_database
from esign.db.session import engine, get_db_sync
from esign.services.notifier import WebhookNotifier
from esign.services.signature_cache import EphemeralSignatureCache, sweep_periodically
from esign.services.staging import StagedDocumentStore
from esign.storage import create_storage
from esign.web import home

init_application_logging()

logger = logging.getLogger("esign.main")

_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

# Multipart framing on top of the largest accepted file
_UPLOAD_OVERHEAD_BYTES = 64 * 1024


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()
    with get_db_sync() as db:
        StagedDocumentStore(db).purge_expired()
        db.commit()

    app.state.signature_cache = EphemeralSignatureCache(ttl_seconds=settings.SIGNATURE_TTL_SECONDS)
    app.state.storage = create_storage(settings)
    app.state.notifier = WebhookNotifier(
        settings.WEBHOOK_URL,
        signing_key=settings.ESIGN_SECRET_TOKEN,
        timeout=settings.WEBHOOK_TIMEOUT,
    )
    logger.info(
        "eSign service started",
        extra={
            "storage_backend": app.state.storage.backend_name,
            "webhooks": app.state.notifier.enabled,
            "placement_policy": settings.PLACEMENT_POLICY,
        },
    )
    sweeper = asyncio.create_task(
        sweep_periodically(app.state.signature_cache, settings.SIGNATURE_SWEEP_INTERVAL_SECONDS)
    )
    yield
    sweeper.cancel()
    try:
        await sweeper
    except asyncio.CancelledError:
        pass
    # Signatures never outlive the process
    app.state.signature_cache.clear()
    logger.info("eSign service stopped")


app = FastAPI(
    title=settings.APP_NAME,
    description="Shared-secret document e-signature workflow",
    version=settings.VERSION,
    lifespan=lifespan,
)

# Attach limiter to app.state for access in route decorators
app.state.limiter = limiter

logger.info(
    "Rate limiting initialized with configuration: auth=%s, write=%s, read=%s",
    settings.rate_limit_auth_endpoints,
    settings.rate_limit_write_endpoints,
    settings.rate_limit_read_endpoints,
)

app.add_middleware(SecurityHeadersMiddleware, enabled=settings.SECURITY_HEADERS_ENABLED)

# Recipients authenticate with headers, never cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-Session-Id", "X-Request-ID", *ACCESS_HEADERS.values()],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag the request with a correlation id and refuse oversized bodies early."""
    incoming = request.headers.get("x-request-id", "")
    correlation_id = incoming if _REQUEST_ID_PATTERN.match(incoming) else str(uuid.uuid4())
    set_correlation_id(correlation_id)

    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > settings.MAX_UPLOAD_BYTES + _UPLOAD_OVERHEAD_BYTES:
        response = JSONResponse(
            status_code=413, content={"error": "PayloadTooLarge", "message": "Uploaded file is too large"}
        )
    else:
        response = await call_next(request)

    response.headers["X-Request-ID"] = correlation_id
    return response


@app.exception_handler(EsignError)
async def esign_error_handler(request: Request, exc: EsignError):
    if exc.status_code >= 500:
        logger.error(f"{exc.error}: {exc.message}", extra={"path": request.url.path})
    else:
        logger.info(f"{exc.error}: {exc.message}", extra={"path": request.url.path, "status_code": exc.status_code})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Inputs are never echoed back; they may hold the shared secret
    issues = [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg", ""), "type": error.get("type", "")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "ValidationError", "message": "Invalid request", "issues": issues},
    )


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    retry_after = 60
    limit = getattr(exc, "limit", None)
    if limit is not None and getattr(limit, "limit", None) is not None:
        retry_after = int(limit.limit.get_expiry())
    return JSONResponse(
        status_code=429,
        content={"error": "RateLimited", "message": f"Rate limit exceeded: {exc.detail}"},
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        content = {"error": "NotFound", "message": "Route not found"}
    else:
        content = {"error": "HTTPError", "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error", extra={"path": request.url.path})
    message = sanitize_error_message(str(exc)) if settings.DEV_MODE else "Internal Server Error"
    return JSONResponse(status_code=500, content={"error": "ServerError", "message": message})


app.mount("/static", StaticFiles(directory=str(PACKAGE_DIR / "static")), name="static")

app.include_router(esign_api.router)
app.include_router(home.router, tags=["Web"])


def _check_rate_limit_storage() -> dict:
    """Health of the rate limiting storage backend."""
    if not settings.redis_url:
        return {"type": "memory", "healthy": True, "message": "In-memory storage active"}

    try:
        import redis

        client = redis.from_url(settings.redis_url, socket_timeout=2)
        client.ping()
        return {"type": "redis", "healthy": True, "message": "Redis connection successful"}
    except ImportError:
        return {"type": "redis", "healthy": False, "message": "Redis client not installed"}
    except Exception as e:
        logger.warning("Redis health check failed: %s", type(e).__name__)
        return {"type": "redis", "healthy": False, "message": "Redis connection failed"}


@app.get("/health")
def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy"}


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.get("/api/health")
def api_health_check(request: Request):
    """
    Detailed health: database, document storage, rate limiting and
    signature cache occupancy.
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "version": settings.VERSION,
        "environment": {
            "dev_mode": settings.DEV_MODE,
            "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        },
        "services": {},
    }

    db_health = check_database_health(engine)
    health_status["services"]["database"] = {
        "status": db_health["status"],
        "type": db_health["database_type"],
        "connected": db_health["connected"],
        "table_count": len(db_health["tables"]),
        "last_error": db_health["last_error"],
    }
    if db_health["status"] == "unhealthy":
        health_status["status"] = "unhealthy"
    elif db_health["status"] != "healthy":
        health_status["status"] = "degraded"

    storage = request.app.state.storage
    storage_health = storage.check(settings.SIGNED_FOLDER)
    health_status["services"]["storage"] = storage_health
    if not storage_health["reachable"] and health_status["status"] == "healthy":
        health_status["status"] = "degraded"

    limiter_storage = _check_rate_limit_storage()
    rate_limit_status = "enabled" if limiter_storage["healthy"] else "degraded"
    if not limiter_storage["healthy"] and health_status["status"] == "healthy":
        health_status["status"] = "degraded"
    health_status["services"]["rate_limiting"] = {
        "status": rate_limit_status,
        "storage": limiter_storage,
        "configuration": {
            "auth_endpoints": settings.rate_limit_auth_endpoints,
            "write_endpoints": settings.rate_limit_write_endpoints,
            "read_endpoints": settings.rate_limit_read_endpoints,
        },
    }

    cache = request.app.state.signature_cache
    health_status["services"]["signature_cache"] = {
        "status": "healthy",
        "entries": len(cache),
        "ttl_seconds": cache.ttl_seconds,
    }

    status_code = 503 if health_status["status"] == "unhealthy" else 200
    return JSONResponse(status_code=status_code, content=health_status)
