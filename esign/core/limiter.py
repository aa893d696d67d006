"""
Rate limiter configuration module.

Creates the SlowAPI rate limiter instance that route modules import
without circular import issues.
"""

import logging
from typing import Optional

from slowapi import Limiter
from slowapi.util import get_remote_address

from esign.core.config import settings

logger = logging.getLogger(__name__)


def get_limiter_storage() -> Optional[str]:
    """
    Storage backend for rate limiting.

    Returns the Redis URL if one is configured and well formed, otherwise
    None (in-memory storage).
    """
    if not settings.redis_url:
        return None
    if not settings.redis_url.startswith(("redis://", "rediss://")):
        logger.warning("Invalid REDIS_URL format. Using in-memory storage instead.")
        return None
    logger.info("Using Redis backend for rate limiting")
    return settings.redis_url


def create_limiter() -> Limiter:
    """
    Create and configure the SlowAPI rate limiter.

    In-memory storage suits a single instance; Redis is needed when several
    instances serve the same signers.
    """
    storage_uri = get_limiter_storage()

    if storage_uri:
        return Limiter(key_func=get_remote_address, storage_uri=storage_uri, default_limits=[])

    logger.info("Using in-memory storage for rate limiting")
    # No default limits, each endpoint declares its own
    return Limiter(key_func=get_remote_address, default_limits=[])


limiter = create_limiter()
