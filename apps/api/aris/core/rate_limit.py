"""slowapi limiter shared by the app and rate-limited routes."""

import logging

import redis
from slowapi import Limiter
from slowapi.util import get_remote_address

from aris.core.config import settings

logger = logging.getLogger(__name__)

MEMORY_STORAGE = "memory://"


def _storage_uri() -> str:
    """Redis when it answers a ping, so limits hold across workers; in-memory otherwise."""
    if not settings.REDIS_URL:
        return MEMORY_STORAGE
    try:
        redis.from_url(settings.REDIS_URL, socket_connect_timeout=1).ping()
    except (redis.RedisError, OSError) as exc:
        logger.warning("Redis unavailable for rate limiting, using in-memory: %s", exc)
        return MEMORY_STORAGE
    return settings.REDIS_URL


def _build_limiter() -> Limiter:
    if settings.TESTING:
        return Limiter(key_func=get_remote_address, storage_uri=MEMORY_STORAGE, enabled=False)

    default_limits = [f"{settings.RATE_LIMIT_API}/minute"] if settings.RATE_LIMIT_API > 0 else []
    return Limiter(
        key_func=get_remote_address,
        storage_uri=_storage_uri(),
        default_limits=default_limits,
    )


limiter = _build_limiter()
