"""Shared rate limiter instance.

Counters live in Redis when it is reachable, so limits hold across
instances; otherwise they fall back to in-memory storage (development and
tests). Authenticated requests are limited per identity, anonymous ones
per client address.
"""

import logging

import redis as sync_redis
from fastapi import Request
from jose import JWTError
from slowapi import Limiter
from slowapi.util import get_remote_address

from coparent.config import settings
from coparent.core.security import decode_token

logger = logging.getLogger(__name__)


def rate_limit_key(request: Request) -> str:
    """Token subject when a valid bearer token is present, else the client IP."""
    auth = request.headers.get("authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            sub = decode_token(token).get("sub")
        except JWTError:
            sub = None
        if sub:
            return f"user:{sub}"
    return get_remote_address(request)


def _create_limiter() -> Limiter:
    try:
        client = sync_redis.from_url(settings.REDIS_URL, socket_connect_timeout=1)
        client.ping()
        client.close()
    except sync_redis.RedisError:
        logger.warning("Rate limiter: Redis unavailable, using in-memory storage")
        return Limiter(key_func=rate_limit_key, default_limits=[settings.RATE_LIMIT_DEFAULT])

    logger.info("Rate limiter: Redis storage (%s)", settings.REDIS_URL)
    return Limiter(
        key_func=rate_limit_key,
        default_limits=[settings.RATE_LIMIT_DEFAULT],
        storage_uri=settings.REDIS_URL,
    )


limiter = _create_limiter()
