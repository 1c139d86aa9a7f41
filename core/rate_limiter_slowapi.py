# core/rate_limiter_slowapi.py
import logging
from datetime import datetime, timezone

import redis.asyncio as redis
from fastapi import Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from core.config import settings

logger = logging.getLogger(__name__)

# Redis is optional; without REDIS_URL limits are kept in process memory
redis_client = (
    redis.from_url(
        settings.REDIS_URL,
        decode_responses=True,
        socket_connect_timeout=10,
        socket_timeout=10,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    if settings.REDIS_URL
    else None
)

STORAGE_URI = settings.REDIS_URL or settings.RATE_LIMIT_STORAGE_URI


def get_user_id_key(request: Request) -> str:
    """Per-user key once the auth dependency has run; IP otherwise."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=STORAGE_URI,
    default_limits=["1000/hour"],
    enabled=settings.RATE_LIMIT_ENABLED,
)

# Per-user limits for the claim endpoints
claim_limiter = Limiter(key_func=get_user_id_key, storage_uri=STORAGE_URI, enabled=settings.RATE_LIMIT_ENABLED)


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    description = getattr(exc, 'detail', None) or getattr(exc, 'description', 'Too many requests')
    retry_after = getattr(exc, 'retry_after', 60)

    return JSONResponse(
        status_code=429,
        content={
            "error": "RateLimitExceeded",
            "message": f"Rate limit exceeded: {description}",
            "status_code": 429,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


def setup_rate_limiting(app):
    """Setup SlowAPI rate limiting for the FastAPI app."""
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    return app


async def check_redis_health() -> bool:
    if redis_client is None:
        return False
    try:
        await redis_client.ping()
        return True
    except (RedisError, OSError) as e:
        logger.warning(f"[RATE_LIMIT] Redis unavailable: {e}")
        return False
