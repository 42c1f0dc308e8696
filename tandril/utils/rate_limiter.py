"""
Redis-based rate limiter for webhook endpoints.
Uses sliding window counter pattern. Redis failures fail open so provider
compliance deliveries are never blocked by the limiter itself.
"""
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60

_redis_client = None


async def get_redis():
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        import redis.asyncio as aioredis
        from tandril.config import get_settings
        _redis_client = aioredis.from_url(
            get_settings().redis_url,
            decode_responses=True,
        )
    return _redis_client


async def check_rate_limit(
    key: str,
    limit: int,
    window: int = WINDOW_SECONDS,
) -> tuple[bool, Optional[int]]:
    """
    Check if a request is within rate limits using Redis sliding window.

    Returns: (allowed: bool, retry_after_seconds: int | None)
    """
    try:
        redis = await get_redis()

        redis_key = f"tandril:ratelimit:{key}"
        now = time.time()
        window_start = now - window

        pipe = redis.pipeline()
        pipe.zremrangebyscore(redis_key, 0, window_start)
        pipe.zadd(redis_key, {str(now): now})
        pipe.zcard(redis_key)
        pipe.expire(redis_key, window + 1)

        results = await pipe.execute()
        request_count = results[2]

        if request_count > limit:
            logger.warning(
                "Rate limit exceeded: key=%s count=%d limit=%d",
                key, request_count, limit,
            )
            return False, window

        return True, None
    except Exception as e:
        logger.warning("Rate limiter Redis error: %s. Allowing request.", str(e))
        return True, None


async def check_webhook_rate_limit(client_ip: str) -> tuple[bool, Optional[int]]:
    """Per-IP limit for inbound webhook deliveries."""
    from tandril.config import get_settings
    limit = get_settings().webhook_rate_limit_per_minute
    return await check_rate_limit(f"webhook:ip:{client_ip}", limit)
