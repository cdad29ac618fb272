import json
from time import time
from typing import Dict, Optional, Tuple

import redis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
import logging

from config.settings import settings

logger = logging.getLogger(__name__)


def _connect_redis(redis_url: Optional[str]):
    """Return a connected Redis client, or None to use in-memory buckets."""
    if not redis_url:
        logger.info("REDIS_URL not set. Using in-memory rate limiting.")
        return None
    try:
        client = redis.from_url(redis_url, decode_responses=True)
        client.ping()
        logger.info("Redis connected successfully for rate limiting")
        return client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Falling back to in-memory rate limiting.")
        return None


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Distributed rate limiter using Redis (with fallback to in-memory).
    Uses Token Bucket Algorithm.
    Default: RATE_LIMIT_PER_MINUTE requests per 60 seconds per IP; 0 disables it.
    """

    def __init__(self, app, requests_per_minute: Optional[int] = None, redis_client=None):
        super().__init__(app)
        if requests_per_minute is None:
            requests_per_minute = settings.rate_limit_per_minute
        self.capacity = requests_per_minute
        self.refill_time_window = 60.0
        # Fallback: in-memory storage (ip -> (tokens, last_refill_ts))
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._redis = redis_client if redis_client is not None else (
            _connect_redis(settings.redis_url) if self.capacity > 0 else None
        )

    def _get_client_ip(self, request: Request) -> str:
        # Behind a proxy, uvicorn --proxy-headers rewrites client from trusted X-Forwarded-For
        client = request.client
        return client.host if client else "unknown"

    def _get_redis_key(self, ip: str) -> str:
        """Generate Redis key for rate limiting"""
        return f"rate_limit:{ip}"

    def _take_token(self, tokens: float, last_refill: float, now: float) -> Tuple[bool, float]:
        """Refill based on elapsed time, then try to consume one token."""
        elapsed = max(0.0, now - last_refill)
        refill = (elapsed / self.refill_time_window) * self.capacity
        tokens = min(self.capacity, tokens + refill)
        if tokens < 1.0:
            return False, tokens
        return True, tokens - 1.0

    async def _check_rate_limit_redis(self, ip: str) -> Optional[bool]:
        """
        Check rate limit using Redis.
        Returns True if allowed, False if rate limited, None if Redis failed.
        """
        try:
            key = self._get_redis_key(ip)
            now = time()

            bucket_data = self._redis.get(key)
            if bucket_data:
                # Parse stored data: {"tokens": float, "last_refill": float}
                data = json.loads(bucket_data)
                tokens = float(data.get("tokens", 0))
                last_refill = float(data.get("last_refill", now))
            else:
                # New bucket, start with full capacity
                tokens = float(self.capacity)
                last_refill = now

            allowed, tokens = self._take_token(tokens, last_refill, now)
            if not allowed:
                return False

            # Store updated state in Redis with TTL (expire after refill window)
            bucket_data = json.dumps({"tokens": tokens, "last_refill": now})
            self._redis.setex(key, int(self.refill_time_window) + 10, bucket_data)
            return True

        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    def _evict_stale_buckets(self, now: float) -> None:
        """Drop buckets idle for a full refill window."""
        stale = [ip for ip, (_, last_refill) in self._buckets.items() if now - last_refill >= self.refill_time_window]
        for ip in stale:
            del self._buckets[ip]

    async def _check_rate_limit_memory(self, ip: str) -> bool:
        """
        Check rate limit using in-memory storage (fallback).
        Returns True if request is allowed, False if rate limited.
        """
        now = time()
        self._evict_stale_buckets(now)
        tokens, last_refill = self._buckets.get(ip, (float(self.capacity), now))
        allowed, tokens = self._take_token(tokens, last_refill, now)
        if allowed:
            self._buckets[ip] = (tokens, now)
        return allowed

    async def dispatch(self, request: Request, call_next) -> Response:
        if self.capacity <= 0:
            return await call_next(request)

        ip = self._get_client_ip(request)

        allowed = None
        if self._redis is not None:
            allowed = await self._check_rate_limit_redis(ip)
        if allowed is None:
            allowed = await self._check_rate_limit_memory(ip)

        if not allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "ok": False,
                    "data": {},
                    "error": "rate_limited",
                    "message": "Rate limit exceeded. Try again shortly.",
                },
            )

        return await call_next(request)
