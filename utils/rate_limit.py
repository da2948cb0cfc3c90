import json
from time import time
from typing import Dict, Optional, Sequence, Tuple

import redis
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
import logging

from config.settings import settings

logger = logging.getLogger(__name__)

_redis_client = None
_redis_available = False

if settings.redis_url:
    try:
        # Parse Redis URL (supports redis:// and redis://:password@host:port)
        _redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        _redis_client.ping()
        _redis_available = True
        logger.info("Redis connected successfully for rate limiting")
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Falling back to in-memory rate limiting.")
        _redis_client = None
        _redis_available = False
else:
    logger.info("REDIS_URL not set. Using in-memory rate limiting.")


class RateLimiterMiddleware(BaseHTTPMiddleware):
    """
    Distributed rate limiter using Redis (with fallback to in-memory).
    Uses Token Bucket Algorithm, keyed by client IP.
    Only paths under one of `path_prefixes` are limited.
    """

    def __init__(
        self,
        app,
        requests_per_minute: int = settings.rate_limit_per_minute,
        path_prefixes: Sequence[str] = ("/api/auth/",),
    ):
        super().__init__(app)
        self.capacity = requests_per_minute
        self.refill_time_window = 60.0
        self.path_prefixes = tuple(path_prefixes)
        # Fallback: in-memory storage (ip -> (tokens, last_refill_ts))
        self._buckets: Dict[str, Tuple[float, float]] = {}
        self._use_redis = _redis_available and _redis_client is not None

    def _get_client_ip(self, request: Request) -> str:
        xff = request.headers.get("x-forwarded-for")
        if xff:
            # Take first IP in the list
            return xff.split(",")[0].strip()
        client = request.client
        return client.host if client else "unknown"

    def _get_redis_key(self, ip: str) -> str:
        """Generate Redis key for rate limiting"""
        return f"rate_limit:{ip}"

    def _refill(self, tokens: float, last_refill: float, now: float) -> float:
        elapsed = max(0.0, now - last_refill)
        refill = (elapsed / self.refill_time_window) * self.capacity
        return min(self.capacity, tokens + refill)

    async def _check_rate_limit_redis(self, ip: str) -> Optional[bool]:
        """
        Check rate limit using Redis.
        Returns True if allowed, False if rate limited, None if Redis failed.
        """
        try:
            key = self._get_redis_key(ip)
            now = time()

            bucket_data = _redis_client.get(key)
            if bucket_data:
                # Stored data: {"tokens": float, "last_refill": float}
                data = json.loads(bucket_data)
                tokens = float(data.get("tokens", 0))
                last_refill = float(data.get("last_refill", now))
            else:
                tokens = float(self.capacity)
                last_refill = now

            tokens = self._refill(tokens, last_refill, now)
            if tokens < 1.0:
                return False

            bucket_data = json.dumps({"tokens": tokens - 1.0, "last_refill": now})
            _redis_client.setex(key, int(self.refill_time_window) + 10, bucket_data)
            return True

        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis rate limit check failed: {e}. Falling back to in-memory.")
            return None

    async def _check_rate_limit_memory(self, ip: str) -> bool:
        """
        Check rate limit using in-memory storage (fallback).
        Returns True if request is allowed, False if rate limited.
        """
        now = time()
        tokens, last_refill = self._buckets.get(ip, (self.capacity, now))
        tokens = self._refill(tokens, last_refill, now)

        if tokens < 1.0:
            return False

        self._buckets[ip] = (tokens - 1.0, now)
        return True

    async def dispatch(self, request: Request, call_next) -> Response:
        if not request.url.path.startswith(self.path_prefixes):
            return await call_next(request)

        ip = self._get_client_ip(request)

        allowed = None
        if self._use_redis:
            allowed = await self._check_rate_limit_redis(ip)
        if allowed is None:
            allowed = await self._check_rate_limit_memory(ip)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {ip} on {request.url.path}")
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
