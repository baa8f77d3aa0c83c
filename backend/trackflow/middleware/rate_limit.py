"""Rate limiting middleware using Redis.

Sliding window per client key: the JWT subject for authenticated web
calls, otherwise the caller's IP. The NFC validation endpoint gets a
tighter limit because it is unauthenticated and card ids are guessable.

The limiter fails open: if Redis is disabled or unreachable the request
goes through.
"""

import logging
import time
from typing import Callable, Optional

from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware

from trackflow.auth.jwt import decode_token
from trackflow.config import settings
from trackflow.middleware.exceptions import create_error_response
from trackflow.utils.redis import get_redis

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rate limiting middleware with Redis backend."""

    def __init__(
        self,
        app,
        default_limit: int = 120,  # requests
        default_window: int = 60,  # seconds
        exempt_paths: Optional[list[str]] = None,
    ):
        super().__init__(app)
        self.default_limit = default_limit
        self.default_window = default_window
        self.exempt_paths = exempt_paths or ["/health", "/docs", "/openapi.json"]

        # Custom limits for specific endpoint patterns
        self.custom_limits = {
            "/api/nfc/validate": (20, 60),
            "/api/mobile/qc/auth": (20, 60),
        }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not settings.rate_limit_enabled:
            return await call_next(request)

        if any(request.url.path.startswith(path) for path in self.exempt_paths):
            return await call_next(request)

        limit, window = self._get_limit_for_path(request.url.path)
        key = self._get_rate_limit_key(request)

        allowed, remaining, reset_time = await self._check_rate_limit(key, limit, window)

        if not allowed:
            retry_after = max(int(reset_time - time.time()), 1)
            # Raising here would bypass the exception handlers
            return create_error_response(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                message=f"Rate limit exceeded. Try again in {retry_after} seconds.",
                error_code="RATE_LIMITED",
                headers={
                    "X-RateLimit-Limit": str(limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(int(reset_time)),
                    "Retry-After": str(retry_after),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(limit)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = str(int(reset_time))
        return response

    def _get_limit_for_path(self, path: str) -> tuple[int, int]:
        for pattern, (limit, window) in self.custom_limits.items():
            if path.startswith(pattern):
                return limit, window
        return self.default_limit, self.default_window

    def _get_rate_limit_key(self, request: Request) -> str:
        auth_header = request.headers.get("authorization", "")
        if auth_header.startswith("Bearer "):
            user_id = decode_token(auth_header[7:]).get("sub")
            if user_id:
                return f"user:{user_id}"

        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip = forwarded.split(",")[0].strip()
        else:
            ip = request.client.host if request.client else "unknown"
        return f"ip:{ip}"

    async def _check_rate_limit(
        self, key: str, limit: int, window: int
    ) -> tuple[bool, int, float]:
        """Sliding window check.

        Returns:
            (allowed, remaining, reset_time)
        """
        current_time = time.time()
        redis_client = await get_redis()
        if redis_client is None:
            return True, limit, current_time + window

        redis_key = f"ratelimit:{key}"
        try:
            await redis_client.zremrangebyscore(redis_key, 0, current_time - window)
            count = await redis_client.zcard(redis_key)

            if count >= limit:
                oldest = await redis_client.zrange(redis_key, 0, 0, withscores=True)
                reset_time = oldest[0][1] + window if oldest else current_time + window
                return False, 0, reset_time

            await redis_client.zadd(redis_key, {str(current_time): current_time})
            await redis_client.expire(redis_key, window)
            return True, limit - count - 1, current_time + window

        except Exception as e:
            logger.error("Rate limit check failed: %s", e)
            return True, limit, current_time + window
