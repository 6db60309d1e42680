"""
Rate Limiting Middleware

Fixed-window request limit per client address, counted in Redis:
at most max_requests per window_seconds. The first request of a window
creates the counter with a TTL of one window; Retry-After is that TTL.

If Redis is down the limiter lets requests through and logs, choosing
availability over strict limiting.
"""
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
import redis
import logging
from portal.config import get_settings
from portal.core.i18n import t, negotiate_language

logger = logging.getLogger(__name__)
settings = get_settings()


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        max_requests: int = settings.RATE_LIMIT_MAX_REQUESTS,
        window_seconds: int = settings.RATE_LIMIT_WINDOW_SECONDS,
        enabled: bool = settings.RATE_LIMIT_ENABLED,
        trusted_proxy_count: int = settings.TRUSTED_PROXY_COUNT,
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.enabled = enabled
        self.trusted_proxy_count = trusted_proxy_count

        self.excluded_paths = [
            "/docs",
            "/redoc",
            "/openapi.json",
            "/health",
        ]

    async def dispatch(self, request: Request, call_next):
        if not self.enabled:
            return await call_next(request)

        if any(request.url.path.startswith(path) for path in self.excluded_paths):
            return await call_next(request)

        client_id = self._get_client_identifier(request)
        allowed, retry_after = self._check_rate_limit(request.app.state.redis, client_id)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {client_id}")
            lng = negotiate_language(request.headers.get("Accept-Language"))
            return JSONResponse(
                status_code=429,
                content={"status": 429, "message": t("validation.rateLimitExceeded", lng)},
                headers={"Retry-After": str(retry_after)}
            )

        return await call_next(request)

    def _check_rate_limit(self, client, identifier: str) -> tuple[bool, int]:
        """Returns (allowed, retry_after_seconds)."""
        key = f"rate_limit:{identifier}"

        try:
            count = client.incr(key)
            if count == 1:
                client.expire(key, self.window_seconds)

            if count <= self.max_requests:
                return True, 0

            ttl = client.ttl(key)
            if ttl is None or ttl < 0:
                # Counter lost its expiry; start a fresh window
                client.expire(key, self.window_seconds)
                ttl = self.window_seconds
            return False, int(ttl)

        except redis.RedisError as e:
            logger.error(f"Redis error in rate limiting: {e}")
            return True, 0

    def _get_client_identifier(self, request: Request) -> str:
        """
        Client address.

        X-Forwarded-For is only read behind trusted_proxy_count proxies,
        and then the address the outermost trusted proxy saw is used;
        hops further left are client-supplied and ignored.
        """
        if self.trusted_proxy_count > 0:
            forwarded = request.headers.get("X-Forwarded-For")
            if forwarded:
                hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
                if len(hops) >= self.trusted_proxy_count:
                    return hops[-self.trusted_proxy_count]
        if request.client:
            return request.client.host
        return "unknown"
