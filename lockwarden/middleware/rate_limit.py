"""The Gatekeeper: per-IP rate limiting for state-changing requests.

Counts live in the engine's Counter Store, so every worker sharing a Redis
backend enforces one limit. The first rejection in a window is fed into the
engine as a ``rate_limit_exceeded`` event for the threat detector.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..core.types import RATE_LIMIT_EXCEEDED, Severity
from ..dependencies import get_app_config, get_client_ip, peek_protection_engine
from ..exceptions import InvalidInput, TransientStoreError
from ..utils.logging import get_logger
from ..utils.timeouts import bounded

logger = get_logger("middleware.rate_limit")

# State-changing methods subject to rate limits
_RATE_LIMITED_METHODS = {"POST", "PUT", "DELETE", "PATCH"}


class GatekeeperMiddleware(BaseHTTPMiddleware):
    """Rate limits state-changing requests per IP."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method not in _RATE_LIMITED_METHODS:
            return await call_next(request)

        config = get_app_config()
        engine = peek_protection_engine()
        if not config.rate_limit_enabled or engine is None:
            return await call_next(request)

        client_ip = get_client_ip(request, config)
        limit = config.rate_limit_requests
        try:
            count = await bounded(
                engine.counters.increment(f"rate:{client_ip}", config.rate_limit_window_seconds),
                config.store_timeout_seconds,
                store=engine.counters.name,
                operation="increment",
                shield=True,
            )
        except TransientStoreError as e:
            # Authentication endpoints fail closed on their own; the limiter does not
            logger.warning("rate_limit_unavailable", ip=client_ip, error=str(e))
            return await call_next(request)

        remaining = max(0, limit - count)
        if count > limit:
            logger.warning("rate_limit_global", ip=client_ip, path=request.url.path, count=count)
            if count == limit + 1:
                await self._record_exceeded(engine, client_ip, request.url.path, count, limit)
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={
                    "X-RateLimit-Remaining": "0",
                    "Retry-After": str(config.rate_limit_window_seconds),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response

    async def _record_exceeded(self, engine, client_ip: str, path: str, count: int, limit: int) -> None:
        try:
            await engine.record_event(
                RATE_LIMIT_EXCEEDED,
                Severity.MEDIUM,
                f"Rate limit exceeded for IP: {client_ip}",
                client_ip,
                metadata={"path": path, "requests": count, "limit": limit},
            )
        except InvalidInput:
            logger.debug("rate_limit_event_skipped", ip=client_ip, reason="source is not an IP address")
