"""Rate limiting for the public enrollment and gateway endpoints.

Uses slowapi. Storage comes from ``RATE_LIMIT_STORAGE_URI`` (``memory://`` by
default, a ``redis://`` URI when several instances share limits).
Endpoints decorated here must accept a ``request: Request`` argument.
"""

from functools import lru_cache
from typing import Callable

from fastapi import FastAPI, Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from libs.common.config import get_settings


def _get_client_ip(request: Request) -> str:
    """
    Get client IP from request, handling proxies.

    Checks X-Forwarded-For header first (for proxied requests),
    then falls back to direct connection IP.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


@lru_cache
def get_limiter() -> Limiter:
    """Create and return a cached Limiter instance."""
    settings = get_settings()
    return Limiter(
        key_func=_get_client_ip,
        default_limits=["100/minute"],
        storage_uri=settings.RATE_LIMIT_STORAGE_URI,
        strategy="fixed-window",
        enabled=settings.RATE_LIMIT_ENABLED,
    )


limiter = get_limiter()


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """
    Custom handler for rate limit exceeded errors.

    Returns a JSON response with clear error message and retry-after header.
    """
    retry_after = exc.detail.split("per")[0].strip() if exc.detail else "1 minute"

    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded. Try again in {retry_after}.",
            "code": "RATE_LIMIT_EXCEEDED",
        },
        headers={"Retry-After": str(getattr(exc, "retry_after", 60))},
    )


def install_rate_limiting(app: FastAPI) -> None:
    """Attach the shared limiter and its 429 handler to an app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def payment_limit(func: Callable) -> Callable:
    """Apply strict rate limit for payment link endpoints (5/minute)."""
    return limiter.limit("5/minute")(func)


def enrollment_limit(func: Callable) -> Callable:
    """Apply rate limit for public enrollment submissions (10/minute)."""
    return limiter.limit("10/minute")(func)
