"""Rate limiting middleware for API protection"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request
from assetguard.config import settings


def get_identifier(request: Request) -> str:
    """
    Get identifier for rate limiting

    Login is the only limited route and runs before any credential exists,
    so callers are told apart by address. X-Forwarded-For is only honoured
    behind a trusted proxy.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and settings.TRUST_PROXY_HEADERS:
        return forwarded.split(",")[0].strip()

    return get_remote_address(request)


# Create limiter instance
limiter = Limiter(
    key_func=get_identifier,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)
