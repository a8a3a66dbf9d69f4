"""Rate limiting using slowapi.

Backed by Redis in deployment and by process memory under tests. Limits
are applied per endpoint with ``@limiter.limit(...)``:

- Inbound glucose webhook: 60/minute
- Manual Dexcom refresh: 12/minute
- Strobe alerts: 10/minute
"""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from hockey_sugar.config import settings

WEBHOOK_LIMIT = "60/minute"
MANUAL_REFRESH_LIMIT = "12/minute"
STROBE_LIMIT = "10/minute"

_storage_uri = (
    "memory://" if settings.testing or not settings.redis_url else settings.redis_url
)


def _get_real_client_ip(request: Request) -> str:
    """Client IP, honouring X-Forwarded-For / X-Real-IP behind a proxy."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(
    key_func=_get_real_client_ip,
    storage_uri=_storage_uri,
    enabled=not settings.testing,
)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """Return a 429 JSON response when a limit is exceeded."""
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )
