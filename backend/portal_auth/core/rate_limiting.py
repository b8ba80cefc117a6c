"""Rate limiting configuration using slowapi.

Security: Limits how often codes can be requested and guessed, and how often
links and tokens can be exchanged.

Authenticated requests are keyed on the JWT subject (per-user) to avoid
penalising shared IP addresses. Unauthenticated requests (most of the
verification flow) fall back to IP-based keying.

Usage in routers:
    from portal_auth.core.rate_limiting import limiter

    @router.post("/codes")
    @limiter.limit("5/15minute")
    async def send_code(request: Request, ...):
        ...
"""

import jwt
from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from portal_auth.core.config import settings


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid JWT (cookie or bearer): "user:{sub}"
    - No/invalid JWT: "unauth:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    # Note: No revocation check here - rate limiting only needs the sub
    # claim for keying. Full auth validation happens in deps.py.
    token = request.cookies.get(settings.auth_cookie_name)
    if not token:
        header = request.headers.get("authorization", "")
        if header.lower().startswith("bearer "):
            token = header[7:].strip()

    if token and settings.auth_secret.get_secret_value():
        try:
            payload = jwt.decode(
                token,
                settings.auth_secret.get_secret_value(),
                algorithms=["HS256"],
                audience=settings.auth_audience,
                issuer=settings.auth_issuer,
            )
            sub = payload["sub"]
            # Defense-in-depth: validate sub looks like a UUID (36 chars)
            if len(sub) <= 36:
                return f"user:{sub}"
        except (jwt.InvalidTokenError, KeyError):
            pass

    return f"unauth:{get_remote_address(request)}"


# Global limiter instance
# Configured with in-memory storage (suitable for single-instance deployment)
# For multi-instance, configure Redis storage via RATELIMIT_STORAGE_URL
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Security: Returns 429 Too Many Requests with standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # Parse retry-after from exception detail (e.g., "10 per 1 minute")
    # Fallback to 60 seconds if parsing fails
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
