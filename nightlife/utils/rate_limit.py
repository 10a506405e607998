"""
Login throttling for the admin back-office.
Only the password endpoint is limited; public reads are not. Counters live in
process memory, so each worker counts on its own.
"""
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from nightlife.config import settings


def admin_client_key(request: Request) -> str:
    """
    Limiter key for a login attempt: the client's IP.

    The first X-Forwarded-For hop is used only when TRUST_FORWARDED_FOR is on,
    otherwise any client could pick its own bucket.
    """
    if settings.TRUST_FORWARDED_FOR:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

    return get_remote_address(request)


def login_limit() -> str:
    # Read per request so the limit follows the current settings
    return settings.LOGIN_RATE_LIMIT


limiter = Limiter(
    key_func=admin_client_key,
    storage_uri="memory://",
    enabled=settings.RATE_LIMIT_ENABLED,
)
