"""Shared rate limiter instance for use across route files."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from tillpoint.core.config import settings


def get_staff_or_ip(request: Request) -> str:
    """Rate limit by staff ID if authenticated, else by IP."""
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        from tillpoint.core.security import staff_id_from_token
        staff_id = staff_id_from_token(auth.split(" ", 1)[1])
        if staff_id is not None:
            return f"staff:{staff_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_staff_or_ip, enabled=settings.rate_limit_enabled)
