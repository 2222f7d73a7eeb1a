"""Shared rate limiter instance for use across route files."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from tableside.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def get_session_or_ip(request: Request) -> str:
    """Rate limit per table session when the path names one, else by IP."""
    session_id = request.path_params.get("session_id")
    if session_id:
        return f"session:{session_id}:{get_remote_address(request)}"
    return get_remote_address(request)
