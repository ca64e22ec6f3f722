"""Shared FastAPI dependencies.

Authentication happens at the upstream gateway, which forwards the
verified identity as ``X-User-Id`` / ``X-User-Role`` headers.
"""

from collections.abc import AsyncGenerator

from fastapi import Depends, Header, HTTPException

from phantom.database import get_session as _get_session
from phantom.redis_client import get_redis as _get_redis

get_db = _get_session

ADMIN_ROLE = "admin"


async def get_redis_dep() -> AsyncGenerator[object | None, None]:
    """Yield the Redis client as a FastAPI dependency (None when not configured)."""
    yield _get_redis()


async def get_current_user_id(x_user_id: str | None = Header(default=None)) -> int:
    """Authenticated user id forwarded by the gateway."""
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return int(x_user_id)
    except ValueError as e:
        raise HTTPException(status_code=401, detail="Invalid user id") from e


async def require_admin(
    user_id: int = Depends(get_current_user_id),
    x_user_role: str | None = Header(default=None),
) -> int:
    if (x_user_role or "").lower() != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user_id
