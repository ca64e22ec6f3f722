"""Redis pool for reward events.

Level-ups, achievements, redemptions and user notifications are published
here for the activity feed and the notification bridge. Publishing is
optional: with no pool configured, ``phantom.events`` skips the publish.
"""

import redis.asyncio as redis

_pool: redis.Redis | None = None


async def init_redis(url: str) -> None:
    global _pool  # noqa: PLW0603
    _pool = redis.from_url(  # type: ignore[no-untyped-call]
        url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )


async def close_redis() -> None:
    global _pool  # noqa: PLW0603
    if _pool:
        await _pool.aclose()
        _pool = None


def get_redis() -> redis.Redis | None:
    """The event publisher's client, or None when events are switched off."""
    return _pool
