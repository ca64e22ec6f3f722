"""Fire-and-forget outbound events over Redis pub/sub.

The activity feed and the notification subsystem (email + push) subscribe to
these channels; the reward engine never waits on them and never fails
because of them.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

LEVEL_UP_CHANNEL = "pubsub:level_up"
ACHIEVEMENT_CHANNEL = "pubsub:achievement_earned"
REDEMPTION_CHANNEL = "pubsub:prize_redemption"


def user_channel(user_id: int) -> str:
    """Per-user notification channel consumed by the push/email bridge."""
    return f"ws:user:{user_id}"


async def publish_event(redis: object | None, channel: str, payload: dict[str, Any]) -> bool:
    """Publish a JSON payload. Returns False when skipped or failed."""
    if redis is None:
        return False
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[attr-defined]
    except Exception:
        logger.warning("Failed to publish event on %s", channel, exc_info=True)
        return False
    return True


async def emit_level_up(redis: object | None, user_id: int, old_level: int, new_level: int) -> None:
    """Level-up activity for the feed, published as a LEVEL_UP user activity."""
    await publish_event(redis, LEVEL_UP_CHANNEL, {
        "user_id": user_id,
        "activity_type": "LEVEL_UP",
        "old_level": old_level,
        "new_level": new_level,
        "privacy": "PUBLIC",
    })


async def emit_achievements(redis: object | None, user_id: int, achievement_types: list[str]) -> None:
    if not achievement_types:
        return
    await publish_event(redis, ACHIEVEMENT_CHANNEL, {
        "user_id": user_id,
        "achievements": achievement_types,
    })


async def notify_user(
    redis: object | None,
    user_id: int,
    subtype: str,
    title: str,
    description: str,
    extra: dict[str, Any] | None = None,
) -> None:
    """Hand a notification to the notification subsystem for email + push delivery."""
    await publish_event(redis, user_channel(user_id), {
        "event": "notification",
        "data": {
            "type": "rewards",
            "subtype": subtype,
            "title": title,
            "description": description,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **(extra or {}),
        },
    })
