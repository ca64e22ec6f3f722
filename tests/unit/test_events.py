"""Fire-and-forget event publishing."""

import json
from unittest.mock import AsyncMock

import pytest

from phantom.events import LEVEL_UP_CHANNEL, emit_level_up, notify_user, publish_event, user_channel


class TestPublishEvent:
    @pytest.mark.asyncio
    async def test_no_redis_is_skipped(self):
        assert await publish_event(None, "chan", {"a": 1}) is False

    @pytest.mark.asyncio
    async def test_publishes_json(self):
        redis = AsyncMock()
        assert await publish_event(redis, "chan", {"a": 1}) is True
        channel, payload = redis.publish.call_args.args
        assert channel == "chan"
        assert json.loads(payload) == {"a": 1}

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self):
        redis = AsyncMock()
        redis.publish.side_effect = ConnectionError("down")
        assert await publish_event(redis, "chan", {"a": 1}) is False

    @pytest.mark.asyncio
    async def test_level_up_payload(self):
        redis = AsyncMock()
        await emit_level_up(redis, 7, 1, 10)
        channel, payload = redis.publish.call_args.args
        assert channel == LEVEL_UP_CHANNEL
        data = json.loads(payload)
        assert data["user_id"] == 7
        assert data["new_level"] == 10
        assert data["activity_type"] == "LEVEL_UP"

    @pytest.mark.asyncio
    async def test_notification_goes_to_user_channel(self):
        redis = AsyncMock()
        await notify_user(redis, 3, "redemption_in_progress", "Title", "Body", {"redemption_id": 9})
        channel, payload = redis.publish.call_args.args
        assert channel == user_channel(3)
        data = json.loads(payload)["data"]
        assert data["subtype"] == "redemption_in_progress"
        assert data["redemption_id"] == 9
