"""Coordinate -> timezone lookup for local-time achievement rules."""

from __future__ import annotations

import asyncio
import logging
from datetime import tzinfo
from functools import lru_cache
from typing import Protocol
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from timezonefinder import TimezoneFinder

from phantom.config import get_settings

logger = logging.getLogger(__name__)


class TimezoneResolver(Protocol):
    async def resolve(self, latitude: float, longitude: float) -> tzinfo | None: ...


class TimezoneFinderResolver:
    """Offline polygon lookup; the finder is built on first use."""

    def __init__(self) -> None:
        self._finder: TimezoneFinder | None = None

    def _lookup(self, latitude: float, longitude: float) -> str | None:
        if self._finder is None:
            self._finder = TimezoneFinder()
        return self._finder.timezone_at(lng=longitude, lat=latitude)

    async def resolve(self, latitude: float, longitude: float) -> tzinfo | None:
        name = await asyncio.to_thread(self._lookup, latitude, longitude)
        if name is None:
            return None
        try:
            return ZoneInfo(name)
        except ZoneInfoNotFoundError:
            logger.warning("Unknown timezone %s for (%s, %s)", name, latitude, longitude)
            return None


@lru_cache
def get_timezone_resolver() -> TimezoneResolver | None:
    """Process-wide resolver, or None when local-time rules are disabled."""
    if not get_settings().local_time_lookup_enabled:
        return None
    return TimezoneFinderResolver()
