"""Level computation from XP over a sparse checkpoint table.

By default a user's level is the highest checkpoint reached (1, 10, 20, ...).
``LevelTable(interpolate=True)`` fills the levels between two checkpoints
linearly, rounding each threshold up.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from collections.abc import Mapping
from functools import lru_cache

from phantom.rewards.tables import get_reward_tables

MIN_LEVEL = 1


class LevelTable:
    """Sorted (level, threshold) pairs with O(log n) lookup."""

    def __init__(self, checkpoints: Mapping[int, int], interpolate: bool = False) -> None:
        if not checkpoints:
            raise ValueError("Level table needs at least one checkpoint")
        points = dict(checkpoints)
        if interpolate:
            points = _fill_linearly(points)
        self.levels: list[int] = sorted(points)
        self.thresholds: list[int] = [points[level] for level in self.levels]
        if any(b < a for a, b in zip(self.thresholds, self.thresholds[1:])):
            raise ValueError("Level thresholds must be non-decreasing")
        self.interpolate = interpolate

    @property
    def max_level(self) -> int:
        return self.levels[-1]

    def level_for(self, xp: int) -> int:
        if xp < 0:
            raise ValueError(f"xp must be non-negative, got {xp}")
        idx = bisect_right(self.thresholds, xp)
        if idx == 0:
            return MIN_LEVEL
        return max(self.levels[idx - 1], MIN_LEVEL)

    def remaining_xp(self, xp: int) -> int:
        level = self.level_for(xp)
        for candidate, threshold in zip(self.levels, self.thresholds):
            if candidate > level:
                return max(threshold - xp, 0)
        return 0

    def checkpoints_crossed(self, old_level: int, new_level: int) -> list[int]:
        """Checkpoint levels in (old_level, new_level], ascending."""
        return [level for level in self.levels if old_level < level <= new_level]


def _fill_linearly(points: dict[int, int]) -> dict[int, int]:
    filled = dict(points)
    ordered = sorted(points)
    for start, end in zip(ordered, ordered[1:]):
        start_xp, end_xp = points[start], points[end]
        per_level = (end_xp - start_xp) / (end - start)
        for step in range(1, end - start):
            filled[start + step] = math.ceil(start_xp + per_level * step)
    return filled


@lru_cache
def default_level_table() -> LevelTable:
    tables = get_reward_tables()
    return LevelTable(tables.level_checkpoints, interpolate=tables.level_interpolation)


def level_for(xp: int, table: LevelTable | None = None) -> int:
    """Level reached with ``xp``."""
    return (table or default_level_table()).level_for(xp)


def remaining_xp(xp: int, table: LevelTable | None = None) -> int:
    """XP still needed for the next threshold; 0 at or above the top checkpoint."""
    return (table or default_level_table()).remaining_xp(xp)
