"""Reward constant tables.

These tables are built once per process by ``get_reward_tables()`` and are
immutable afterwards. Any change ships as a new ``TABLES_VERSION``; the daily
schedule and level interpolation can be overridden through settings at
process start.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

from phantom.config import get_settings

TABLES_VERSION = "2024.1"


class AchievementType(str, Enum):
    # Level-up checkpoints
    STARTER = "STARTER"
    EXPLORER = "EXPLORER"
    CRITIC = "CRITIC"
    ADVENTURER = "ADVENTURER"
    SOCIALITE = "SOCIALITE"
    INFLUENCER = "INFLUENCER"
    ELITE = "ELITE"
    AMBASSADOR = "AMBASSADOR"
    MASTER_EXPLORER = "MASTER_EXPLORER"
    LEGEND = "LEGEND"

    # Activity driven
    ROOKIE_REVIEWER = "ROOKIE_REVIEWER"
    CRITIC_ON_THE_RISE = "CRITIC_ON_THE_RISE"
    PAPARAZZI_PRO = "PAPARAZZI_PRO"
    CHECK_CHECK = "CHECK_CHECK"
    REACT_ROLL = "REACT_ROLL"
    EARLY_BIRD = "EARLY_BIRD"
    NIGHT_OWL = "NIGHT_OWL"


class RefType(str, Enum):
    """Source action of an XP reward."""

    REACTION = "Reaction"
    COMMENT = "Comment"
    CHECKIN = "CheckIn"
    REVIEW = "Review"
    HOMEMADE = "Homemade"


LEVEL_CHECKPOINTS: Mapping[int, int] = MappingProxyType({
    1: 0,
    10: 100,
    20: 501,
    30: 1201,
    40: 2501,
    50: 3501,
    60: 5101,
    70: 7001,
    80: 11001,
    90: 16001,
    100: 21001,
})

LEVEL_UP_ACHIEVEMENTS: Mapping[int, AchievementType] = MappingProxyType({
    10: AchievementType.STARTER,
    20: AchievementType.EXPLORER,
    30: AchievementType.CRITIC,
    40: AchievementType.ADVENTURER,
    50: AchievementType.SOCIALITE,
    60: AchievementType.INFLUENCER,
    70: AchievementType.ELITE,
    80: AchievementType.AMBASSADOR,
    90: AchievementType.MASTER_EXPLORER,
    100: AchievementType.LEGEND,
})

DAILY_COIN_SCHEDULE: tuple[int, ...] = (5, 10, 15, 20, 25, 30, 50)

REFERRAL_COINS = 250


@dataclass(frozen=True)
class ReviewRewardAmounts:
    has_rating: int = 15
    has_recommendation: int = 15
    has_text: int = 20
    has_images: int = 25
    has_videos: int = 50


@dataclass(frozen=True)
class RewardAmounts:
    """XP granted per action."""

    reaction: int = 1
    comment: int = 2
    checkin: int = 15
    homemade: int = 40
    review: ReviewRewardAmounts = field(default_factory=ReviewRewardAmounts)


@dataclass(frozen=True)
class RewardCaps:
    """Max rewarded actions by one user on one target (post or place)."""

    reactions_per_post: int = 1
    comments_per_post: int = 1
    checkins_per_place: int = 5
    reviews_per_place: int = 5


@dataclass(frozen=True)
class AchievementThresholds:
    rookie_reviewer_reviews: int = 1
    critic_reviews: int = 5
    paparazzi_media_reviews: int = 5
    check_check_checkins: int = 5
    check_check_window_days: int = 7
    react_roll_every: int = 25
    local_time_cooldown_hours: int = 12
    # [start, end) local hours; end < start wraps past midnight
    early_bird_hours: tuple[int, int] = (5, 9)
    night_owl_hours: tuple[int, int] = (22, 4)


@dataclass(frozen=True)
class RewardTables:
    version: str
    level_checkpoints: Mapping[int, int]
    level_up_achievements: Mapping[int, AchievementType]
    level_interpolation: bool
    daily_coin_schedule: tuple[int, ...]
    referral_coins: int
    amounts: RewardAmounts
    caps: RewardCaps
    thresholds: AchievementThresholds


def build_reward_tables(
    daily_coin_schedule: tuple[int, ...] | None = None,
    level_interpolation: bool = False,
) -> RewardTables:
    """Build a table set; the default arguments give the shipped tables."""
    schedule = tuple(daily_coin_schedule or DAILY_COIN_SCHEDULE)
    if any(amount < 0 for amount in schedule):
        raise ValueError("Daily coin schedule amounts must be non-negative")
    return RewardTables(
        version=TABLES_VERSION,
        level_checkpoints=LEVEL_CHECKPOINTS,
        level_up_achievements=LEVEL_UP_ACHIEVEMENTS,
        level_interpolation=level_interpolation,
        daily_coin_schedule=schedule,
        referral_coins=REFERRAL_COINS,
        amounts=RewardAmounts(),
        caps=RewardCaps(),
        thresholds=AchievementThresholds(),
    )


@lru_cache
def get_reward_tables() -> RewardTables:
    """Get the process-wide reward tables."""
    settings = get_settings()
    return build_reward_tables(
        daily_coin_schedule=tuple(settings.daily_coin_schedule) or None,
        level_interpolation=settings.level_interpolation,
    )
