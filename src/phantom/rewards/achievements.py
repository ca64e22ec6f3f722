"""Achievement evaluation: a registry of eligibility rules.

Each achievement type maps to one rule object implementing
``evaluate(ctx) -> GrantInstruction | None``. The evaluator runs the rules
relevant to an activity under the user's progress-row lock, persists what
they return, and never lets a failing rule block the action that triggered
it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from types import MappingProxyType
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from phantom.db.models import Achievement, ActivityKind
from phantom.events import emit_achievements
from phantom.rewards.activity_store import ActivityStore, SqlActivityStore
from phantom.rewards.progress import (
    as_utc,
    conditional_update,
    insert_for,
    lock_progress,
    progress_table,
    utcnow,
)
from phantom.rewards.tables import (
    AchievementThresholds,
    AchievementType,
    RewardTables,
    get_reward_tables,
)
from phantom.rewards.timezones import TimezoneResolver, get_timezone_resolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GrantInstruction:
    """Rows to create: one Achievement per entry of ``dedupe_keys``."""

    achievement_type: AchievementType
    dedupe_keys: tuple[str | None, ...] = (None,)


@dataclass
class RuleContext:
    user_id: int
    held: list[Achievement]
    store: ActivityStore
    resolver: TimezoneResolver | None
    now: datetime = field(default_factory=utcnow)

    def held_of(self, achievement_type: AchievementType) -> list[Achievement]:
        return [a for a in self.held if a.type == achievement_type.value]

    def held_since(self, achievement_type: AchievementType, since: datetime) -> list[Achievement]:
        return [a for a in self.held_of(achievement_type) if as_utc(a.created_at) > since]


class AchievementRule(Protocol):
    achievement_type: AchievementType

    async def evaluate(self, ctx: RuleContext) -> GrantInstruction | None: ...


# ---------------------------------------------------------------------------
# Rule kinds
# ---------------------------------------------------------------------------


class OneShotRule:
    """Granted once when a lifetime count reaches a threshold."""

    def __init__(
        self,
        achievement_type: AchievementType,
        kind: ActivityKind,
        threshold: int,
        with_media: bool = False,
    ) -> None:
        self.achievement_type = achievement_type
        self.kind = kind
        self.threshold = threshold
        self.with_media = with_media

    async def evaluate(self, ctx: RuleContext) -> GrantInstruction | None:
        if ctx.held_of(self.achievement_type):
            return None
        count = await ctx.store.count(ctx.user_id, self.kind, with_media=self.with_media)
        if count < self.threshold:
            return None
        return GrantInstruction(self.achievement_type, (self.achievement_type.value,))


class CountableRule:
    """One copy per ``every`` activities received on the user's content."""

    def __init__(self, achievement_type: AchievementType, kind: ActivityKind, every: int) -> None:
        if every <= 0:
            raise ValueError("every must be positive")
        self.achievement_type = achievement_type
        self.kind = kind
        self.every = every

    async def evaluate(self, ctx: RuleContext) -> GrantInstruction | None:
        count = await ctx.store.count_received(ctx.user_id, self.kind)
        earned = count // self.every
        held = len(ctx.held_of(self.achievement_type))
        if earned <= held:
            return None
        keys = tuple(f"{self.achievement_type.value}#{n}" for n in range(held + 1, earned + 1))
        return GrantInstruction(self.achievement_type, keys)


class RollingWindowRule:
    """At most one per window, gated on activity inside that same window."""

    def __init__(
        self,
        achievement_type: AchievementType,
        kind: ActivityKind,
        threshold: int,
        window: timedelta,
    ) -> None:
        self.achievement_type = achievement_type
        self.kind = kind
        self.threshold = threshold
        self.window = window

    async def evaluate(self, ctx: RuleContext) -> GrantInstruction | None:
        since = ctx.now - self.window
        if ctx.held_since(self.achievement_type, since):
            return None
        count = await ctx.store.count(ctx.user_id, self.kind, since=since)
        if count < self.threshold:
            return None
        return GrantInstruction(self.achievement_type)


class LocalTimeOfDayRule:
    """Latest check-in happened inside [start, end) local hours at its location."""

    def __init__(
        self,
        achievement_type: AchievementType,
        hours: tuple[int, int],
        cooldown: timedelta,
    ) -> None:
        self.achievement_type = achievement_type
        self.start_hour, self.end_hour = hours
        self.cooldown = cooldown

    def in_range(self, hour: int) -> bool:
        if self.start_hour <= self.end_hour:
            return self.start_hour <= hour < self.end_hour
        return hour >= self.start_hour or hour < self.end_hour

    async def evaluate(self, ctx: RuleContext) -> GrantInstruction | None:
        if ctx.resolver is None:
            return None
        if ctx.held_since(self.achievement_type, ctx.now - self.cooldown):
            return None
        checkin = await ctx.store.latest(ctx.user_id, ActivityKind.CHECKIN)
        if checkin is None or checkin.latitude is None or checkin.longitude is None:
            return None
        tz: tzinfo | None = await ctx.resolver.resolve(checkin.latitude, checkin.longitude)
        if tz is None:
            return None
        local = as_utc(checkin.created_at).astimezone(tz)
        if not self.in_range(local.hour):
            return None
        return GrantInstruction(self.achievement_type)


class LevelUpRule:
    """One achievement per checkpoint crossed, multi-checkpoint jumps included."""

    def __init__(self, checkpoints: Mapping[int, AchievementType]) -> None:
        self.checkpoints = checkpoints

    def instructions(self, old_level: int, new_level: int) -> list[GrantInstruction]:
        return [
            GrantInstruction(achievement_type, (achievement_type.value,))
            for level, achievement_type in sorted(self.checkpoints.items())
            if old_level < level <= new_level
        ]


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


ACTIVITY_ACHIEVEMENTS: Mapping[ActivityKind, tuple[AchievementType, ...]] = MappingProxyType({
    ActivityKind.REVIEW: (
        AchievementType.ROOKIE_REVIEWER,
        AchievementType.CRITIC_ON_THE_RISE,
        AchievementType.PAPARAZZI_PRO,
    ),
    ActivityKind.CHECKIN: (
        AchievementType.CHECK_CHECK,
        AchievementType.EARLY_BIRD,
        AchievementType.NIGHT_OWL,
    ),
    ActivityKind.REACTION: (AchievementType.REACT_ROLL,),
})


def build_rules(thresholds: AchievementThresholds) -> dict[AchievementType, AchievementRule]:
    cooldown = timedelta(hours=thresholds.local_time_cooldown_hours)
    rules: list[AchievementRule] = [
        OneShotRule(AchievementType.ROOKIE_REVIEWER, ActivityKind.REVIEW, thresholds.rookie_reviewer_reviews),
        OneShotRule(AchievementType.CRITIC_ON_THE_RISE, ActivityKind.REVIEW, thresholds.critic_reviews),
        OneShotRule(
            AchievementType.PAPARAZZI_PRO, ActivityKind.REVIEW,
            thresholds.paparazzi_media_reviews, with_media=True,
        ),
        RollingWindowRule(
            AchievementType.CHECK_CHECK, ActivityKind.CHECKIN,
            thresholds.check_check_checkins, timedelta(days=thresholds.check_check_window_days),
        ),
        CountableRule(AchievementType.REACT_ROLL, ActivityKind.REACTION, thresholds.react_roll_every),
        LocalTimeOfDayRule(AchievementType.EARLY_BIRD, thresholds.early_bird_hours, cooldown),
        LocalTimeOfDayRule(AchievementType.NIGHT_OWL, thresholds.night_owl_hours, cooldown),
    ]
    return {rule.achievement_type: rule for rule in rules}


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


async def list_achievements(db: AsyncSession, user_id: int) -> list[Achievement]:
    """The user's achievement list, in grant order."""
    result = await db.execute(
        select(Achievement).where(Achievement.user_id == user_id).order_by(Achievement.id)
    )
    return list(result.scalars().all())


async def persist_grants(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    instructions: Iterable[GrantInstruction],
) -> list[Achievement]:
    """Create the rows an instruction list asks for.

    Keyed rows go through INSERT .. ON CONFLICT DO NOTHING, so a grant that
    lost a race to a concurrent request is skipped rather than duplicated.
    """
    granted: list[Achievement] = []
    now = utcnow()

    for instruction in instructions:
        for key in instruction.dedupe_keys:
            if key is None:
                achievement = Achievement(
                    user_id=user_id,
                    type=instruction.achievement_type.value,
                    created_at=now,
                )
                db.add(achievement)
                await db.flush()
                granted.append(achievement)
                continue

            result = await db.execute(
                insert_for(db, Achievement.__table__).values(
                    user_id=user_id,
                    type=instruction.achievement_type.value,
                    dedupe_key=key,
                    created_at=now,
                ).on_conflict_do_nothing(index_elements=["user_id", "dedupe_key"])
            )
            if result.rowcount != 1:
                continue
            row = await db.execute(
                select(Achievement).where(
                    Achievement.user_id == user_id, Achievement.dedupe_key == key,
                )
            )
            granted.append(row.scalar_one())

    if granted:
        await conditional_update(
            db, user_id,
            {"achievements_earned": progress_table.c.achievements_earned + len(granted)},
        )
        await emit_achievements(redis, user_id, [a.type for a in granted])
        logger.info(
            "Granted achievements to user %s: %s", user_id, [a.type for a in granted],
        )
    return granted


async def grant_level_up_achievements(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    old_level: int,
    new_level: int,
    tables: RewardTables | None = None,
) -> list[Achievement]:
    """Level-up rule entry point used by the ledger after an XP change."""
    tables = tables or get_reward_tables()
    rule = LevelUpRule(tables.level_up_achievements)
    instructions = rule.instructions(old_level, new_level)
    if not instructions:
        return []
    return await persist_grants(db, redis, user_id, instructions)


class AchievementEvaluator:
    """Evaluates achievement rules for one database session."""

    def __init__(
        self,
        db: AsyncSession,
        redis: object | None = None,
        store: ActivityStore | None = None,
        resolver: TimezoneResolver | None = None,
        tables: RewardTables | None = None,
        rules: Mapping[AchievementType, AchievementRule] | None = None,
        use_default_resolver: bool = True,
    ) -> None:
        self.db = db
        self.redis = redis
        self.tables = tables or get_reward_tables()
        self.store = store or SqlActivityStore(db)
        if resolver is None and use_default_resolver:
            resolver = get_timezone_resolver()
        self.resolver = resolver
        self.rules = dict(rules) if rules is not None else build_rules(self.tables.thresholds)

    async def evaluate(self, user_id: int, activity: ActivityKind) -> list[Achievement]:
        """Run every rule attached to an activity kind."""
        return await self.evaluate_types(user_id, ACTIVITY_ACHIEVEMENTS.get(activity, ()))

    async def evaluate_types(
        self, user_id: int, achievement_types: Iterable[AchievementType],
    ) -> list[Achievement]:
        achievement_types = list(achievement_types)
        if not achievement_types:
            return []

        await lock_progress(self.db, user_id)
        ctx = RuleContext(
            user_id=user_id,
            held=await list_achievements(self.db, user_id),
            store=self.store,
            resolver=self.resolver,
        )

        instructions: list[GrantInstruction] = []
        for achievement_type in achievement_types:
            rule = self.rules.get(achievement_type)
            if rule is None:
                logger.warning("No rule registered for achievement %s", achievement_type.value)
                continue
            # A failed rule only loses its own savepoint, never the caller's transaction.
            try:
                async with self.db.begin_nested():
                    instruction = await rule.evaluate(ctx)
            except Exception:
                logger.exception(
                    "Achievement rule %s failed for user %s", achievement_type.value, user_id,
                )
                continue
            if instruction is not None:
                instructions.append(instruction)

        return await persist_grants(self.db, self.redis, user_id, instructions)

    async def grant_level_up(self, user_id: int, old_level: int, new_level: int) -> list[Achievement]:
        return await grant_level_up_achievements(
            self.db, self.redis, user_id, old_level, new_level, self.tables,
        )
