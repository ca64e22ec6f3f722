"""XP ledger: grant and reverse rewards tied to user actions."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from phantom.db.models import Achievement, Reward
from phantom.events import emit_level_up
from phantom.exceptions import (
    DuplicateRewardError,
    LedgerInvariantError,
    RewardError,
    RewardNotFoundError,
)
from phantom.rewards.achievements import grant_level_up_achievements, list_achievements
from phantom.rewards.levels import LevelTable, default_level_table
from phantom.rewards.progress import (
    conditional_update,
    get_or_create_progress,
    get_progress,
    insert_for,
    progress_table,
    utcnow,
)
from phantom.rewards.tables import RefType

logger = logging.getLogger(__name__)


class ReversalMode(str, Enum):
    REQUIRED = "REQUIRED"
    BEST_EFFORT = "BEST_EFFORT"


@dataclass(frozen=True)
class RewardReason:
    """What a reward was earned for.

    ``user_activity_id`` and ``place_id`` narrow the match when one ref
    (a review, say) can earn more than one ledger entry.
    """

    ref_type: RefType
    ref_id: str
    user_activity_id: str | None = None
    place_id: str | None = None

    @property
    def key(self) -> str:
        return f"{self.ref_type.value}:{self.ref_id}:{self.user_activity_id or '-'}"


@dataclass
class GrantResult:
    reward: Reward
    old_xp: int
    new_xp: int
    old_level: int
    new_level: int
    achievements: list[Achievement] = field(default_factory=list)

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


@dataclass
class ProgressSummary:
    xp: int
    level: int
    remaining_xp: int
    coin_balance: int
    daily_streak: int
    achievements: list[Achievement]


async def _sync_level(db: AsyncSession, user_id: int, xp: int, table: LevelTable) -> int:
    """Store the level for ``xp`` unless another writer has moved xp since."""
    level = table.level_for(xp)
    await conditional_update(db, user_id, {"level": level}, progress_table.c.xp == xp)
    return level


async def grant(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    amount: int,
    reason: RewardReason,
    table: LevelTable | None = None,
) -> GrantResult:
    """Record a reward and add its XP.

    Raises DuplicateRewardError when the same reason was already rewarded.
    Flushes but does not commit; the caller owns the transaction. The
    level-up and achievement events go out before that commit.
    """
    if amount < 0:
        raise ValueError("reward amount must be non-negative")
    table = table or default_level_table()

    await get_or_create_progress(db, user_id)

    inserted = await db.execute(
        insert_for(db, Reward.__table__).values(
            user_id=user_id,
            amount=amount,
            ref_type=reason.ref_type.value,
            ref_id=reason.ref_id,
            user_activity_id=reason.user_activity_id,
            place_id=reason.place_id,
            reason_key=reason.key,
            created_at=utcnow(),
        ).on_conflict_do_nothing(index_elements=["user_id", "reason_key"])
    )
    if inserted.rowcount != 1:
        raise DuplicateRewardError(user_id, reason.key)

    result = await db.execute(
        select(Reward).where(Reward.user_id == user_id, Reward.reason_key == reason.key)
    )
    reward = result.scalar_one()

    await conditional_update(db, user_id, {"xp": progress_table.c.xp + amount})
    progress = await get_progress(db, user_id)
    new_xp = progress.xp
    old_xp = new_xp - amount
    old_level = table.level_for(old_xp)
    new_level = await _sync_level(db, user_id, new_xp, table)

    achievements: list[Achievement] = []
    if new_level > old_level:
        try:
            async with db.begin_nested():
                achievements = await grant_level_up_achievements(
                    db, redis, user_id, old_level, new_level,
                )
        except Exception:
            logger.exception("Level-up achievements failed for user %s", user_id)
        await emit_level_up(redis, user_id, old_level, new_level)
        logger.info("User %s leveled up %s -> %s", user_id, old_level, new_level)

    await db.flush()
    return GrantResult(
        reward=reward,
        old_xp=old_xp,
        new_xp=new_xp,
        old_level=old_level,
        new_level=new_level,
        achievements=achievements,
    )


async def _find_reward(db: AsyncSession, user_id: int, reason: RewardReason) -> Reward | None:
    q = select(Reward).where(
        Reward.user_id == user_id,
        Reward.ref_type == reason.ref_type.value,
        Reward.ref_id == reason.ref_id,
    )
    if reason.user_activity_id is not None:
        q = q.where(Reward.user_activity_id == reason.user_activity_id)
    if reason.place_id is not None:
        q = q.where(Reward.place_id == reason.place_id)
    result = await db.execute(q.order_by(Reward.id).limit(1))
    return result.scalar_one_or_none()


async def _reverse(
    db: AsyncSession,
    user_id: int,
    reason: RewardReason,
    table: LevelTable,
) -> Reward:
    reward = await _find_reward(db, user_id, reason)
    if reward is None:
        raise RewardNotFoundError(user_id, reason.key)

    # A concurrent reversal of the same row deletes nothing here.
    deleted = await db.execute(delete(Reward.__table__).where(Reward.__table__.c.id == reward.id))
    if deleted.rowcount != 1:
        raise RewardNotFoundError(user_id, reason.key)
    db.expunge(reward)

    ok = await conditional_update(
        db, user_id,
        {"xp": progress_table.c.xp - reward.amount},
        progress_table.c.xp >= reward.amount,
    )
    if not ok:
        raise LedgerInvariantError(
            f"Reversing {reason.key} would make xp negative for user {user_id}"
        )

    progress = await get_progress(db, user_id)
    await _sync_level(db, user_id, progress.xp, table)
    await db.flush()
    return reward


async def reverse(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    reason: RewardReason,
    mode: ReversalMode = ReversalMode.REQUIRED,
    table: LevelTable | None = None,
) -> Reward | None:
    """Remove a reward and take its XP back. Achievements are kept.

    With ``ReversalMode.BEST_EFFORT`` ledger errors are logged and ``None``
    is returned instead of raising.
    """
    table = table or default_level_table()
    try:
        # The delete and the xp decrement land together or not at all.
        async with db.begin_nested():
            reward = await _reverse(db, user_id, reason, table)
    except RewardError as exc:
        if mode is not ReversalMode.BEST_EFFORT:
            raise
        logger.warning(
            "Best-effort reversal skipped",
            extra={"user_id": user_id, "reason_key": reason.key, "error": exc.message},
        )
        return None

    logger.info("Reversed reward %s (%s xp) for user %s", reason.key, reward.amount, user_id)
    return reward


async def get_progress_summary(
    db: AsyncSession, user_id: int, table: LevelTable | None = None,
) -> ProgressSummary:
    table = table or default_level_table()
    progress = await get_or_create_progress(db, user_id)
    return ProgressSummary(
        xp=progress.xp,
        level=progress.level,
        remaining_xp=table.remaining_xp(progress.xp),
        coin_balance=progress.coin_balance,
        daily_streak=progress.daily_streak,
        achievements=await list_achievements(db, user_id),
    )
