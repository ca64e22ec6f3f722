"""Daily coin claim with a capped, resetting streak.

Days are UTC calendar days. The streak counts claims in the current cycle;
it resets when a full calendar day is skipped or after the last step of the
schedule has been paid out.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from phantom.db.models import CoinReward, CoinRewardType
from phantom.exceptions import DailyClaimIneligibleError
from phantom.rewards.progress import (
    conditional_update,
    get_or_create_progress,
    progress_table,
    utcnow,
)
from phantom.rewards.tables import get_reward_tables

logger = logging.getLogger(__name__)

RESET_AFTER = timedelta(days=2)


@dataclass(frozen=True)
class DailyState:
    count: int
    last_claim: date | None = None


@dataclass
class DailyClaimResult:
    amount: int
    streak: int
    coin_balance: int
    claimed_on: date


@dataclass
class DailyStatus:
    streak: int
    eligible: bool
    next_amount: int
    last_claim: date | None
    schedule: tuple[int, ...]


def today_utc() -> date:
    return utcnow().date()


def is_eligible(daily: DailyState, today: date) -> bool:
    """At most one claim per calendar day."""
    return daily.last_claim is None or daily.last_claim < today


def apply_reset_if_needed(daily: DailyState, today: date, schedule: Sequence[int]) -> DailyState:
    if daily.last_claim is None:
        return daily
    if today - daily.last_claim >= RESET_AFTER or daily.count >= len(schedule):
        return replace(daily, count=0)
    return daily


def amount_for(daily: DailyState, schedule: Sequence[int]) -> int:
    return schedule[min(daily.count, len(schedule) - 1)]


async def daily_status(db: AsyncSession, user_id: int, today: date | None = None) -> DailyStatus:
    """Effective streak and the amount the next claim would pay.

    Until today's claim window opens the streak is shown as claimed, and the
    next amount is the one tomorrow's claim would pay.
    """
    today = today or today_utc()
    schedule = get_reward_tables().daily_coin_schedule
    progress = await get_or_create_progress(db, user_id)
    state = DailyState(progress.daily_streak, progress.last_daily_claim)
    eligible = is_eligible(state, today)
    if eligible:
        state = apply_reset_if_needed(state, today, schedule)
        upcoming = state
    else:
        upcoming = apply_reset_if_needed(state, today + timedelta(days=1), schedule)
    return DailyStatus(
        streak=state.count,
        eligible=eligible,
        next_amount=amount_for(upcoming, schedule),
        last_claim=state.last_claim,
        schedule=tuple(schedule),
    )


async def claim_daily(db: AsyncSession, user_id: int, today: date | None = None) -> DailyClaimResult:
    """Pay today's daily coins.

    The write is one UPDATE guarded on the ``last_daily_claim`` value read
    here, so of two concurrent claims only one matches.
    """
    today = today or today_utc()
    schedule = get_reward_tables().daily_coin_schedule
    progress = await get_or_create_progress(db, user_id)
    observed = DailyState(progress.daily_streak, progress.last_daily_claim)

    if not is_eligible(observed, today):
        raise DailyClaimIneligibleError()

    state = apply_reset_if_needed(observed, today, schedule)
    amount = amount_for(state, schedule)
    streak = state.count + 1

    if observed.last_claim is None:
        guard = progress_table.c.last_daily_claim.is_(None)
    else:
        guard = progress_table.c.last_daily_claim == observed.last_claim

    async with db.begin_nested():
        ok = await conditional_update(
            db, user_id,
            {
                "daily_streak": streak,
                "last_daily_claim": today,
                "coin_balance": progress_table.c.coin_balance + amount,
            },
            guard,
        )
        if not ok:
            raise DailyClaimIneligibleError()

    db.add(CoinReward(
        user_id=user_id,
        amount=amount,
        coin_reward_type=CoinRewardType.DAILY.value,
        created_at=utcnow(),
    ))
    await db.commit()

    await db.refresh(progress)
    logger.info("User %s claimed %s daily coins (streak %s)", user_id, amount, streak)
    return DailyClaimResult(
        amount=amount,
        streak=streak,
        coin_balance=progress.coin_balance,
        claimed_on=today,
    )
