"""Referral coin rewards."""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from phantom.db.models import CoinReward, CoinRewardType
from phantom.events import notify_user
from phantom.exceptions import BadRequestError, ReferralAlreadyRewardedError
from phantom.rewards.progress import credit_coins, insert_for, utcnow
from phantom.rewards.tables import RewardTables, get_reward_tables

logger = logging.getLogger(__name__)


async def grant_referral(
    db: AsyncSession,
    redis: object | None,
    referrer_id: int,
    referred_user_id: int,
    referred_name: str | None = None,
    tables: RewardTables | None = None,
) -> CoinReward:
    """Pay the referrer for a new user's signup.

    A referred user pays out once; the unique ``referred_user_id`` decides
    concurrent attempts.
    """
    if referrer_id == referred_user_id:
        raise BadRequestError("A user cannot refer themselves")
    amount = (tables or get_reward_tables()).referral_coins

    inserted = await db.execute(
        insert_for(db, CoinReward.__table__).values(
            user_id=referrer_id,
            amount=amount,
            coin_reward_type=CoinRewardType.REFERRAL.value,
            referred_user_id=referred_user_id,
            created_at=utcnow(),
        ).on_conflict_do_nothing(index_elements=["referred_user_id"])
    )
    if inserted.rowcount != 1:
        raise ReferralAlreadyRewardedError(referred_user_id)

    await credit_coins(db, referrer_id, amount)
    await db.commit()

    result = await db.execute(
        select(CoinReward).where(CoinReward.referred_user_id == referred_user_id)
    )
    reward = result.scalar_one()
    logger.info(
        "User %s earned %s referral coins for user %s", referrer_id, amount, referred_user_id,
    )

    who = referred_name or "A friend"
    await notify_user(
        redis, referrer_id, "referral_reward",
        "Referral Reward",
        f"{who} joined with your referral. You earned {amount} Phantom Coins.",
        {"amount": amount, "referred_user_id": referred_user_id, "referred_name": referred_name},
    )
    return reward
