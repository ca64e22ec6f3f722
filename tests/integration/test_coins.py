"""Referral coin rewards."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from phantom.db.models import CoinReward
from phantom.events import user_channel
from phantom.exceptions import BadRequestError, ReferralAlreadyRewardedError
from phantom.rewards.coins import grant_referral
from phantom.rewards.progress import get_progress

REFERRER = 1
NEW_USER = 2


class TestGrantReferral:
    @pytest.mark.asyncio
    async def test_referrer_is_paid(self, db_session, redis_mock):
        reward = await grant_referral(db_session, redis_mock, REFERRER, NEW_USER, "Sam")

        assert reward.user_id == REFERRER
        assert reward.amount == 250
        assert reward.coin_reward_type == "REFERRAL"
        assert reward.referred_user_id == NEW_USER
        assert (await get_progress(db_session, REFERRER)).coin_balance == 250

    @pytest.mark.asyncio
    async def test_referred_user_pays_out_once(self, db_session, redis_mock):
        await grant_referral(db_session, redis_mock, REFERRER, NEW_USER)
        with pytest.raises(ReferralAlreadyRewardedError):
            await grant_referral(db_session, redis_mock, 3, NEW_USER)

        assert (await get_progress(db_session, REFERRER)).coin_balance == 250
        rows = (await db_session.execute(
            select(CoinReward).where(CoinReward.referred_user_id == NEW_USER)
        )).scalars().all()
        assert [r.user_id for r in rows] == [REFERRER]

    @pytest.mark.asyncio
    async def test_each_referral_counts(self, db_session, redis_mock):
        await grant_referral(db_session, redis_mock, REFERRER, NEW_USER)
        await grant_referral(db_session, redis_mock, REFERRER, 3)
        assert (await get_progress(db_session, REFERRER)).coin_balance == 500

    @pytest.mark.asyncio
    async def test_self_referral_rejected(self, db_session, redis_mock):
        with pytest.raises(BadRequestError):
            await grant_referral(db_session, redis_mock, REFERRER, REFERRER)
        redis_mock.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_referrer_is_notified(self, db_session, redis_mock):
        await grant_referral(db_session, redis_mock, REFERRER, NEW_USER, "Sam")
        channel, message = redis_mock.publish.call_args.args
        assert channel == user_channel(REFERRER)
        assert "referral_reward" in message
        assert "Sam" in message
