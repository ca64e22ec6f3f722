"""Prize redemption workflow."""

from __future__ import annotations

import pytest

from phantom.db.models import RedemptionStatus
from phantom.exceptions import (
    BadRequestError,
    InsufficientBalanceError,
    NotFoundError,
    PrizeExhaustedError,
    RedemptionAlreadyResolvedError,
)
from phantom.events import REDEMPTION_CHANNEL, user_channel
from phantom.rewards.prizes import (
    all_redemption_history,
    create_prize,
    get_prize,
    list_prizes,
    redeem_prize,
    redemption_history,
    review_redemption,
)
from phantom.rewards.progress import credit_coins, get_progress

USER = 1


async def fund(db, user_id: int, amount: int) -> None:
    await credit_coins(db, user_id, amount)
    await db.commit()


class TestRedeemPrize:
    @pytest.mark.asyncio
    async def test_redeem_then_decline_restores_everything(self, db_session, redis_mock):
        await fund(db_session, USER, 700)
        prize = await create_prize(db_session, "Gift card", "card.png", amount=500, count=1)

        redemption = await redeem_prize(db_session, redis_mock, USER, prize.id)
        assert redemption.status == RedemptionStatus.PENDING.value
        assert (await get_progress(db_session, USER)).coin_balance == 200
        assert (await get_prize(db_session, prize.id)).count == 0

        declined = await review_redemption(db_session, redis_mock, redemption.id, RedemptionStatus.DECLINED)
        assert declined.status == RedemptionStatus.DECLINED.value
        assert (await get_progress(db_session, USER)).coin_balance == 700
        assert (await get_prize(db_session, prize.id)).count == 1

    @pytest.mark.asyncio
    async def test_successful_keeps_the_debit(self, db_session, redis_mock):
        await fund(db_session, USER, 500)
        prize = await create_prize(db_session, "Mug", "mug.png", amount=300, count=2)
        redemption = await redeem_prize(db_session, redis_mock, USER, prize.id)

        done = await review_redemption(
            db_session, redis_mock, redemption.id, RedemptionStatus.SUCCESSFUL, note="shipped",
        )
        assert done.status == RedemptionStatus.SUCCESSFUL.value
        assert done.note == "shipped"
        assert (await get_progress(db_session, USER)).coin_balance == 200
        assert (await get_prize(db_session, prize.id)).count == 1

    @pytest.mark.asyncio
    async def test_insufficient_balance_leaves_state_untouched(self, db_session, redis_mock):
        await fund(db_session, USER, 100)
        prize = await create_prize(db_session, "Gift card", "card.png", amount=500, count=1)

        with pytest.raises(InsufficientBalanceError):
            await redeem_prize(db_session, redis_mock, USER, prize.id)

        assert (await get_progress(db_session, USER)).coin_balance == 100
        assert (await get_prize(db_session, prize.id)).count == 1
        redis_mock.publish.assert_not_called()

    @pytest.mark.asyncio
    async def test_out_of_stock(self, db_session, redis_mock):
        await fund(db_session, USER, 1000)
        prize = await create_prize(db_session, "Gift card", "card.png", amount=500, count=0)
        with pytest.raises(PrizeExhaustedError):
            await redeem_prize(db_session, redis_mock, USER, prize.id)
        assert (await get_progress(db_session, USER)).coin_balance == 1000

    @pytest.mark.asyncio
    async def test_unknown_prize(self, db_session, redis_mock):
        with pytest.raises(NotFoundError):
            await redeem_prize(db_session, redis_mock, USER, 404)

    @pytest.mark.asyncio
    async def test_user_is_notified(self, db_session, redis_mock):
        await fund(db_session, USER, 500)
        prize = await create_prize(db_session, "Mug", "mug.png", amount=300, count=1)
        await redeem_prize(db_session, redis_mock, USER, prize.id)
        channels = [c.args[0] for c in redis_mock.publish.call_args_list]
        assert REDEMPTION_CHANNEL in channels
        assert user_channel(USER) in channels


class TestReviewRedemption:
    @pytest.mark.asyncio
    async def test_resolved_redemption_cannot_be_reviewed_again(self, db_session, redis_mock):
        await fund(db_session, USER, 700)
        prize = await create_prize(db_session, "Gift card", "card.png", amount=500, count=1)
        redemption = await redeem_prize(db_session, redis_mock, USER, prize.id)
        await review_redemption(db_session, redis_mock, redemption.id, RedemptionStatus.DECLINED)

        with pytest.raises(RedemptionAlreadyResolvedError) as exc_info:
            await review_redemption(db_session, redis_mock, redemption.id, RedemptionStatus.SUCCESSFUL)
        assert exc_info.value.status == "DECLINED"
        assert (await get_progress(db_session, USER)).coin_balance == 700

    @pytest.mark.asyncio
    async def test_pending_is_not_a_decision(self, db_session, redis_mock):
        with pytest.raises(BadRequestError):
            await review_redemption(db_session, redis_mock, 1, RedemptionStatus.PENDING)

    @pytest.mark.asyncio
    async def test_unknown_redemption(self, db_session, redis_mock):
        with pytest.raises(NotFoundError):
            await review_redemption(db_session, redis_mock, 404, RedemptionStatus.DECLINED)


class TestListing:
    @pytest.mark.asyncio
    async def test_prizes_show_latest_status_for_user(self, db_session, redis_mock):
        await fund(db_session, USER, 1000)
        mug = await create_prize(db_session, "Mug", "mug.png", amount=100, count=5)
        await create_prize(db_session, "Hat", "hat.png", amount=100, count=5)
        first = await redeem_prize(db_session, redis_mock, USER, mug.id)
        await review_redemption(db_session, redis_mock, first.id, RedemptionStatus.DECLINED)
        await redeem_prize(db_session, redis_mock, USER, mug.id)

        views = {v.prize.title: v for v in await list_prizes(db_session, USER)}
        assert views["Mug"].is_redeemed
        assert views["Mug"].status == "PENDING"
        assert not views["Hat"].is_redeemed
        assert views["Hat"].status is None

        other = {v.prize.title: v for v in await list_prizes(db_session, 2)}
        assert not other["Mug"].is_redeemed

    @pytest.mark.asyncio
    async def test_history(self, db_session, redis_mock):
        await fund(db_session, USER, 1000)
        await fund(db_session, 2, 1000)
        mug = await create_prize(db_session, "Mug", "mug.png", amount=100, count=5)
        await redeem_prize(db_session, redis_mock, USER, mug.id)
        await redeem_prize(db_session, redis_mock, USER, mug.id)
        await redeem_prize(db_session, redis_mock, 2, mug.id)

        mine, total = await redemption_history(db_session, USER)
        assert total == 2
        assert all(r.user_id == USER for r in mine)
        assert mine[0].prize.title == "Mug"

        page, total_all = await all_redemption_history(db_session, page=1, limit=2)
        assert total_all == 3
        assert len(page) == 2

        pending, total_pending = await all_redemption_history(db_session, status=RedemptionStatus.PENDING)
        assert total_pending == 3
