"""Rewarding and reversing user actions."""

from __future__ import annotations

import pytest

from phantom.exceptions import RewardNotFoundError
from phantom.rewards.actions import ActionReward, reward_action, reward_amount_for, reverse_action
from phantom.rewards.ledger import RewardReason
from phantom.rewards.progress import get_progress
from phantom.rewards.tables import RefType

USER = 1
AUTHOR = 2


class TestRewardAmounts:
    def test_review_sums_its_parts(self):
        action = ActionReward(RefType.REVIEW, "r1", has_rating=True, has_text=True, has_videos=True)
        assert reward_amount_for(action) == 15 + 20 + 50

    def test_empty_review_earns_nothing(self):
        assert reward_amount_for(ActionReward(RefType.REVIEW, "r1")) == 0

    def test_fixed_amounts(self):
        assert reward_amount_for(ActionReward(RefType.REACTION, "x")) == 1
        assert reward_amount_for(ActionReward(RefType.COMMENT, "x")) == 2
        assert reward_amount_for(ActionReward(RefType.CHECKIN, "x")) == 15
        assert reward_amount_for(ActionReward(RefType.HOMEMADE, "x")) == 40


class TestRewardAction:
    @pytest.mark.asyncio
    async def test_review_grants_xp_and_rookie(self, db_session, redis_mock, evaluator):
        action = ActionReward(
            RefType.REVIEW, "review-1", user_activity_id="act-1", place_id="place-1",
            target_id="place-1", has_rating=True, has_text=True,
        )
        result = await reward_action(db_session, redis_mock, USER, action, evaluator)

        assert result.granted.new_xp == 35
        assert [a.type for a in result.new_achievements] == ["ROOKIE_REVIEWER"]
        assert (await get_progress(db_session, USER)).xp == 35

    @pytest.mark.asyncio
    async def test_second_reaction_on_same_post_not_rewarded(self, db_session, redis_mock, evaluator):
        first = ActionReward(RefType.REACTION, "reaction-1", target_id="post-1", target_owner_id=AUTHOR)
        second = ActionReward(RefType.REACTION, "reaction-2", target_id="post-1", target_owner_id=AUTHOR)

        assert (await reward_action(db_session, redis_mock, USER, first, evaluator)).granted is not None
        assert (await reward_action(db_session, redis_mock, USER, second, evaluator)).granted is None
        assert (await get_progress(db_session, USER)).xp == 1

    @pytest.mark.asyncio
    async def test_checkins_capped_per_place(self, db_session, redis_mock, evaluator):
        granted = []
        for i in range(6):
            action = ActionReward(RefType.CHECKIN, f"checkin-{i}", place_id="place-1", target_id="place-1")
            granted.append((await reward_action(db_session, redis_mock, USER, action, evaluator)).granted)
        assert [g is not None for g in granted] == [True] * 5 + [False]
        assert (await get_progress(db_session, USER)).xp == 75

    @pytest.mark.asyncio
    async def test_repeated_report_not_rewarded_twice(self, db_session, redis_mock, evaluator):
        action = ActionReward(RefType.HOMEMADE, "homemade-1")
        await reward_action(db_session, redis_mock, USER, action, evaluator)
        result = await reward_action(db_session, redis_mock, USER, action, evaluator)
        assert result.granted is None
        assert (await get_progress(db_session, USER)).xp == 40

    @pytest.mark.asyncio
    async def test_reaction_counts_for_post_author(self, db_session, redis_mock, evaluator):
        result = None
        for i in range(25):
            action = ActionReward(
                RefType.REACTION, f"reaction-{i}", target_id="post-1", target_owner_id=AUTHOR,
            )
            result = await reward_action(db_session, redis_mock, 100 + i, action, evaluator)
        assert [a.type for a in result.owner_achievements] == ["REACT_ROLL"]
        assert result.achievements == []


class TestReverseAction:
    @pytest.mark.asyncio
    async def test_deleted_review_takes_xp_back(self, db_session, redis_mock, evaluator):
        action = ActionReward(RefType.REVIEW, "review-1", place_id="place-1", target_id="place-1", has_text=True)
        await reward_action(db_session, redis_mock, USER, action, evaluator)

        reward = await reverse_action(db_session, redis_mock, USER, action.reason)
        assert reward.amount == 20
        assert (await get_progress(db_session, USER)).xp == 0

    @pytest.mark.asyncio
    async def test_unrewarded_reaction_is_best_effort(self, db_session, redis_mock, evaluator):
        first = ActionReward(RefType.REACTION, "reaction-1", target_id="post-1")
        second = ActionReward(RefType.REACTION, "reaction-2", target_id="post-1")
        await reward_action(db_session, redis_mock, USER, first, evaluator)
        await reward_action(db_session, redis_mock, USER, second, evaluator)

        assert await reverse_action(db_session, redis_mock, USER, second.reason) is None
        assert (await get_progress(db_session, USER)).xp == 1

    @pytest.mark.asyncio
    async def test_missing_checkin_reward_raises(self, db_session, redis_mock):
        with pytest.raises(RewardNotFoundError):
            await reverse_action(db_session, redis_mock, USER, RewardReason(RefType.CHECKIN, "nope"))

    @pytest.mark.asyncio
    async def test_removed_activity_frees_the_cap(self, db_session, redis_mock, evaluator):
        first = ActionReward(RefType.COMMENT, "comment-1", target_id="post-1")
        await reward_action(db_session, redis_mock, USER, first, evaluator)
        await reverse_action(db_session, redis_mock, USER, first.reason)

        second = ActionReward(RefType.COMMENT, "comment-2", target_id="post-1")
        result = await reward_action(db_session, redis_mock, USER, second, evaluator)
        assert result.granted is not None
        assert (await get_progress(db_session, USER)).xp == 2
