"""Rewarding user actions: amounts, per-target caps and custom achievements."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from phantom.db.models import Achievement, ActivityKind
from phantom.exceptions import DuplicateRewardError
from phantom.rewards.achievements import AchievementEvaluator
from phantom.rewards.activity_store import record_activity, remove_activity
from phantom.rewards.ledger import GrantResult, ReversalMode, RewardReason, grant, reverse
from phantom.rewards.progress import get_or_create_progress
from phantom.rewards.tables import AchievementType, RefType, RewardTables, get_reward_tables

logger = logging.getLogger(__name__)

ACTIVITY_KIND_FOR_REF: dict[RefType, ActivityKind] = {
    RefType.REACTION: ActivityKind.REACTION,
    RefType.COMMENT: ActivityKind.COMMENT,
    RefType.CHECKIN: ActivityKind.CHECKIN,
    RefType.REVIEW: ActivityKind.REVIEW,
    RefType.HOMEMADE: ActivityKind.HOMEMADE,
}

# Deleting a reviewed / checked-in / commented item must take its XP back;
# reactions and homemade posts may never have been rewarded.
DEFAULT_REVERSAL_MODES: dict[RefType, ReversalMode] = {
    RefType.COMMENT: ReversalMode.REQUIRED,
    RefType.REVIEW: ReversalMode.REQUIRED,
    RefType.CHECKIN: ReversalMode.REQUIRED,
    RefType.HOMEMADE: ReversalMode.BEST_EFFORT,
    RefType.REACTION: ReversalMode.BEST_EFFORT,
}


@dataclass(frozen=True)
class ActionReward:
    """A user action as reported by the content side.

    ``target_id`` is the place (reviews, check-ins) or the post (reactions,
    comments) the action was made on; ``target_owner_id`` is that post's
    author.
    """

    ref_type: RefType
    ref_id: str
    user_activity_id: str | None = None
    place_id: str | None = None
    target_id: str | None = None
    target_owner_id: int | None = None
    latitude: float | None = None
    longitude: float | None = None
    created_at: datetime | None = None
    # Review content
    has_rating: bool = False
    has_recommendation: bool = False
    has_text: bool = False
    has_images: bool = False
    has_videos: bool = False

    @property
    def kind(self) -> ActivityKind:
        return ACTIVITY_KIND_FOR_REF[self.ref_type]

    @property
    def has_media(self) -> bool:
        return self.has_images or self.has_videos

    @property
    def reason(self) -> RewardReason:
        return RewardReason(self.ref_type, self.ref_id, self.user_activity_id, self.place_id)


@dataclass
class ActionRewardResult:
    granted: GrantResult | None = None
    achievements: list[Achievement] = field(default_factory=list)
    owner_achievements: list[Achievement] = field(default_factory=list)

    @property
    def new_achievements(self) -> list[Achievement]:
        level_ups = self.granted.achievements if self.granted else []
        return [*level_ups, *self.achievements]


def reward_amount_for(action: ActionReward, tables: RewardTables | None = None) -> int:
    """XP an action earns before caps are applied."""
    amounts = (tables or get_reward_tables()).amounts
    if action.ref_type is RefType.REVIEW:
        review = amounts.review
        return (
            (review.has_rating if action.has_rating else 0)
            + (review.has_recommendation if action.has_recommendation else 0)
            + (review.has_text if action.has_text else 0)
            + (review.has_images if action.has_images else 0)
            + (review.has_videos if action.has_videos else 0)
        )
    return {
        RefType.REACTION: amounts.reaction,
        RefType.COMMENT: amounts.comment,
        RefType.CHECKIN: amounts.checkin,
        RefType.HOMEMADE: amounts.homemade,
    }[action.ref_type]


def _cap_for(action: ActionReward, tables: RewardTables) -> int | None:
    caps = tables.caps
    return {
        RefType.REACTION: caps.reactions_per_post,
        RefType.COMMENT: caps.comments_per_post,
        RefType.CHECKIN: caps.checkins_per_place,
        RefType.REVIEW: caps.reviews_per_place,
    }.get(action.ref_type)


async def within_cap(
    evaluator: AchievementEvaluator, user_id: int, action: ActionReward,
) -> bool:
    """True while the user's actions on this target, this one included, fit the cap."""
    cap = _cap_for(action, evaluator.tables)
    if cap is None or action.target_id is None:
        return True
    count = await evaluator.store.count(user_id, action.kind, target_id=action.target_id)
    return count <= cap


async def reward_action(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    action: ActionReward,
    evaluator: AchievementEvaluator | None = None,
) -> ActionRewardResult:
    """Record an action, evaluate its achievements and grant its XP.

    Over-cap and already-rewarded actions still evaluate achievements but
    earn no XP. Commits the unit of work.
    """
    evaluator = evaluator or AchievementEvaluator(db, redis)
    await get_or_create_progress(db, user_id)
    await record_activity(
        db, user_id, action.kind, action.ref_id,
        target_id=action.target_id,
        target_owner_id=action.target_owner_id,
        has_media=action.has_media,
        latitude=action.latitude,
        longitude=action.longitude,
        created_at=action.created_at,
    )

    result = ActionRewardResult()
    if action.kind is ActivityKind.REACTION:
        if action.target_owner_id is not None:
            result.owner_achievements = await evaluator.evaluate_types(
                action.target_owner_id, [AchievementType.REACT_ROLL],
            )
    else:
        result.achievements = await evaluator.evaluate(user_id, action.kind)

    if await within_cap(evaluator, user_id, action):
        amount = reward_amount_for(action, evaluator.tables)
        try:
            result.granted = await grant(db, redis, user_id, amount, action.reason)
        except DuplicateRewardError:
            logger.info("Action %s already rewarded for user %s", action.reason.key, user_id)
    else:
        logger.info("Action %s over cap for user %s, no xp", action.reason.key, user_id)

    await db.commit()
    return result


async def reverse_action(
    db: AsyncSession,
    redis: object | None,
    user_id: int,
    reason: RewardReason,
    mode: ReversalMode | None = None,
):
    """Take back the XP of a deleted action and drop it from the activity store."""
    mode = mode or DEFAULT_REVERSAL_MODES[reason.ref_type]
    reward = await reverse(db, redis, user_id, reason, mode)
    await remove_activity(db, ACTIVITY_KIND_FOR_REF[reason.ref_type], reason.ref_id)
    await db.commit()
    return reward
