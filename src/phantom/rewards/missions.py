"""Missions: time-boxed tasks paying a one-time coin reward."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from phantom.db.models import ActivityKind, CoinReward, CoinRewardType, Mission, TaskType
from phantom.exceptions import (
    MissionAlreadyClaimedError,
    MissionIncompleteError,
    NotFoundError,
)
from phantom.rewards.activity_store import ActivityStore, SqlActivityStore
from phantom.rewards.progress import (
    as_utc,
    credit_coins,
    get_or_create_progress,
    insert_for,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_MISSION_DURATION = timedelta(days=7)


@dataclass
class MissionProgress:
    completed: int
    total: int

    @property
    def is_complete(self) -> bool:
        return self.completed >= self.total


@dataclass
class MissionView:
    mission: Mission
    progress: MissionProgress
    is_claimed: bool


async def mission_progress(
    db: AsyncSession,
    mission: Mission,
    user_id: int,
    store: ActivityStore | None = None,
) -> MissionProgress:
    """Count the user's qualifying activity inside the mission window."""
    store = store or SqlActivityStore(db)
    window = {"since": as_utc(mission.starts_at), "until": as_utc(mission.expires_at)}
    task_type = TaskType(mission.task_type)

    if task_type is TaskType.REACT:
        completed = await store.count(user_id, ActivityKind.REACTION, distinct_targets=True, **window)
    elif task_type is TaskType.CHECKIN:
        completed = await store.count(user_id, ActivityKind.CHECKIN, distinct_targets=True, **window)
    elif task_type is TaskType.HAS_MEDIA:
        completed = await store.count(user_id, None, with_media=True, **window)
    else:
        completed = await store.count(user_id, ActivityKind.REVIEW, **window)

    return MissionProgress(completed=min(completed, mission.task_count), total=mission.task_count)


async def get_mission(db: AsyncSession, mission_id: int) -> Mission:
    mission = await db.get(Mission, mission_id)
    if mission is None:
        raise NotFoundError("Mission not found")
    return mission


async def is_claimed(db: AsyncSession, mission_id: int, user_id: int) -> bool:
    result = await db.execute(
        select(CoinReward.id).where(
            CoinReward.user_id == user_id,
            CoinReward.mission_id == mission_id,
        )
    )
    return result.first() is not None


async def claim_mission(db: AsyncSession, mission_id: int, user_id: int) -> CoinReward:
    """Pay a completed mission's coins, once per user."""
    mission = await get_mission(db, mission_id)
    await get_or_create_progress(db, user_id)

    progress = await mission_progress(db, mission, user_id)
    if not progress.is_complete:
        raise MissionIncompleteError()

    inserted = await db.execute(
        insert_for(db, CoinReward.__table__).values(
            user_id=user_id,
            amount=mission.reward_amount,
            coin_reward_type=CoinRewardType.MISSION.value,
            mission_id=mission.id,
            created_at=utcnow(),
        ).on_conflict_do_nothing(index_elements=["user_id", "mission_id"])
    )
    if inserted.rowcount != 1:
        raise MissionAlreadyClaimedError()

    await credit_coins(db, user_id, mission.reward_amount)
    await db.commit()

    result = await db.execute(
        select(CoinReward).where(
            CoinReward.user_id == user_id,
            CoinReward.mission_id == mission.id,
        )
    )
    logger.info("User %s claimed mission %s (%s coins)", user_id, mission.id, mission.reward_amount)
    return result.scalar_one()


# ---------------------------------------------------------------------------
# Listing / admin
# ---------------------------------------------------------------------------


async def list_active_missions(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    limit: int = 20,
    now: datetime | None = None,
) -> tuple[list[MissionView], int]:
    """Missions running now, newest first, with the user's progress."""
    now = now or utcnow()
    active = (Mission.starts_at <= now, Mission.expires_at >= now)

    total = (await db.execute(select(func.count()).select_from(Mission).where(*active))).scalar_one()
    result = await db.execute(
        select(Mission)
        .where(*active)
        .order_by(Mission.created_at.desc(), Mission.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    store = SqlActivityStore(db)
    views = []
    for mission in result.scalars().all():
        views.append(MissionView(
            mission=mission,
            progress=await mission_progress(db, mission, user_id, store),
            is_claimed=await is_claimed(db, mission.id, user_id),
        ))
    return views, int(total)


async def list_all_missions(
    db: AsyncSession, page: int = 1, limit: int = 20,
) -> tuple[list[Mission], int]:
    total = (await db.execute(select(func.count()).select_from(Mission))).scalar_one()
    result = await db.execute(
        select(Mission)
        .order_by(Mission.created_at.desc(), Mission.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), int(total)


async def create_mission(
    db: AsyncSession,
    title: str,
    icon: str,
    task_type: TaskType,
    task_count: int,
    reward_amount: int,
    starts_at: datetime,
    expires_at: datetime | None = None,
    subtitle: str | None = None,
) -> Mission:
    if task_count <= 0 or reward_amount < 0:
        raise ValueError("task_count must be positive and reward_amount non-negative")
    mission = Mission(
        title=title,
        subtitle=subtitle,
        icon=icon,
        task_type=task_type.value,
        task_count=task_count,
        reward_amount=reward_amount,
        starts_at=starts_at,
        expires_at=expires_at or starts_at + DEFAULT_MISSION_DURATION,
        created_at=utcnow(),
    )
    db.add(mission)
    await db.commit()
    await db.refresh(mission)
    return mission


async def delete_mission(db: AsyncSession, mission_id: int) -> None:
    result = await db.execute(delete(Mission).where(Mission.id == mission_id))
    if result.rowcount == 0:
        raise NotFoundError("Mission not found")
    await db.commit()
