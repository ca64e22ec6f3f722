"""Read-only activity counts consumed by achievements and missions.

Content lives in the host application. Its controllers mirror each review,
check-in, reaction, comment and homemade post into ``activity_records``
(``record_activity`` / ``remove_activity``); the reward engine only counts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from sqlalchemy import delete, distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from phantom.db.models import ActivityKind, ActivityRecord
from phantom.rewards.progress import insert_for, utcnow


@dataclass(frozen=True)
class LocatedActivity:
    resource_id: str
    latitude: float | None
    longitude: float | None
    created_at: datetime


class ActivityStore(Protocol):
    async def count(
        self,
        user_id: int,
        kind: ActivityKind | None,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        target_id: str | None = None,
        with_media: bool = False,
        distinct_targets: bool = False,
    ) -> int: ...

    async def count_received(self, owner_id: int, kind: ActivityKind) -> int: ...

    async def latest(self, user_id: int, kind: ActivityKind) -> LocatedActivity | None: ...


class SqlActivityStore:
    """ActivityStore over the ``activity_records`` table."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def count(
        self,
        user_id: int,
        kind: ActivityKind | None,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        target_id: str | None = None,
        with_media: bool = False,
        distinct_targets: bool = False,
    ) -> int:
        counted = func.count(distinct(ActivityRecord.target_id)) if distinct_targets else func.count()
        q = select(counted).select_from(ActivityRecord).where(ActivityRecord.user_id == user_id)
        if kind is not None:
            q = q.where(ActivityRecord.kind == kind.value)
        if since is not None:
            q = q.where(ActivityRecord.created_at >= since)
        if until is not None:
            q = q.where(ActivityRecord.created_at <= until)
        if target_id is not None:
            q = q.where(ActivityRecord.target_id == target_id)
        if with_media:
            q = q.where(ActivityRecord.has_media.is_(True))
        result = await self.db.execute(q)
        return int(result.scalar_one())

    async def count_received(self, owner_id: int, kind: ActivityKind) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(ActivityRecord)
            .where(
                ActivityRecord.target_owner_id == owner_id,
                ActivityRecord.kind == kind.value,
            )
        )
        return int(result.scalar_one())

    async def latest(self, user_id: int, kind: ActivityKind) -> LocatedActivity | None:
        result = await self.db.execute(
            select(ActivityRecord)
            .where(ActivityRecord.user_id == user_id, ActivityRecord.kind == kind.value)
            .order_by(ActivityRecord.created_at.desc(), ActivityRecord.id.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return LocatedActivity(
            resource_id=row.resource_id,
            latitude=row.latitude,
            longitude=row.longitude,
            created_at=row.created_at,
        )


async def record_activity(
    db: AsyncSession,
    user_id: int,
    kind: ActivityKind,
    resource_id: str,
    *,
    target_id: str | None = None,
    target_owner_id: int | None = None,
    has_media: bool = False,
    latitude: float | None = None,
    longitude: float | None = None,
    created_at: datetime | None = None,
) -> None:
    """Mirror a content row into the read-model. Re-recording is a no-op."""
    stmt = insert_for(db, ActivityRecord.__table__).values(
        user_id=user_id,
        kind=kind.value,
        resource_id=resource_id,
        target_id=target_id,
        target_owner_id=target_owner_id,
        has_media=has_media,
        latitude=latitude,
        longitude=longitude,
        created_at=created_at or utcnow(),
    ).on_conflict_do_nothing(index_elements=["kind", "resource_id"])
    await db.execute(stmt)


async def remove_activity(db: AsyncSession, kind: ActivityKind, resource_id: str) -> bool:
    result = await db.execute(
        delete(ActivityRecord).where(
            ActivityRecord.kind == kind.value,
            ActivityRecord.resource_id == resource_id,
        )
    )
    return result.rowcount > 0
