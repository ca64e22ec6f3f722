"""Per-user progression row: creation, locking and atomic field updates.

Every XP / coin mutation in the engine is a single conditional UPDATE issued
through this module, so two concurrent requests for one user cannot lose an
update. On PostgreSQL the UPDATE also holds the row lock until commit, which
serializes the rest of the caller's unit of work for that user.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import ColumnElement, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from phantom.db.models import UserProgress
from phantom.exceptions import NotFoundError

logger = logging.getLogger(__name__)

progress_table = UserProgress.__table__


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def insert_for(db: AsyncSession, table: Any) -> Any:
    """Dialect insert supporting ON CONFLICT DO NOTHING."""
    if db.get_bind().dialect.name == "postgresql":
        return postgresql.insert(table)
    return sqlite.insert(table)


async def get_progress(db: AsyncSession, user_id: int) -> UserProgress:
    """Fresh read of a user's progression row; NotFound if never created."""
    result = await db.execute(
        select(UserProgress)
        .where(UserProgress.user_id == user_id)
        .execution_options(populate_existing=True)
    )
    progress = result.scalar_one_or_none()
    if progress is None:
        raise NotFoundError(f"User {user_id} not found")
    return progress


async def get_or_create_progress(db: AsyncSession, user_id: int) -> UserProgress:
    """Get or create the progression row; safe under concurrent first use."""
    stmt = insert_for(db, progress_table).values(
        user_id=user_id,
        xp=0,
        level=1,
        coin_balance=0,
        daily_streak=0,
        achievements_earned=0,
        updated_at=utcnow(),
    ).on_conflict_do_nothing(index_elements=["user_id"])
    await db.execute(stmt)
    return await get_progress(db, user_id)


async def lock_progress(db: AsyncSession, user_id: int) -> UserProgress:
    """Take the per-user row lock for the rest of the transaction.

    ``FOR UPDATE`` is a no-op on SQLite, where writers are already serialized.
    """
    await get_or_create_progress(db, user_id)
    result = await db.execute(
        select(UserProgress)
        .where(UserProgress.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def conditional_update(
    db: AsyncSession,
    user_id: int,
    values: dict[str, Any],
    *guards: ColumnElement[bool],
) -> bool:
    """UPDATE user_progress SET values WHERE user_id AND guards. True if a row changed."""
    stmt = (
        update(progress_table)
        .where(progress_table.c.user_id == user_id, *guards)
        .values(updated_at=utcnow(), **values)
    )
    result = await db.execute(stmt)
    return result.rowcount == 1


async def credit_coins(db: AsyncSession, user_id: int, amount: int) -> None:
    if amount < 0:
        raise ValueError("credit amount must be non-negative")
    await get_or_create_progress(db, user_id)
    await conditional_update(
        db, user_id, {"coin_balance": progress_table.c.coin_balance + amount}
    )


async def debit_coins(db: AsyncSession, user_id: int, amount: int) -> bool:
    """Atomically debit if the balance covers it. False when it does not."""
    if amount < 0:
        raise ValueError("debit amount must be non-negative")
    return await conditional_update(
        db,
        user_id,
        {"coin_balance": progress_table.c.coin_balance - amount},
        progress_table.c.coin_balance >= amount,
    )
