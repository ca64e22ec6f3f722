"""Prize catalogue and the redemption workflow (PENDING -> SUCCESSFUL | DECLINED)."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from phantom.db.models import Prize, PrizeRedemption, RedemptionStatus
from phantom.events import REDEMPTION_CHANNEL, notify_user, publish_event
from phantom.exceptions import (
    BadRequestError,
    InsufficientBalanceError,
    NotFoundError,
    PrizeExhaustedError,
    RedemptionAlreadyResolvedError,
)
from phantom.rewards.progress import credit_coins, debit_coins, get_or_create_progress, utcnow

logger = logging.getLogger(__name__)

prize_table = Prize.__table__
redemption_table = PrizeRedemption.__table__


@dataclass
class PrizeView:
    prize: Prize
    is_redeemed: bool
    status: str | None


async def get_prize(db: AsyncSession, prize_id: int) -> Prize:
    prize = await db.get(Prize, prize_id, populate_existing=True)
    if prize is None:
        raise NotFoundError("prize not found")
    return prize


async def get_redemption(db: AsyncSession, redemption_id: int) -> PrizeRedemption:
    result = await db.execute(
        select(PrizeRedemption)
        .where(PrizeRedemption.id == redemption_id)
        .execution_options(populate_existing=True)
    )
    redemption = result.unique().scalar_one_or_none()
    if redemption is None:
        raise NotFoundError("Prize Redemption Not Found")
    return redemption


async def create_prize(
    db: AsyncSession, title: str, thumbnail: str, amount: int, count: int,
) -> Prize:
    if amount < 0 or count < 0:
        raise ValueError("amount and count must be non-negative")
    prize = Prize(title=title, thumbnail=thumbnail, amount=amount, count=count, created_at=utcnow())
    db.add(prize)
    await db.commit()
    await db.refresh(prize)
    return prize


async def redeem_prize(
    db: AsyncSession, redis: object | None, user_id: int, prize_id: int,
) -> PrizeRedemption:
    """Take one unit of stock and the prize price, then queue for review.

    Both writes are guarded UPDATEs run in one savepoint; if the balance
    check fails the savepoint is rolled back so the stock decrement is undone.
    """
    prize = await get_prize(db, prize_id)
    await get_or_create_progress(db, user_id)

    async with db.begin_nested():
        taken = await db.execute(
            update(prize_table)
            .where(prize_table.c.id == prize.id, prize_table.c.count > 0)
            .values(count=prize_table.c.count - 1)
        )
        if taken.rowcount != 1:
            raise PrizeExhaustedError()

        if not await debit_coins(db, user_id, prize.amount):
            raise InsufficientBalanceError()

    redemption = PrizeRedemption(
        user_id=user_id,
        prize_id=prize.id,
        status=RedemptionStatus.PENDING.value,
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(redemption)
    await db.commit()

    redemption = await get_redemption(db, redemption.id)
    logger.info("User %s redeemed prize %s for %s coins", user_id, prize.id, prize.amount)

    await publish_event(redis, REDEMPTION_CHANNEL, {
        "redemption_id": redemption.id,
        "user_id": user_id,
        "prize_id": prize.id,
        "status": redemption.status,
    })
    await notify_user(
        redis, user_id, "redemption_in_progress",
        "Prize Redemption",
        f"Your redemption of {prize.title} ({prize.amount} coins) is being verified.",
        {"redemption_id": redemption.id},
    )
    return redemption


async def review_redemption(
    db: AsyncSession,
    redis: object | None,
    redemption_id: int,
    decision: RedemptionStatus,
    note: str | None = None,
) -> PrizeRedemption:
    """Resolve a pending redemption; DECLINED refunds the coins and the stock."""
    if decision is RedemptionStatus.PENDING:
        raise BadRequestError("A redemption can only be resolved as SUCCESSFUL or DECLINED")

    redemption = await get_redemption(db, redemption_id)
    values = {"status": decision.value, "updated_at": utcnow()}
    if note is not None:
        values["note"] = note

    async with db.begin_nested():
        resolved = await db.execute(
            update(redemption_table)
            .where(
                redemption_table.c.id == redemption.id,
                redemption_table.c.status == RedemptionStatus.PENDING.value,
            )
            .values(**values)
        )
        if resolved.rowcount != 1:
            status = (await get_redemption(db, redemption_id)).status
            raise RedemptionAlreadyResolvedError(status)

    if decision is RedemptionStatus.DECLINED:
        await credit_coins(db, redemption.user_id, redemption.prize.amount)
        await db.execute(
            update(prize_table)
            .where(prize_table.c.id == redemption.prize_id)
            .values(count=prize_table.c.count + 1)
        )

    await db.commit()
    redemption = await get_redemption(db, redemption_id)
    logger.info("Redemption %s resolved as %s", redemption.id, redemption.status)

    await publish_event(redis, REDEMPTION_CHANNEL, {
        "redemption_id": redemption.id,
        "user_id": redemption.user_id,
        "prize_id": redemption.prize_id,
        "status": redemption.status,
    })
    if decision is RedemptionStatus.SUCCESSFUL:
        title, description = "Prize Redeemed", f"Your {redemption.prize.title} is on its way."
    else:
        title, description = (
            "Prize Redemption Declined",
            f"Your redemption of {redemption.prize.title} was declined and your coins were refunded.",
        )
    await notify_user(
        redis, redemption.user_id, f"redemption_{decision.value.lower()}", title, description,
        {"redemption_id": redemption.id, "note": redemption.note},
    )
    return redemption


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


async def list_prizes(db: AsyncSession, user_id: int) -> list[PrizeView]:
    """All prizes, newest first, with the user's latest redemption status."""
    prizes = (await db.execute(
        select(Prize).order_by(Prize.created_at.desc(), Prize.id.desc())
    )).scalars().all()

    latest: dict[int, str] = {}
    rows = await db.execute(
        select(redemption_table.c.prize_id, redemption_table.c.status)
        .where(redemption_table.c.user_id == user_id)
        .order_by(redemption_table.c.id.desc())
    )
    for prize_id, status in rows:
        latest.setdefault(prize_id, status)

    return [
        PrizeView(prize=prize, is_redeemed=prize.id in latest, status=latest.get(prize.id))
        for prize in prizes
    ]


async def redemption_history(
    db: AsyncSession, user_id: int, page: int = 1, limit: int = 20,
) -> tuple[list[PrizeRedemption], int]:
    return await _paginate_redemptions(db, page, limit, PrizeRedemption.user_id == user_id)


async def all_redemption_history(
    db: AsyncSession,
    page: int = 1,
    limit: int = 20,
    status: RedemptionStatus | None = None,
) -> tuple[list[PrizeRedemption], int]:
    filters = [] if status is None else [PrizeRedemption.status == status.value]
    return await _paginate_redemptions(db, page, limit, *filters)


async def _paginate_redemptions(
    db: AsyncSession, page: int, limit: int, *filters,
) -> tuple[list[PrizeRedemption], int]:
    total = (await db.execute(
        select(func.count()).select_from(PrizeRedemption).where(*filters)
    )).scalar_one()
    result = await db.execute(
        select(PrizeRedemption)
        .where(*filters)
        .order_by(PrizeRedemption.created_at.desc(), PrizeRedemption.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.unique().scalars().all()), int(total)
