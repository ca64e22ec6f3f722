"""Rewards API endpoints: daily coins, progress, missions, prizes, redemptions, referrals."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from phantom.config import get_settings
from phantom.dependencies import get_current_user_id, get_db, get_redis_dep, require_admin
from phantom.rewards import coins, daily, missions, prizes
from phantom.rewards.ledger import get_progress_summary
from phantom.rewards.progress import get_progress
from phantom.rewards.schemas import (
    AchievementResponse,
    AdminMissionListResponse,
    CoinRewardResponse,
    DailyClaimResponse,
    DailyStatusResponse,
    MissionClaimResponse,
    MissionCreateRequest,
    MissionListResponse,
    MissionProgressResponse,
    MissionResponse,
    MissionWithProgressResponse,
    Pagination,
    PrizeCreateRequest,
    PrizeListResponse,
    PrizeResponse,
    PrizeWithStatusResponse,
    ProgressResponse,
    RedemptionListResponse,
    RedemptionResponse,
    RedemptionReviewRequest,
    ReferralRequest,
)

router = APIRouter(prefix="/api/v1/rewards", tags=["Rewards"])


def _limit(limit: int | None) -> int:
    settings = get_settings()
    return min(limit or settings.default_page_size, settings.max_page_size)


# ── Progress & daily ──


@router.get("/progress", response_model=ProgressResponse)
async def my_progress(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """XP, level, coins, streak and earned achievements of the caller."""
    summary = await get_progress_summary(db, user_id)
    await db.commit()
    return ProgressResponse(
        xp=summary.xp,
        level=summary.level,
        remaining_xp=summary.remaining_xp,
        coin_balance=summary.coin_balance,
        daily_streak=summary.daily_streak,
        achievements=[AchievementResponse.model_validate(a) for a in summary.achievements],
    )


@router.get("/daily", response_model=DailyStatusResponse)
async def daily_info(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    status = await daily.daily_status(db, user_id)
    await db.commit()
    return DailyStatusResponse(
        streak=status.streak,
        eligible=status.eligible,
        next_amount=status.next_amount,
        last_claim=status.last_claim,
        schedule=list(status.schedule),
    )


@router.post("/daily/claim", response_model=DailyClaimResponse)
async def claim_daily_coins(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await daily.claim_daily(db, user_id)
    return DailyClaimResponse(
        amount=result.amount,
        streak=result.streak,
        coin_balance=result.coin_balance,
        claimed_on=result.claimed_on,
    )


# ── Missions ──


@router.get("/missions", response_model=MissionListResponse)
async def list_missions(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Missions running now, with the caller's progress."""
    limit = _limit(limit)
    views, total = await missions.list_active_missions(db, user_id, page=page, limit=limit)
    return MissionListResponse(
        missions=[
            MissionWithProgressResponse(
                **MissionResponse.model_validate(v.mission).model_dump(),
                is_claimed=v.is_claimed,
                progress=MissionProgressResponse(
                    completed=v.progress.completed, total=v.progress.total,
                ),
            )
            for v in views
        ],
        pagination=Pagination(total_count=total, page=page, limit=limit),
    )


@router.post("/missions/{mission_id}/claim", response_model=MissionClaimResponse)
async def claim_mission(
    mission_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    reward = await missions.claim_mission(db, mission_id, user_id)
    progress = await get_progress(db, user_id)
    return MissionClaimResponse(
        mission_id=mission_id, amount=reward.amount, coin_balance=progress.coin_balance,
    )


@router.post("/missions", response_model=MissionResponse, status_code=201)
async def create_mission(
    body: MissionCreateRequest,
    _admin: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    mission = await missions.create_mission(
        db,
        title=body.title,
        subtitle=body.subtitle,
        icon=body.icon,
        task_type=body.task_type,
        task_count=body.task_count,
        reward_amount=body.reward_amount,
        starts_at=body.starts_at,
        expires_at=body.expires_at,
    )
    return MissionResponse.model_validate(mission)


@router.get("/missions/all", response_model=AdminMissionListResponse)
async def list_all_missions(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    _admin: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    limit = _limit(limit)
    items, total = await missions.list_all_missions(db, page=page, limit=limit)
    return AdminMissionListResponse(
        missions=[MissionResponse.model_validate(m) for m in items],
        pagination=Pagination(total_count=total, page=page, limit=limit),
    )


@router.delete("/missions/{mission_id}", status_code=204)
async def delete_mission(
    mission_id: int,
    _admin: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> None:
    await missions.delete_mission(db, mission_id)


# ── Prizes ──


@router.get("/prizes", response_model=PrizeListResponse)
async def list_prizes(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    views = await prizes.list_prizes(db, user_id)
    return PrizeListResponse(prizes=[
        PrizeWithStatusResponse(
            **PrizeResponse.model_validate(v.prize).model_dump(),
            is_redeemed=v.is_redeemed,
            status=v.status,
        )
        for v in views
    ])


@router.post("/prizes", response_model=PrizeResponse, status_code=201)
async def create_prize(
    body: PrizeCreateRequest,
    _admin: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    prize = await prizes.create_prize(
        db, title=body.title, thumbnail=body.thumbnail, amount=body.amount, count=body.count,
    )
    return PrizeResponse.model_validate(prize)


@router.post("/prizes/{prize_id}/redeem", response_model=RedemptionResponse)
async def redeem_prize(
    prize_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    redemption = await prizes.redeem_prize(db, redis, user_id, prize_id)
    return RedemptionResponse.model_validate(redemption)


# ── Redemptions ──


@router.get("/redemptions", response_model=RedemptionListResponse)
async def my_redemptions(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    limit = _limit(limit)
    items, total = await prizes.redemption_history(db, user_id, page=page, limit=limit)
    return RedemptionListResponse(
        redemptions=[RedemptionResponse.model_validate(r) for r in items],
        pagination=Pagination(total_count=total, page=page, limit=limit),
    )


@router.get("/redemptions/all", response_model=RedemptionListResponse)
async def all_redemptions(
    page: int = Query(1, ge=1),
    limit: int | None = Query(None, ge=1),
    _admin: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    limit = _limit(limit)
    items, total = await prizes.all_redemption_history(db, page=page, limit=limit)
    return RedemptionListResponse(
        redemptions=[RedemptionResponse.model_validate(r) for r in items],
        pagination=Pagination(total_count=total, page=page, limit=limit),
    )


@router.post("/redemptions/{redemption_id}/review", response_model=RedemptionResponse)
async def review_redemption(
    redemption_id: int,
    body: RedemptionReviewRequest,
    _admin: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    redemption = await prizes.review_redemption(
        db, redis, redemption_id, body.validation, body.note,
    )
    return RedemptionResponse.model_validate(redemption)


# ── Referrals ──


@router.post("/referrals", response_model=CoinRewardResponse, status_code=201)
async def grant_referral(
    body: ReferralRequest,
    _admin: int = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis: object = Depends(get_redis_dep),
):
    """Pay the referrer once a referred user has signed up."""
    reward = await coins.grant_referral(
        db, redis, body.referrer_id, body.referred_user_id, body.referred_name,
    )
    return CoinRewardResponse.model_validate(reward)
