"""Pydantic request/response models for the rewards endpoints."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from phantom.db.models import RedemptionStatus, TaskType


# --- Progress ---


class AchievementResponse(BaseModel):
    id: int
    type: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ProgressResponse(BaseModel):
    xp: int
    level: int
    remaining_xp: int
    coin_balance: int
    daily_streak: int
    achievements: list[AchievementResponse]


# --- Daily ---


class DailyStatusResponse(BaseModel):
    streak: int
    eligible: bool
    next_amount: int
    last_claim: date | None = None
    schedule: list[int]


class DailyClaimResponse(BaseModel):
    amount: int
    streak: int
    coin_balance: int
    claimed_on: date


# --- Missions ---


class MissionCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=128)
    subtitle: str | None = Field(None, max_length=256)
    icon: str = Field(..., min_length=1, max_length=256)
    task_type: TaskType
    task_count: int = Field(..., gt=0)
    reward_amount: int = Field(..., ge=0)
    starts_at: datetime
    expires_at: datetime | None = None


class MissionResponse(BaseModel):
    id: int
    title: str
    subtitle: str | None = None
    icon: str
    task_type: str
    task_count: int
    reward_amount: int
    starts_at: datetime
    expires_at: datetime
    created_at: datetime

    model_config = {"from_attributes": True}


class MissionProgressResponse(BaseModel):
    completed: int
    total: int


class MissionWithProgressResponse(MissionResponse):
    is_claimed: bool = False
    progress: MissionProgressResponse


class Pagination(BaseModel):
    total_count: int
    page: int
    limit: int


class MissionListResponse(BaseModel):
    missions: list[MissionWithProgressResponse]
    pagination: Pagination


class AdminMissionListResponse(BaseModel):
    missions: list[MissionResponse]
    pagination: Pagination


class MissionClaimResponse(BaseModel):
    mission_id: int
    amount: int
    coin_balance: int


# --- Prizes ---


class PrizeCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=128)
    thumbnail: str = Field(..., min_length=1, max_length=512)
    amount: int = Field(..., ge=0)
    count: int = Field(..., ge=0)


class PrizeResponse(BaseModel):
    id: int
    title: str
    thumbnail: str
    amount: int
    count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class PrizeWithStatusResponse(PrizeResponse):
    is_redeemed: bool = False
    status: str | None = None


class PrizeListResponse(BaseModel):
    prizes: list[PrizeWithStatusResponse]


# --- Redemptions ---


class RedemptionResponse(BaseModel):
    id: int
    user_id: int
    prize_id: int
    status: str
    note: str | None = None
    created_at: datetime
    updated_at: datetime
    prize: PrizeResponse | None = None

    model_config = {"from_attributes": True}


class RedemptionListResponse(BaseModel):
    redemptions: list[RedemptionResponse]
    pagination: Pagination


class RedemptionReviewRequest(BaseModel):
    validation: RedemptionStatus
    note: str | None = Field(None, max_length=2000)


# --- Referrals ---


class ReferralRequest(BaseModel):
    referrer_id: int = Field(..., gt=0)
    referred_user_id: int = Field(..., gt=0)
    referred_name: str | None = Field(None, max_length=128)


class CoinRewardResponse(BaseModel):
    id: int
    user_id: int
    amount: int
    coin_reward_type: str
    referred_user_id: int | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
