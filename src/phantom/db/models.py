"""ORM models for the reward ledger and progression engine.

Users live in the host application; tables here key on ``user_id`` only and
the rows are owned and mutated exclusively by ``phantom.rewards``.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from phantom.db.base import Base, BigIntPK


class CoinRewardType(str, Enum):
    DAILY = "DAILY"
    MISSION = "MISSION"
    REFERRAL = "REFERRAL"


class TaskType(str, Enum):
    REVIEW = "REVIEW"
    HAS_MEDIA = "HAS_MEDIA"
    CHECKIN = "CHECKIN"
    REACT = "REACT"


class RedemptionStatus(str, Enum):
    PENDING = "PENDING"
    DECLINED = "DECLINED"
    SUCCESSFUL = "SUCCESSFUL"


class ActivityKind(str, Enum):
    REVIEW = "REVIEW"
    CHECKIN = "CHECKIN"
    REACTION = "REACTION"
    COMMENT = "COMMENT"
    HOMEMADE = "HOMEMADE"


# ---------------------------------------------------------------------------
# Progression
# ---------------------------------------------------------------------------


class UserProgress(Base):
    """Denormalized progression row, one per user, created lazily."""

    __tablename__ = "user_progress"
    __table_args__ = (
        CheckConstraint("coin_balance >= 0", name="coin_balance_non_negative"),
        CheckConstraint("xp >= 0", name="xp_non_negative"),
    )

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    coin_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    daily_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_daily_claim: Mapped[date | None] = mapped_column(Date, nullable=True)
    achievements_earned: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Reward(Base):
    """XP ledger entry tied to the action that earned it.

    UNIQUE(user_id, reason_key) makes a second grant for the same action fail
    instead of double-crediting.
    """

    __tablename__ = "rewards"
    __table_args__ = (
        UniqueConstraint("user_id", "reason_key"),
        Index("ix_rewards_user_ref", "user_id", "ref_type", "ref_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    ref_type: Mapped[str] = mapped_column(String(32), nullable=False)
    ref_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user_activity_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    place_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reason_key: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Achievement(Base):
    """Badge row. Repeatable types may hold several rows per user.

    ``dedupe_key`` is set for one-shot, level-up and countable grants so the
    unique index rejects a concurrent duplicate; NULL keys never collide.
    """

    __tablename__ = "achievements"
    __table_args__ = (
        UniqueConstraint("user_id", "dedupe_key"),
        Index("ix_achievements_user_type", "user_id", "type"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    dedupe_key: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


# ---------------------------------------------------------------------------
# Coins
# ---------------------------------------------------------------------------


class Mission(Base):
    """Time-boxed task with a one-time coin reward."""

    __tablename__ = "missions"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    subtitle: Mapped[str | None] = mapped_column(String(256), nullable=True)
    icon: Mapped[str] = mapped_column(String(256), nullable=False)
    task_type: Mapped[str] = mapped_column(String(16), nullable=False)
    task_count: Mapped[int] = mapped_column(Integer, nullable=False)
    reward_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    starts_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class CoinReward(Base):
    """Coin grant log; MISSION and REFERRAL rows double as "already paid" markers."""

    __tablename__ = "coin_rewards"
    __table_args__ = (
        UniqueConstraint("user_id", "mission_id"),
        UniqueConstraint("referred_user_id", name="coin_rewards_referred_user_id_key"),
        Index("ix_coin_rewards_user", "user_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    coin_reward_type: Mapped[str] = mapped_column(String(16), nullable=False)
    mission_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("missions.id", ondelete="SET NULL"), nullable=True
    )
    # REFERRAL rows: the new user whose signup paid the referrer, at most once.
    referred_user_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Prize(Base):
    """Redeemable prize with finite stock."""

    __tablename__ = "prizes"
    __table_args__ = (CheckConstraint("count >= 0", name="count_non_negative"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    thumbnail: Mapped[str] = mapped_column(String(512), nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class PrizeRedemption(Base):
    """Pending -> Successful | Declined, exactly once."""

    __tablename__ = "prize_redemptions"
    __table_args__ = (Index("ix_prize_redemptions_user", "user_id"),)

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    prize_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("prizes.id"), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=RedemptionStatus.PENDING.value,
        server_default=RedemptionStatus.PENDING.value,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    prize: Mapped[Prize] = relationship("Prize", lazy="joined")


# ---------------------------------------------------------------------------
# Activity read-model (written by content collaborators)
# ---------------------------------------------------------------------------


class ActivityRecord(Base):
    """One row per review / check-in / reaction / comment / homemade post.

    ``target_id`` is the place for reviews and check-ins and the post for
    reactions and comments; ``target_owner_id`` is the author of that post.
    """

    __tablename__ = "activity_records"
    __table_args__ = (
        UniqueConstraint("kind", "resource_id"),
        Index("ix_activity_records_user_kind", "user_id", "kind", "created_at"),
        Index("ix_activity_records_owner_kind", "target_owner_id", "kind"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(64), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_owner_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    has_media: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
