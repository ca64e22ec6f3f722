"""Reward ledger and progression tables.

Creates user_progress, rewards, achievements, missions, coin_rewards,
prizes, prize_redemptions and the activity_records read-model.

Revision ID: 001_reward_ledger
Revises: None
Create Date: 2024-06-03
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_reward_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Progression ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_progress (
            user_id BIGINT PRIMARY KEY,
            xp BIGINT NOT NULL DEFAULT 0,
            level INTEGER NOT NULL DEFAULT 1,
            coin_balance BIGINT NOT NULL DEFAULT 0,
            daily_streak INTEGER NOT NULL DEFAULT 0,
            last_daily_claim DATE,
            achievements_earned INTEGER NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_user_progress_coin_balance_non_negative CHECK (coin_balance >= 0),
            CONSTRAINT ck_user_progress_xp_non_negative CHECK (xp >= 0)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS rewards (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            amount INTEGER NOT NULL,
            ref_type VARCHAR(32) NOT NULL,
            ref_id VARCHAR(64) NOT NULL,
            user_activity_id VARCHAR(64),
            place_id VARCHAR(64),
            reason_key VARCHAR(200) NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT rewards_user_id_reason_key_key UNIQUE (user_id, reason_key)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_rewards_user_ref
        ON rewards(user_id, ref_type, ref_id)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            type VARCHAR(32) NOT NULL,
            dedupe_key VARCHAR(64),
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT achievements_user_id_dedupe_key_key UNIQUE (user_id, dedupe_key)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_achievements_user_type
        ON achievements(user_id, type)
    """)

    # --- Coins ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS missions (
            id BIGSERIAL PRIMARY KEY,
            title VARCHAR(128) NOT NULL,
            subtitle VARCHAR(256),
            icon VARCHAR(256) NOT NULL,
            task_type VARCHAR(16) NOT NULL,
            task_count INTEGER NOT NULL,
            reward_amount INTEGER NOT NULL,
            starts_at TIMESTAMPTZ NOT NULL,
            expires_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS coin_rewards (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            amount INTEGER NOT NULL,
            coin_reward_type VARCHAR(16) NOT NULL,
            mission_id BIGINT REFERENCES missions(id) ON DELETE SET NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT coin_rewards_user_id_mission_id_key UNIQUE (user_id, mission_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_coin_rewards_user
        ON coin_rewards(user_id)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS prizes (
            id BIGSERIAL PRIMARY KEY,
            title VARCHAR(128) NOT NULL,
            thumbnail VARCHAR(512) NOT NULL,
            amount INTEGER NOT NULL,
            count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_prizes_count_non_negative CHECK (count >= 0)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS prize_redemptions (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            prize_id BIGINT NOT NULL REFERENCES prizes(id),
            status VARCHAR(16) NOT NULL DEFAULT 'PENDING',
            note TEXT,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_prize_redemptions_user
        ON prize_redemptions(user_id)
    """)

    # --- Activity read-model ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS activity_records (
            id BIGSERIAL PRIMARY KEY,
            user_id BIGINT NOT NULL,
            kind VARCHAR(16) NOT NULL,
            resource_id VARCHAR(64) NOT NULL,
            target_id VARCHAR(64),
            target_owner_id BIGINT,
            has_media BOOLEAN NOT NULL DEFAULT false,
            latitude DOUBLE PRECISION,
            longitude DOUBLE PRECISION,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT activity_records_kind_resource_id_key UNIQUE (kind, resource_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_activity_records_user_kind
        ON activity_records(user_id, kind, created_at)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_activity_records_owner_kind
        ON activity_records(target_owner_id, kind)
    """)


def downgrade() -> None:
    for table in [
        "activity_records",
        "prize_redemptions",
        "prizes",
        "coin_rewards",
        "missions",
        "achievements",
        "rewards",
        "user_progress",
    ]:
        op.execute(f"DROP TABLE IF EXISTS {table} CASCADE")
