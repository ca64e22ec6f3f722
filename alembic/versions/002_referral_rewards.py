"""Referral coin rewards.

Adds coin_rewards.referred_user_id; each referred user pays out once.

Revision ID: 002_referral_rewards
Revises: 001_reward_ledger
Create Date: 2024-06-17
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_referral_rewards"
down_revision: str | None = "001_reward_ledger"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        ALTER TABLE coin_rewards
        ADD COLUMN IF NOT EXISTS referred_user_id BIGINT
    """)
    op.execute("""
        ALTER TABLE coin_rewards
        ADD CONSTRAINT coin_rewards_referred_user_id_key UNIQUE (referred_user_id)
    """)


def downgrade() -> None:
    op.execute("ALTER TABLE coin_rewards DROP CONSTRAINT IF EXISTS coin_rewards_referred_user_id_key")
    op.execute("ALTER TABLE coin_rewards DROP COLUMN IF EXISTS referred_user_id")
