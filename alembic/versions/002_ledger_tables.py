"""Gamification ledger: entries, activities, badges, rewards, topic progress.

Revision ID: 002_ledger_tables
Revises: 001_accounts
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "002_ledger_tables"
down_revision: str | None = "001_accounts"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- Ledger entries ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS ledger_entries (
            id BIGSERIAL PRIMARY KEY,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            currency VARCHAR(16) NOT NULL CHECK (currency IN ('xp', 'coins', 'game_points')),
            amount INTEGER NOT NULL,
            balance_after INTEGER NOT NULL,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128),
            reason VARCHAR(256),
            idempotency_key VARCHAR(256) UNIQUE,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_ledger_entries_account
        ON ledger_entries(account_id, created_at DESC)
    """)

    # --- Activities ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS activities (
            id BIGSERIAL PRIMARY KEY,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            source VARCHAR(32) NOT NULL,
            source_id VARCHAR(128) NOT NULL,
            xp INTEGER NOT NULL DEFAULT 0,
            game_points INTEGER NOT NULL DEFAULT 0,
            topic VARCHAR(128),
            completed_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_activity_source UNIQUE (account_id, source, source_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_activities_account
        ON activities(account_id)
    """)

    # --- Badges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_definitions (
            id SERIAL PRIMARY KEY,
            slug VARCHAR(64) UNIQUE NOT NULL,
            name VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            category VARCHAR(32) NOT NULL,
            rarity VARCHAR(16) NOT NULL,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS account_badges (
            id BIGSERIAL PRIMARY KEY,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            badge_id INTEGER NOT NULL REFERENCES badge_definitions(id),
            earned_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            awarded_by BIGINT,
            CONSTRAINT uq_account_badge UNIQUE (account_id, badge_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_account_badges_account
        ON account_badges(account_id)
    """)

    # --- Unlocked rewards ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS unlocked_rewards (
            id BIGSERIAL PRIMARY KEY,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            reward_id VARCHAR(64) NOT NULL,
            source VARCHAR(16) NOT NULL,
            cost INTEGER NOT NULL DEFAULT 0,
            unlocked_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_unlocked_reward UNIQUE (account_id, reward_id)
        )
    """)

    # --- Topic progress ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS topic_progress (
            id BIGSERIAL PRIMARY KEY,
            account_id BIGINT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
            topic VARCHAR(128) NOT NULL,
            percentage INTEGER NOT NULL DEFAULT 0 CHECK (percentage BETWEEN 0 AND 100),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_topic_progress UNIQUE (account_id, topic)
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS topic_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS unlocked_rewards CASCADE")
    op.execute("DROP TABLE IF EXISTS account_badges CASCADE")
    op.execute("DROP TABLE IF EXISTS badge_definitions CASCADE")
    op.execute("DROP TABLE IF EXISTS activities CASCADE")
    op.execute("DROP TABLE IF EXISTS ledger_entries CASCADE")
