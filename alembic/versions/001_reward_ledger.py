"""Reward ledger tables.

Creates user_stats, the lesson/achievement/challenge/daily-task catalogs with
their per-user progress tables, daily_checkins, reward_transactions and
server_wallet.

Revision ID: 001_reward_ledger
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_reward_ledger"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # --- User stats ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_stats (
            user_address VARCHAR(42) PRIMARY KEY,
            level INTEGER NOT NULL DEFAULT 1,
            xp INTEGER NOT NULL DEFAULT 0,
            total_earned NUMERIC(36, 18) NOT NULL DEFAULT 0,
            streak INTEGER NOT NULL DEFAULT 0,
            lessons_completed INTEGER NOT NULL DEFAULT 0,
            challenges_completed INTEGER NOT NULL DEFAULT 0,
            last_check_in DATE,
            last_activity TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
        )
    """)

    # --- Lessons ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS lessons (
            id VARCHAR(64) PRIMARY KEY,
            title VARCHAR(200) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            difficulty VARCHAR(16) NOT NULL,
            category VARCHAR(32) NOT NULL DEFAULT 'basics',
            reward_amount NUMERIC(36, 18) NOT NULL,
            estimated_time VARCHAR(32),
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_lesson_progress (
            id VARCHAR(36) PRIMARY KEY,
            user_address VARCHAR(42) NOT NULL,
            lesson_id VARCHAR(64) NOT NULL,
            completed_at TIMESTAMPTZ NOT NULL,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            reward_claimed BOOLEAN NOT NULL DEFAULT false,
            claimed_at TIMESTAMPTZ,
            CONSTRAINT uq_user_lesson_progress_user_lesson UNIQUE (user_address, lesson_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_lesson_progress_user_address
        ON user_lesson_progress(user_address)
    """)

    # --- Achievements ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS achievements (
            id VARCHAR(64) PRIMARY KEY,
            title VARCHAR(128) NOT NULL,
            description TEXT NOT NULL,
            icon VARCHAR(16),
            requirement JSON NOT NULL,
            reward_xp INTEGER NOT NULL DEFAULT 0,
            sort_order INTEGER NOT NULL DEFAULT 0,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_achievements (
            id VARCHAR(36) PRIMARY KEY,
            user_address VARCHAR(42) NOT NULL,
            achievement_id VARCHAR(64) NOT NULL,
            unlocked_at TIMESTAMPTZ NOT NULL,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            CONSTRAINT uq_user_achievements_user_achievement UNIQUE (user_address, achievement_id)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_achievements_user_address
        ON user_achievements(user_address)
    """)

    # --- Daily challenges ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_challenges (
            id VARCHAR(64) PRIMARY KEY,
            title VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            challenge_type VARCHAR(32) NOT NULL,
            reward_amount NUMERIC(36, 18) NOT NULL,
            xp_reward INTEGER NOT NULL DEFAULT 0,
            target INTEGER NOT NULL DEFAULT 1,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_daily_challenges_challenge_type
        ON daily_challenges(challenge_type)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_challenges (
            id VARCHAR(36) PRIMARY KEY,
            user_address VARCHAR(42) NOT NULL,
            challenge_id VARCHAR(64) NOT NULL,
            date DATE NOT NULL,
            progress INTEGER NOT NULL DEFAULT 0,
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            reward_claimed BOOLEAN NOT NULL DEFAULT false,
            claimed_at TIMESTAMPTZ,
            expires_at TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_user_challenges_user_challenge_date UNIQUE (user_address, challenge_id, date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_challenges_user_address
        ON user_challenges(user_address)
    """)

    # --- Legacy daily tasks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_tasks (
            id VARCHAR(64) PRIMARY KEY,
            title VARCHAR(128) NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            task_type VARCHAR(32) NOT NULL,
            reward_amount NUMERIC(36, 18) NOT NULL,
            target_value INTEGER NOT NULL DEFAULT 1,
            is_active BOOLEAN NOT NULL DEFAULT true
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_daily_tasks_task_type
        ON daily_tasks(task_type)
    """)
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_daily_tasks (
            id VARCHAR(36) PRIMARY KEY,
            user_address VARCHAR(42) NOT NULL,
            task_id VARCHAR(64) NOT NULL,
            date DATE NOT NULL,
            progress INTEGER NOT NULL DEFAULT 0,
            completed BOOLEAN NOT NULL DEFAULT false,
            completed_at TIMESTAMPTZ,
            reward_claimed BOOLEAN NOT NULL DEFAULT false,
            claimed_at TIMESTAMPTZ,
            CONSTRAINT uq_user_daily_tasks_user_task_date UNIQUE (user_address, task_id, date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_daily_tasks_user_address
        ON user_daily_tasks(user_address)
    """)

    # --- Check-ins ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS daily_checkins (
            id VARCHAR(36) PRIMARY KEY,
            user_address VARCHAR(42) NOT NULL,
            date DATE NOT NULL,
            checked_in_at TIMESTAMPTZ NOT NULL,
            reward_amount NUMERIC(36, 18) NOT NULL DEFAULT 0,
            consecutive_days INTEGER NOT NULL DEFAULT 1,
            xp_awarded INTEGER NOT NULL DEFAULT 0,
            reward_claimed BOOLEAN NOT NULL DEFAULT false,
            claimed_at TIMESTAMPTZ,
            CONSTRAINT uq_daily_checkins_user_date UNIQUE (user_address, date)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_daily_checkins_user_address
        ON daily_checkins(user_address)
    """)

    # --- Reward transactions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS reward_transactions (
            id VARCHAR(36) PRIMARY KEY,
            user_address VARCHAR(42) NOT NULL,
            reward_type VARCHAR(32) NOT NULL,
            reward_id VARCHAR(64),
            amount NUMERIC(36, 18) NOT NULL,
            status VARCHAR(16) NOT NULL DEFAULT 'pending',
            transaction_hash VARCHAR(66),
            attempts INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            next_attempt_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL,
            sent_at TIMESTAMPTZ,
            sending_started_at TIMESTAMPTZ,
            CONSTRAINT ck_reward_transactions_status CHECK (status IN ('pending', 'sent', 'failed')),
            CONSTRAINT ck_reward_transactions_sent_fields CHECK (
                (status = 'sent') = (transaction_hash IS NOT NULL AND sent_at IS NOT NULL)
            )
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_reward_transactions_user_address
        ON reward_transactions(user_address)
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_reward_transactions_status_created
        ON reward_transactions(status, created_at)
    """)

    # --- Server wallet ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS server_wallet (
            address VARCHAR(42) PRIMARY KEY,
            balance NUMERIC(36, 18) NOT NULL DEFAULT 0,
            last_updated TIMESTAMPTZ NOT NULL
        )
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS server_wallet CASCADE")
    op.execute("DROP TABLE IF EXISTS reward_transactions CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_checkins CASCADE")
    op.execute("DROP TABLE IF EXISTS user_daily_tasks CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_tasks CASCADE")
    op.execute("DROP TABLE IF EXISTS user_challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS daily_challenges CASCADE")
    op.execute("DROP TABLE IF EXISTS user_achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS achievements CASCADE")
    op.execute("DROP TABLE IF EXISTS user_lesson_progress CASCADE")
    op.execute("DROP TABLE IF EXISTS lessons CASCADE")
    op.execute("DROP TABLE IF EXISTS user_stats CASCADE")
