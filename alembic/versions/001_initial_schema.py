"""Initial CordNode schema.

Creates users, mining_sessions, tasks, user_tasks, referral_data,
user_settings, badge_purchases, notifications and user_ip_addresses.

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _serial_pk() -> str:
    if op.get_bind().dialect.name == "sqlite":
        return "INTEGER PRIMARY KEY AUTOINCREMENT"
    return "SERIAL PRIMARY KEY"


def upgrade() -> None:
    serial = _serial_pk()

    # --- Users ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            id VARCHAR(32) PRIMARY KEY,
            username VARCHAR(255) UNIQUE NOT NULL,
            discriminator VARCHAR(10) NOT NULL DEFAULT '0000',
            avatar VARCHAR(255),
            join_date TIMESTAMPTZ NOT NULL,
            account_age NUMERIC(10, 2) NOT NULL DEFAULT 0,
            multiplier NUMERIC(10, 2) NOT NULL DEFAULT 1.0,
            current_balance NUMERIC(20, 8) NOT NULL DEFAULT 0,
            total_earned NUMERIC(20, 8) NOT NULL DEFAULT 0,
            weekly_earnings NUMERIC(20, 8) NOT NULL DEFAULT 0,
            monthly_earnings NUMERIC(20, 8) NOT NULL DEFAULT 0,
            referral_earnings NUMERIC(20, 8) NOT NULL DEFAULT 0,
            tasks_completed INTEGER NOT NULL DEFAULT 0,
            total_referrals INTEGER NOT NULL DEFAULT 0,
            is_node_active BOOLEAN NOT NULL DEFAULT false,
            node_start_time BIGINT,
            last_login_time BIGINT NOT NULL DEFAULT 0,
            daily_checkin_claimed BOOLEAN NOT NULL DEFAULT false,
            referral_code VARCHAR(16) UNIQUE NOT NULL,
            referred_by VARCHAR(32) REFERENCES users(id),
            has_badge_of_honor BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMPTZ
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS idx_users_total_earned
        ON users(total_earned DESC)
    """)

    # --- Mining Sessions ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS mining_sessions (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(32) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            start_time TIMESTAMPTZ NOT NULL,
            end_time TIMESTAMPTZ,
            earnings NUMERIC(20, 8) NOT NULL DEFAULT 0,
            hash_rate NUMERIC(10, 2) NOT NULL DEFAULT 0,
            efficiency NUMERIC(5, 2) NOT NULL DEFAULT 85,
            flush_sequence INTEGER NOT NULL DEFAULT 0,
            last_activity_at TIMESTAMPTZ NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_mining_sessions_user_start
        ON mining_sessions(user_id, start_time)
    """)
    op.execute("""
        CREATE UNIQUE INDEX IF NOT EXISTS uq_mining_sessions_one_open
        ON mining_sessions(user_id) WHERE end_time IS NULL
    """)

    # --- Tasks ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS tasks (
            id VARCHAR(64) PRIMARY KEY,
            title VARCHAR(255) NOT NULL,
            description TEXT NOT NULL,
            reward NUMERIC(20, 8) NOT NULL,
            type VARCHAR(16) NOT NULL,
            max_progress INTEGER NOT NULL DEFAULT 1,
            social_url VARCHAR(500),
            expires_at TIMESTAMPTZ,
            sort_order INTEGER NOT NULL DEFAULT 0
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_tasks_type
        ON tasks(type)
    """)

    # --- User Tasks ---
    op.execute(f"""
        CREATE TABLE IF NOT EXISTS user_tasks (
            id {serial},
            user_id VARCHAR(32) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            task_id VARCHAR(64) NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
            completed BOOLEAN NOT NULL DEFAULT false,
            progress INTEGER NOT NULL DEFAULT 0,
            claimed_at TIMESTAMPTZ,
            reward NUMERIC(20, 8) NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT uq_user_tasks_user_task UNIQUE(user_id, task_id)
        )
    """)

    # --- Referral Data ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS referral_data (
            id VARCHAR(36) PRIMARY KEY,
            code VARCHAR(16) NOT NULL,
            referrer_id VARCHAR(32) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            referred_user_id VARCHAR(32) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            total_earnings NUMERIC(20, 8) NOT NULL DEFAULT 0,
            total_referrals INTEGER NOT NULL DEFAULT 1,
            created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT uq_referral_data_pair UNIQUE(referrer_id, referred_user_id),
            CONSTRAINT uq_referral_data_referred UNIQUE(referred_user_id)
        )
    """)

    # --- User Settings ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS user_settings (
            user_id VARCHAR(32) PRIMARY KEY REFERENCES users(id) ON DELETE CASCADE,
            notifications JSONB,
            privacy JSONB,
            mining JSONB,
            display JSONB,
            updated_at TIMESTAMPTZ
        )
    """)

    # --- Badge Purchases ---
    op.execute("""
        CREATE TABLE IF NOT EXISTS badge_purchases (
            id VARCHAR(36) PRIMARY KEY,
            user_id VARCHAR(32) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            wallet_address VARCHAR(64) NOT NULL,
            transaction_hash VARCHAR(120) UNIQUE NOT NULL,
            amount_sol NUMERIC(10, 6) NOT NULL,
            amount_usd NUMERIC(10, 2) NOT NULL,
            status VARCHAR(20) NOT NULL DEFAULT 'pending',
            purchase_date TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # --- Notifications ---
    op.execute(f"""
        CREATE TABLE IF NOT EXISTS notifications (
            id {serial},
            user_id VARCHAR(32) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            type VARCHAR(32) NOT NULL,
            subtype VARCHAR(64) NOT NULL,
            kind VARCHAR(16) NOT NULL DEFAULT 'info',
            title VARCHAR(256) NOT NULL,
            description TEXT,
            read BOOLEAN NOT NULL DEFAULT false,
            created_at TIMESTAMPTZ NOT NULL
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_notifications_user_created
        ON notifications(user_id, created_at)
    """)

    # --- Anti-cheat IP tracking ---
    op.execute(f"""
        CREATE TABLE IF NOT EXISTS user_ip_addresses (
            id {serial},
            user_id VARCHAR(32) NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            ip_address VARCHAR(45) NOT NULL,
            user_agent VARCHAR(512),
            first_seen TIMESTAMPTZ NOT NULL,
            last_seen TIMESTAMPTZ NOT NULL,
            CONSTRAINT uq_user_ip_addresses_user_ip UNIQUE(user_id, ip_address)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_user_ip_addresses_ip
        ON user_ip_addresses(ip_address)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS user_ip_addresses")
    op.execute("DROP TABLE IF EXISTS notifications")
    op.execute("DROP TABLE IF EXISTS badge_purchases")
    op.execute("DROP TABLE IF EXISTS user_settings")
    op.execute("DROP TABLE IF EXISTS referral_data")
    op.execute("DROP TABLE IF EXISTS user_tasks")
    op.execute("DROP TABLE IF EXISTS tasks")
    op.execute("DROP TABLE IF EXISTS mining_sessions")
    op.execute("DROP TABLE IF EXISTS users")
