"""ORM models for the CordNode schema.

Ledger columns are NUMERIC and are only ever changed through atomic
increments (see cordnode.ledger.service). Epoch millisecond columns mirror
the values the browser client works with.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cordnode.db.base import Base

# Ledger precision shared by every CORD amount column
CORD = Numeric(20, 8)

JSONDict = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """One row per Discord account that has signed in."""

    __tablename__ = "users"

    # Discord snowflake
    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    username: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    discriminator: Mapped[str] = mapped_column(String(10), nullable=False, default="0000")
    avatar: Mapped[str | None] = mapped_column(String(255), nullable=True)
    join_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    account_age: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    multiplier: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("1.0"))

    # --- Ledger ---
    current_balance: Mapped[Decimal] = mapped_column(CORD, nullable=False, default=Decimal("0"), server_default="0")
    total_earned: Mapped[Decimal] = mapped_column(CORD, nullable=False, default=Decimal("0"), server_default="0")
    weekly_earnings: Mapped[Decimal] = mapped_column(CORD, nullable=False, default=Decimal("0"), server_default="0")
    monthly_earnings: Mapped[Decimal] = mapped_column(CORD, nullable=False, default=Decimal("0"), server_default="0")
    referral_earnings: Mapped[Decimal] = mapped_column(CORD, nullable=False, default=Decimal("0"), server_default="0")
    tasks_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    total_referrals: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")

    # --- Node ---
    is_node_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    node_start_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    # --- Daily check-in ---
    last_login_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    daily_checkin_claimed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    # --- Referrals ---
    referral_code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    referred_by: Mapped[str | None] = mapped_column(String(32), ForeignKey("users.id"), nullable=True)

    has_badge_of_honor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    # --- Relationships ---
    settings: Mapped[UserSettings | None] = relationship("UserSettings", back_populates="user", uselist=False)
    mining_sessions: Mapped[list[MiningSession]] = relationship("MiningSession", back_populates="user")
    user_tasks: Mapped[list[UserTask]] = relationship("UserTask", back_populates="user")


# ---------------------------------------------------------------------------
# Mining
# ---------------------------------------------------------------------------


class MiningSession(Base):
    """One start/stop cycle of a user's node."""

    __tablename__ = "mining_sessions"
    __table_args__ = (
        Index("ix_mining_sessions_user_start", "user_id", "start_time"),
        # At most one open session per user
        Index(
            "uq_mining_sessions_one_open",
            "user_id",
            unique=True,
            postgresql_where=text("end_time IS NULL"),
            sqlite_where=text("end_time IS NULL"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    earnings: Mapped[Decimal] = mapped_column(CORD, nullable=False, default=Decimal("0"), server_default="0")
    hash_rate: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    efficiency: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("85"))
    # Highest flush batch sequence credited to this session
    flush_sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_activity_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user: Mapped[User] = relationship("User", back_populates="mining_sessions")


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class Task(Base):
    """Global task template."""

    __tablename__ = "tasks"
    __table_args__ = (Index("ix_tasks_type", "type"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    reward: Mapped[Decimal] = mapped_column(CORD, nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)
    max_progress: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    social_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")


class UserTask(Base):
    """Per-user progress on a task. A (user, task) pair completes at most once."""

    __tablename__ = "user_tasks"
    __table_args__ = (UniqueConstraint("user_id", "task_id", name="uq_user_tasks_user_task"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    task_id: Mapped[str] = mapped_column(String(64), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reward: Mapped[Decimal] = mapped_column(CORD, nullable=False, default=Decimal("0"), server_default="0")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user: Mapped[User] = relationship("User", back_populates="user_tasks")
    task: Mapped[Task] = relationship("Task")


# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------


class ReferralData(Base):
    """One row per (referrer, referred) pairing."""

    __tablename__ = "referral_data"
    __table_args__ = (
        UniqueConstraint("referrer_id", "referred_user_id", name="uq_referral_data_pair"),
        UniqueConstraint("referred_user_id", name="uq_referral_data_referred"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    code: Mapped[str] = mapped_column(String(16), nullable=False)
    referrer_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    referred_user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    total_earnings: Mapped[Decimal] = mapped_column(CORD, nullable=False, default=Decimal("0"), server_default="0")
    total_referrals: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    referred_user: Mapped[User] = relationship("User", foreign_keys=[referred_user_id])


# ---------------------------------------------------------------------------
# User Settings
# ---------------------------------------------------------------------------


class UserSettings(Base):
    """Per-user preference groups stored as JSON."""

    __tablename__ = "user_settings"

    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    notifications: Mapped[dict[str, Any]] = mapped_column(JSONDict, default=dict)
    privacy: Mapped[dict[str, Any]] = mapped_column(JSONDict, default=dict)
    mining: Mapped[dict[str, Any]] = mapped_column(JSONDict, default=dict)
    display: Mapped[dict[str, Any]] = mapped_column(JSONDict, default=dict)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship("User", back_populates="settings")


# ---------------------------------------------------------------------------
# Badge of Honor purchases
# ---------------------------------------------------------------------------


class BadgePurchase(Base):
    """A Badge of Honor purchase, keyed by its on-chain transaction hash."""

    __tablename__ = "badge_purchases"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(64), nullable=False)
    transaction_hash: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    amount_sol: Mapped[Decimal] = mapped_column(Numeric(10, 6), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", server_default="pending")
    purchase_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class Notification(Base):
    """Persisted user notifications."""

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_user_created", "user_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    subtype: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="info")
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Anti-cheat
# ---------------------------------------------------------------------------


class UserIpAddress(Base):
    """IP addresses a user has been seen from."""

    __tablename__ = "user_ip_addresses"
    __table_args__ = (
        UniqueConstraint("user_id", "ip_address", name="uq_user_ip_addresses_user_ip"),
        Index("ix_user_ip_addresses_ip", "ip_address"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    ip_address: Mapped[str] = mapped_column(String(45), nullable=False)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)
    first_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
