"""
moodify.database.models — SQLAlchemy 2.0 Data Models
=====================================================

Tables:
- users          — Identity rows (opaque id + mutable nickname)
- xp_ledgers     — One cumulative XP / streak row per user
- claim_records  — One row per (user, reward source, calendar day)
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Moodify ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class RewardSource(enum.StrEnum):
    """User actions that can earn XP once per day."""
    MOOD_ENTRY = "mood_entry"
    CHATBOT_RATING = "chatbot_rating"


# ---------------------------------------------------------------------------
# Users: one row per app identity
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    nickname: Mapped[str] = mapped_column(String(100), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    last_login: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    ledger: Mapped[XpLedger | None] = relationship(
        back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    claims: Mapped[list[ClaimRecord]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!r} nickname={self.nickname!r}>"


# ---------------------------------------------------------------------------
# XpLedger: cumulative XP and streak, one row per user
# ---------------------------------------------------------------------------
class XpLedger(Base):
    __tablename__ = "xp_ledgers"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    current_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    user: Mapped[User] = relationship(back_populates="ledger")

    def __repr__(self) -> str:
        return (
            f"<XpLedger user={self.user_id!r} xp={self.current_xp} "
            f"streak={self.streak}>"
        )


# ---------------------------------------------------------------------------
# ClaimRecord: the once-per-day reward guard
# ---------------------------------------------------------------------------
class ClaimRecord(Base):
    """Marks that *source* was redeemed by *user_id* on *day*.

    The unique constraint on (user_id, source, day) is what turns two racing
    claims into one winner.  Rows are never updated.
    """
    __tablename__ = "claim_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    action_id: Mapped[str | None] = mapped_column(String(100), default=None)
    claimed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="claims")

    __table_args__ = (
        UniqueConstraint("user_id", "source", "day", name="uq_claims_user_source_day"),
        Index("ix_claim_records_day", "day"),
    )

    def __repr__(self) -> str:
        return (
            f"<ClaimRecord user={self.user_id!r} source={self.source!r} "
            f"day={self.day.isoformat()}>"
        )
