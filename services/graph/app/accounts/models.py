"""
Accounts domain — SQLAlchemy ORM models.

Tables:
  users       — principals (personal accounts) and their follow policy
  businesses  — business accounts, each owned by exactly one user
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.database.postgres import Base
from app.accounts.constants import FollowPolicy


def _now() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    display_name: Mapped[str] = mapped_column(sa.String(150), nullable=False)
    follow_policy: Mapped[FollowPolicy] = mapped_column(
        sa.Enum(
            FollowPolicy,
            name="followpolicy",
            values_callable=lambda e: [x.value for x in e],
        ),
        nullable=False,
        default=FollowPolicy.ANYONE,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_now
    )

    businesses = relationship("Business", back_populates="owner", lazy="raise")


class Business(Base):
    __tablename__ = "businesses"

    id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_now
    )

    owner = relationship("User", back_populates="businesses", lazy="raise")

    __table_args__ = (sa.Index("idx_businesses_owner_id", "owner_id"),)
