"""
Social graph domain — SQLAlchemy ORM models.

Endpoints are tagged variants (kind, id) rather than one nullable foreign key
per target table, so "both set" / "neither set" rows cannot exist.  Endpoint
ids therefore carry no FK; deleting a business cleans its rows up explicitly
(see accounts.service.delete_business).

Tables:
  connections — mutual, approval-gated edges between two endpoints
  follows     — directed edges, follower endpoint → followee user
  blocks      — blocker persona → blocked principal
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from shared.database.postgres import Base
from app.accounts.constants import AccountType
from app.accounts.persona import Endpoint
from app.social_graph.constants import ConnectionStatus, FollowStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _account_type_enum() -> sa.Enum:
    return sa.Enum(
        AccountType,
        name="accounttype",
        values_callable=lambda e: [x.value for x in e],
    )


def pair_key(a: Endpoint, b: Endpoint) -> str:
    """Order-independent key for an unordered endpoint pair."""
    first, second = sorted((a.key, b.key))
    return f"{first}|{second}"


class Connection(Base):
    __tablename__ = "connections"

    connection_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, primary_key=True, default=uuid.uuid4
    )
    requester_kind: Mapped[AccountType] = mapped_column(_account_type_enum(), nullable=False)
    requester_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    recipient_kind: Mapped[AccountType] = mapped_column(_account_type_enum(), nullable=False)
    recipient_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    pair_key: Mapped[str] = mapped_column(sa.String(120), nullable=False)
    status: Mapped[ConnectionStatus] = mapped_column(
        sa.Enum(
            ConnectionStatus,
            name="connectionstatus",
            values_callable=lambda e: [x.value for x in e],
        ),
        nullable=False,
        default=ConnectionStatus.PENDING,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    __table_args__ = (
        sa.CheckConstraint(
            "NOT (requester_kind = recipient_kind AND requester_id = recipient_id)",
            name="ck_connections_no_self",
        ),
        # At most one live (non-rejected) connection per unordered pair.
        sa.Index(
            "uq_connections_live_pair",
            "pair_key",
            unique=True,
            postgresql_where=sa.text("status != 'rejected'"),
            sqlite_where=sa.text("status != 'rejected'"),
        ),
        sa.Index("idx_connections_requester", "requester_kind", "requester_id"),
        sa.Index("idx_connections_recipient", "recipient_kind", "recipient_id"),
    )

    @property
    def requester(self) -> Endpoint:
        return Endpoint(kind=self.requester_kind, id=self.requester_id)

    @property
    def recipient(self) -> Endpoint:
        return Endpoint(kind=self.recipient_kind, id=self.recipient_id)

    def other_side(self, endpoint: Endpoint) -> Endpoint:
        return self.recipient if endpoint == self.requester else self.requester


class Follow(Base):
    __tablename__ = "follows"

    follow_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, primary_key=True, default=uuid.uuid4
    )
    follower_kind: Mapped[AccountType] = mapped_column(_account_type_enum(), nullable=False)
    follower_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    # Followees are always users; businesses are connection-only targets.
    followee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[FollowStatus] = mapped_column(
        sa.Enum(
            FollowStatus,
            name="followstatus",
            values_callable=lambda e: [x.value for x in e],
        ),
        nullable=False,
        default=FollowStatus.ACCEPTED,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_now, onupdate=_now
    )

    __table_args__ = (
        sa.UniqueConstraint(
            "follower_kind", "follower_id", "followee_id", name="uq_follows_edge"
        ),
        sa.Index("idx_follows_follower", "follower_kind", "follower_id"),
    )

    @property
    def follower(self) -> Endpoint:
        return Endpoint(kind=self.follower_kind, id=self.follower_id)

    @property
    def followee(self) -> Endpoint:
        return Endpoint(kind=AccountType.USER, id=self.followee_id)


class Block(Base):
    __tablename__ = "blocks"

    block_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, primary_key=True, default=uuid.uuid4
    )
    blocker_kind: Mapped[AccountType] = mapped_column(_account_type_enum(), nullable=False)
    blocker_id: Mapped[uuid.UUID] = mapped_column(sa.Uuid, nullable=False)
    # Principal behind the blocking persona; resolution works principal-to-principal.
    blocker_principal_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    blocked_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), nullable=False, default=_now
    )

    __table_args__ = (
        sa.UniqueConstraint(
            "blocker_kind", "blocker_id", "blocked_id", name="uq_blocks_edge"
        ),
        sa.CheckConstraint("blocker_principal_id != blocked_id", name="ck_blocks_no_self"),
    )

    @property
    def blocker(self) -> Endpoint:
        return Endpoint(kind=self.blocker_kind, id=self.blocker_id)
