"""Initial graph schema: users, businesses, connections, follows, blocks

Revision ID: 001
Revises:
Create Date: 2026-10-19

Tables created:
  - users         Principals with their follow policy
  - businesses    Business accounts, each owned by one user
  - connections   Mutual edges between two (kind, id) endpoints; rejected rows
                  are kept and excluded from the live-pair unique index
  - follows       follower endpoint → followee user
  - blocks        blocking persona → blocked principal

PostgreSQL ENUM types created:
  - followpolicy       anyone / approval
  - accounttype        user / business
  - connectionstatus   pending / accepted / rejected
  - followstatus       pending / accepted
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ENUMS = {
    "followpolicy": ("anyone", "approval"),
    "accounttype": ("user", "business"),
    "connectionstatus": ("pending", "accepted", "rejected"),
    "followstatus": ("pending", "accepted"),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(name=name, create_type=False)


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


# ─────────────────────────────────────────────────────────────────────────────
#  UPGRADE
# ─────────────────────────────────────────────────────────────────────────────

def upgrade() -> None:
    # ── 1. PostgreSQL ENUM types ──────────────────────────────────────────────
    for name, values in _ENUMS.items():
        labels = ", ".join(f"'{v}'" for v in values)
        op.execute(
            f"""
            DO $$ BEGIN
                CREATE TYPE {name} AS ENUM ({labels});
            EXCEPTION WHEN duplicate_object THEN NULL;
            END $$;
            """
        )

    # ── 2. users ──────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("display_name", sa.String(150), nullable=False),
        sa.Column(
            "follow_policy",
            _enum("followpolicy"),
            nullable=False,
            server_default=sa.text("'anyone'"),
        ),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
    )

    # ── 3. businesses ─────────────────────────────────────────────────────────
    op.create_table(
        "businesses",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_businesses"),
        sa.ForeignKeyConstraint(
            ["owner_id"],
            ["users.id"],
            name="fk_businesses_owner_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index("idx_businesses_owner_id", "businesses", ["owner_id"])

    # ── 4. connections ────────────────────────────────────────────────────────
    # Endpoint ids carry no FK: they point at users or businesses by kind.
    op.create_table(
        "connections",
        sa.Column(
            "connection_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("requester_kind", _enum("accounttype"), nullable=False),
        sa.Column("requester_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_kind", _enum("accounttype"), nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("pair_key", sa.String(120), nullable=False),
        sa.Column(
            "status",
            _enum("connectionstatus"),
            nullable=False,
            server_default=sa.text("'pending'"),
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("connection_id", name="pk_connections"),
        sa.CheckConstraint(
            "NOT (requester_kind = recipient_kind AND requester_id = recipient_id)",
            name="ck_connections_no_self",
        ),
    )
    op.create_index(
        "uq_connections_live_pair",
        "connections",
        ["pair_key"],
        unique=True,
        postgresql_where=sa.text("status != 'rejected'"),
    )
    op.create_index(
        "idx_connections_requester", "connections", ["requester_kind", "requester_id"]
    )
    op.create_index(
        "idx_connections_recipient", "connections", ["recipient_kind", "recipient_id"]
    )
    op.create_index("ix_connections_status", "connections", ["status"])

    # ── 5. follows ────────────────────────────────────────────────────────────
    op.create_table(
        "follows",
        sa.Column(
            "follow_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("follower_kind", _enum("accounttype"), nullable=False),
        sa.Column("follower_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("followee_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "status",
            _enum("followstatus"),
            nullable=False,
            server_default=sa.text("'accepted'"),
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("follow_id", name="pk_follows"),
        sa.ForeignKeyConstraint(
            ["followee_id"],
            ["users.id"],
            name="fk_follows_followee_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "follower_kind", "follower_id", "followee_id", name="uq_follows_edge"
        ),
    )
    op.create_index("idx_follows_follower", "follows", ["follower_kind", "follower_id"])
    op.create_index("ix_follows_followee_id", "follows", ["followee_id"])
    op.create_index("ix_follows_status", "follows", ["status"])

    # ── 6. blocks ─────────────────────────────────────────────────────────────
    op.create_table(
        "blocks",
        sa.Column(
            "block_id",
            postgresql.UUID(as_uuid=True),
            nullable=False,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column("blocker_kind", _enum("accounttype"), nullable=False),
        sa.Column("blocker_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("blocker_principal_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("blocked_id", postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("block_id", name="pk_blocks"),
        sa.ForeignKeyConstraint(
            ["blocker_principal_id"],
            ["users.id"],
            name="fk_blocks_blocker_principal_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["blocked_id"],
            ["users.id"],
            name="fk_blocks_blocked_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("blocker_kind", "blocker_id", "blocked_id", name="uq_blocks_edge"),
        sa.CheckConstraint("blocker_principal_id != blocked_id", name="ck_blocks_no_self"),
    )
    op.create_index("ix_blocks_blocker_principal_id", "blocks", ["blocker_principal_id"])
    op.create_index("ix_blocks_blocked_id", "blocks", ["blocked_id"])


# ─────────────────────────────────────────────────────────────────────────────
#  DOWNGRADE
# ─────────────────────────────────────────────────────────────────────────────

def downgrade() -> None:
    # Drop tables in reverse FK dependency order
    op.drop_table("blocks")
    op.drop_table("follows")
    op.drop_table("connections")
    op.drop_table("businesses")
    op.drop_table("users")

    # Drop ENUM types (must happen after tables are gone)
    for name in reversed(list(_ENUMS)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
