"""
Social graph domain — Pydantic V2 request/response schemas.

Mutation responses embed the resolved RelationshipStatus between the active
persona and the other party so clients can reconcile optimistic state without
a second round trip.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.accounts.constants import AccountType
from app.accounts.persona import Endpoint
from app.social_graph.constants import ConnectionStatus, FollowStatus
from app.social_graph.status import RelationshipStatus


class _Base(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


# ── Embedded account reference (used inside list items) ────────────────────────

class AccountRef(BaseModel):
    kind: AccountType
    id: uuid.UUID
    name: str


# ── Connections ────────────────────────────────────────────────────────────────

class ConnectionRequest(_Base):
    target: Endpoint


class ConnectionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    connection_id: uuid.UUID
    requester: Endpoint
    recipient: Endpoint
    status: ConnectionStatus
    created_at: datetime
    updated_at: datetime


class ConnectionMutationResponse(BaseModel):
    # None when the connection was already gone (idempotent delete).
    connection: ConnectionOut | None
    relationship: RelationshipStatus | None


class ConnectionListItem(BaseModel):
    id: uuid.UUID           # connection_id
    account: AccountRef     # the other side, relative to the active persona
    status: ConnectionStatus
    created_at: datetime


class ConnectionListResponse(BaseModel):
    items: list[ConnectionListItem]
    total: int
    page: int
    size: int


# ── Follows ────────────────────────────────────────────────────────────────────

class FollowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    follow_id: uuid.UUID
    follower: Endpoint
    followee_id: uuid.UUID
    status: FollowStatus
    created_at: datetime


class FollowMutationResponse(BaseModel):
    follow: FollowOut | None
    relationship: RelationshipStatus | None


class FollowListItem(BaseModel):
    id: uuid.UUID           # follow_id
    account: AccountRef     # follower or followee depending on the list
    status: FollowStatus
    created_at: datetime


class FollowListResponse(BaseModel):
    items: list[FollowListItem]
    total: int
    page: int
    size: int


# ── Blocks ─────────────────────────────────────────────────────────────────────

class BlockMutationResponse(BaseModel):
    blocked: bool
    removed_connections: int = 0
    removed_follows: int = 0
    relationship: RelationshipStatus


class BlockedListItem(BaseModel):
    id: uuid.UUID
    user: AccountRef
    created_at: datetime


class BlockedListResponse(BaseModel):
    items: list[BlockedListItem]
    total: int
    page: int
    size: int


# ── Relationship status ────────────────────────────────────────────────────────

class BatchStatusRequest(_Base):
    targets: list[Endpoint] = Field(min_length=1, max_length=100)


class BatchStatusResponse(BaseModel):
    items: list[RelationshipStatus]
