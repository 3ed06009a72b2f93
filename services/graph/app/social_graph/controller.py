"""
Social graph domain — request orchestration.

Runs the store mutation, then re-resolves the relationship from the acting
persona's side and packs both into the response.
"""
from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.constants import AccountType
from app.accounts.persona import Endpoint, Persona
from app.social_graph import service as svc
from app.social_graph import status as resolver
from app.social_graph.constants import RequestDirection
from app.social_graph.models import Connection, Follow
from app.social_graph.schemas import (
    AccountRef,
    BatchStatusResponse,
    BlockedListItem,
    BlockedListResponse,
    BlockMutationResponse,
    ConnectionListItem,
    ConnectionListResponse,
    ConnectionMutationResponse,
    ConnectionOut,
    FollowListItem,
    FollowListResponse,
    FollowMutationResponse,
    FollowOut,
)


def _user(user_id: uuid.UUID) -> Endpoint:
    return Endpoint(kind=AccountType.USER, id=user_id)


def _ref(endpoint: Endpoint, names: dict[Endpoint, str]) -> AccountRef:
    return AccountRef(
        kind=endpoint.kind, id=endpoint.id, name=names.get(endpoint, "Unknown account")
    )


async def _connection_response(
    session: AsyncSession, active: Persona, connection: Connection | None
) -> ConnectionMutationResponse:
    if connection is None:
        return ConnectionMutationResponse(connection=None, relationship=None)
    other = connection.other_side(active.endpoint)
    return ConnectionMutationResponse(
        connection=ConnectionOut.model_validate(connection),
        relationship=await resolver.resolve_status(session, active, other),
    )


async def _follow_response(
    session: AsyncSession, active: Persona, edge: Follow | None, other: Endpoint | None
) -> FollowMutationResponse:
    return FollowMutationResponse(
        follow=FollowOut.model_validate(edge) if edge is not None else None,
        relationship=(
            await resolver.resolve_status(session, active, other) if other is not None else None
        ),
    )


# ── Connections ────────────────────────────────────────────────────────────────

async def send_connection_request(
    session: AsyncSession, active: Persona, target: Endpoint
) -> ConnectionMutationResponse:
    connection = await svc.send_connection_request(session, active, target)
    return await _connection_response(session, active, connection)


async def accept_connection(
    session: AsyncSession, active: Persona, connection_id: uuid.UUID
) -> ConnectionMutationResponse:
    connection = await svc.accept_connection_request(session, active, connection_id)
    return await _connection_response(session, active, connection)


async def reject_connection(
    session: AsyncSession, active: Persona, connection_id: uuid.UUID
) -> ConnectionMutationResponse:
    connection = await svc.reject_connection_request(session, active, connection_id)
    return await _connection_response(session, active, connection)


async def remove_connection(
    session: AsyncSession, active: Persona, connection_id: uuid.UUID
) -> ConnectionMutationResponse:
    connection = await svc.remove_connection(session, active, connection_id)
    return await _connection_response(session, active, connection)


async def _connection_list(
    session: AsyncSession,
    active: Persona,
    rows: list[Connection],
    total: int,
    page: int,
    size: int,
) -> ConnectionListResponse:
    others = [c.other_side(active.endpoint) for c in rows]
    names = await svc.display_names(session, others)
    items = [
        ConnectionListItem(
            id=c.connection_id,
            account=_ref(other, names),
            status=c.status,
            created_at=c.created_at,
        )
        for c, other in zip(rows, others)
    ]
    return ConnectionListResponse(items=items, total=total, page=page, size=size)


async def list_connections(
    session: AsyncSession, active: Persona, page: int, size: int
) -> ConnectionListResponse:
    rows, total = await svc.list_connections(session, active, page=page, size=size)
    return await _connection_list(session, active, rows, total, page, size)


async def list_connection_requests(
    session: AsyncSession,
    active: Persona,
    direction: RequestDirection,
    page: int,
    size: int,
) -> ConnectionListResponse:
    rows, total = await svc.list_connection_requests(
        session, active, direction, page=page, size=size
    )
    return await _connection_list(session, active, rows, total, page, size)


# ── Follows ────────────────────────────────────────────────────────────────────

async def follow_user(
    session: AsyncSession, active: Persona, user_id: uuid.UUID, limit: int
) -> FollowMutationResponse:
    edge = await svc.follow_user(session, active, user_id, limit=limit)
    return await _follow_response(session, active, edge, _user(user_id))


async def unfollow_user(
    session: AsyncSession, active: Persona, user_id: uuid.UUID
) -> FollowMutationResponse:
    await svc.unfollow_user(session, active, user_id)
    return await _follow_response(session, active, None, _user(user_id))


async def accept_follow(
    session: AsyncSession, active: Persona, follow_id: uuid.UUID
) -> FollowMutationResponse:
    edge = await svc.accept_follow_request(session, active, follow_id)
    return await _follow_response(session, active, edge, edge.follower)


async def reject_follow(
    session: AsyncSession, active: Persona, follow_id: uuid.UUID
) -> FollowMutationResponse:
    edge = await svc.reject_follow_request(session, active, follow_id)
    other = edge.follower if edge is not None else None
    return await _follow_response(session, active, None, other)


async def _follow_list(
    session: AsyncSession,
    rows: list[Follow],
    total: int,
    page: int,
    size: int,
    *,
    outgoing: bool,
) -> FollowListResponse:
    others = [_user(f.followee_id) if outgoing else f.follower for f in rows]
    names = await svc.display_names(session, others)
    items = [
        FollowListItem(
            id=f.follow_id, account=_ref(other, names), status=f.status, created_at=f.created_at
        )
        for f, other in zip(rows, others)
    ]
    return FollowListResponse(items=items, total=total, page=page, size=size)


async def list_followers(
    session: AsyncSession, active: Persona, page: int, size: int
) -> FollowListResponse:
    rows, total = await svc.list_followers(session, active, page=page, size=size)
    return await _follow_list(session, rows, total, page, size, outgoing=False)


async def list_following(
    session: AsyncSession, active: Persona, page: int, size: int
) -> FollowListResponse:
    rows, total = await svc.list_following(session, active, page=page, size=size)
    return await _follow_list(session, rows, total, page, size, outgoing=True)


async def list_follow_requests(
    session: AsyncSession, active: Persona, page: int, size: int
) -> FollowListResponse:
    rows, total = await svc.list_follow_requests(session, active, page=page, size=size)
    return await _follow_list(session, rows, total, page, size, outgoing=False)


# ── Blocks ─────────────────────────────────────────────────────────────────────

async def block_user(
    session: AsyncSession, active: Persona, user_id: uuid.UUID
) -> BlockMutationResponse:
    result = await svc.block_principal(session, active, user_id)
    return BlockMutationResponse(
        blocked=True,
        removed_connections=result.removed_connections,
        removed_follows=result.removed_follows,
        relationship=await resolver.resolve_status(session, active, _user(user_id)),
    )


async def unblock_user(
    session: AsyncSession, active: Persona, user_id: uuid.UUID
) -> BlockMutationResponse:
    await svc.unblock_principal(session, active, user_id)
    relationship = await resolver.resolve_status(session, active, _user(user_id))
    # Another persona of ours (or the other side) may still hold a block.
    return BlockMutationResponse(blocked=relationship.blocked, relationship=relationship)


async def list_blocked(
    session: AsyncSession, active: Persona, page: int, size: int
) -> BlockedListResponse:
    rows, total = await svc.list_blocked(session, active, page=page, size=size)
    items = [
        BlockedListItem(
            id=b.block_id,
            user=AccountRef(kind=AccountType.USER, id=u.id, name=u.display_name),
            created_at=b.created_at,
        )
        for b, u in rows
    ]
    return BlockedListResponse(items=items, total=total, page=page, size=size)


# ── Relationship status ────────────────────────────────────────────────────────

async def get_status(
    session: AsyncSession, active: Persona, target: Endpoint
) -> resolver.RelationshipStatus:
    return await resolver.resolve_status(session, active, target)


async def get_statuses(
    session: AsyncSession, active: Persona, targets: list[Endpoint]
) -> BatchStatusResponse:
    return BatchStatusResponse(items=await resolver.resolve_statuses(session, active, targets))
