"""
Social graph domain — routes.

Every route acts as the ACTIVE persona (X-Active-Account-* headers, validated
by get_active_persona).  Mutations return the resolved relationship status.

Routes (prefixed /api/v1):
  POST   /connections                    Send a connection request (50/hour)
  GET    /connections                    My accepted connections
  GET    /connections/requests           Pending requests (?direction=incoming|outgoing)
  POST   /connections/{id}/accept        Accept (recipient only)
  POST   /connections/{id}/reject        Reject (recipient only)
  DELETE /connections/{id}               Cancel a request or remove a connection
  POST   /users/{user_id}/follow         Follow / request to follow (50/hour)
  DELETE /users/{user_id}/follow         Unfollow / cancel request
  POST   /follows/{id}/accept            Accept a follow request
  POST   /follows/{id}/reject            Reject a follow request
  POST   /users/{user_id}/block          Block (removes connections and follows)
  DELETE /users/{user_id}/block          Unblock
  GET    /me/followers                   Accepted followers
  GET    /me/following                   Accepted following
  GET    /me/follow-requests             Pending incoming follow requests
  GET    /me/blocked                     My block list
  GET    /relationships/{kind}/{id}      Status of one target
  POST   /relationships/batch            Status of many targets

Note: /connections/requests must be registered before /connections/{id}/...
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.constants import AccountType
from app.accounts.dependencies import get_active_persona
from app.accounts.persona import Endpoint, Persona
from app.config import Settings, get_settings
from app.database import get_db
from app.rate_limit import RELATIONSHIP_REQUEST_LIMIT, limiter
from app.social_graph import controller as ctrl
from app.social_graph.constants import RequestDirection
from app.social_graph.schemas import (
    BatchStatusRequest,
    BatchStatusResponse,
    BlockedListResponse,
    BlockMutationResponse,
    ConnectionListResponse,
    ConnectionMutationResponse,
    ConnectionRequest,
    FollowListResponse,
    FollowMutationResponse,
)
from app.social_graph.status import RelationshipStatus

router = APIRouter(tags=["social-graph"])


# ── Connections ────────────────────────────────────────────────────────────────

@router.post(
    "/connections",
    response_model=ConnectionMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send a connection request",
    description="Rate-limited to 50 relationship requests per hour.",
)
@limiter.limit(RELATIONSHIP_REQUEST_LIMIT)
async def send_connection_request(
    request: Request,
    body: ConnectionRequest,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> ConnectionMutationResponse:
    return await ctrl.send_connection_request(session, active, body.target)


@router.get(
    "/connections",
    response_model=ConnectionListResponse,
    summary="List my accepted connections",
)
async def list_connections(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(20, ge=1, le=100, description="Items per page"),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> ConnectionListResponse:
    return await ctrl.list_connections(session, active, page=page, size=size)


@router.get(
    "/connections/requests",
    response_model=ConnectionListResponse,
    summary="List pending connection requests",
)
async def list_connection_requests(
    direction: RequestDirection = Query(RequestDirection.INCOMING),
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(20, ge=1, le=100, description="Items per page"),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> ConnectionListResponse:
    return await ctrl.list_connection_requests(
        session, active, direction, page=page, size=size
    )


@router.post(
    "/connections/{connection_id}/accept",
    response_model=ConnectionMutationResponse,
    summary="Accept a connection request",
)
async def accept_connection(
    connection_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> ConnectionMutationResponse:
    return await ctrl.accept_connection(session, active, connection_id)


@router.post(
    "/connections/{connection_id}/reject",
    response_model=ConnectionMutationResponse,
    summary="Reject a connection request",
)
async def reject_connection(
    connection_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> ConnectionMutationResponse:
    return await ctrl.reject_connection(session, active, connection_id)


@router.delete(
    "/connections/{connection_id}",
    response_model=ConnectionMutationResponse,
    summary="Cancel a connection request or remove a connection",
    description="Idempotent: removing a connection that no longer exists succeeds.",
)
async def remove_connection(
    connection_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> ConnectionMutationResponse:
    return await ctrl.remove_connection(session, active, connection_id)


# ── Follow ─────────────────────────────────────────────────────────────────────

@router.post(
    "/users/{user_id}/follow",
    response_model=FollowMutationResponse,
    status_code=status.HTTP_200_OK,
    summary="Follow a user",
    description=(
        "Accepted immediately unless the user requires approval. "
        "Rate-limited to 50 relationship requests per hour."
    ),
)
@limiter.limit(RELATIONSHIP_REQUEST_LIMIT)
async def follow_user(
    request: Request,
    user_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> FollowMutationResponse:
    return await ctrl.follow_user(session, active, user_id, limit=settings.follow_limit)


@router.delete(
    "/users/{user_id}/follow",
    response_model=FollowMutationResponse,
    summary="Unfollow a user or cancel a follow request",
)
async def unfollow_user(
    user_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> FollowMutationResponse:
    return await ctrl.unfollow_user(session, active, user_id)


@router.post(
    "/follows/{follow_id}/accept",
    response_model=FollowMutationResponse,
    summary="Accept a follow request",
)
async def accept_follow(
    follow_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> FollowMutationResponse:
    return await ctrl.accept_follow(session, active, follow_id)


@router.post(
    "/follows/{follow_id}/reject",
    response_model=FollowMutationResponse,
    summary="Reject a follow request",
)
async def reject_follow(
    follow_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> FollowMutationResponse:
    return await ctrl.reject_follow(session, active, follow_id)


# ── Block ──────────────────────────────────────────────────────────────────────

@router.post(
    "/users/{user_id}/block",
    response_model=BlockMutationResponse,
    summary="Block a user",
    description="Removes every connection and follow between you and this user.",
)
async def block_user(
    user_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> BlockMutationResponse:
    return await ctrl.block_user(session, active, user_id)


@router.delete(
    "/users/{user_id}/block",
    response_model=BlockMutationResponse,
    summary="Unblock a user",
)
async def unblock_user(
    user_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> BlockMutationResponse:
    return await ctrl.unblock_user(session, active, user_id)


# ── My lists ───────────────────────────────────────────────────────────────────

@router.get(
    "/me/followers",
    response_model=FollowListResponse,
    summary="List users who follow me",
)
async def my_followers(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(20, ge=1, le=100, description="Items per page"),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> FollowListResponse:
    return await ctrl.list_followers(session, active, page=page, size=size)


@router.get(
    "/me/following",
    response_model=FollowListResponse,
    summary="List users I follow",
)
async def my_following(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(20, ge=1, le=100, description="Items per page"),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> FollowListResponse:
    return await ctrl.list_following(session, active, page=page, size=size)


@router.get(
    "/me/follow-requests",
    response_model=FollowListResponse,
    summary="List pending follow requests sent to me",
)
async def my_follow_requests(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(20, ge=1, le=100, description="Items per page"),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> FollowListResponse:
    return await ctrl.list_follow_requests(session, active, page=page, size=size)


@router.get(
    "/me/blocked",
    response_model=BlockedListResponse,
    summary="List users I have blocked",
)
async def my_blocked(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(20, ge=1, le=100, description="Items per page"),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> BlockedListResponse:
    return await ctrl.list_blocked(session, active, page=page, size=size)


# ── Relationship status ────────────────────────────────────────────────────────

@router.get(
    "/relationships/{kind}/{target_id}",
    response_model=RelationshipStatus,
    summary="Relationship status between the active persona and a target",
)
async def get_relationship(
    kind: AccountType,
    target_id: uuid.UUID,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> RelationshipStatus:
    return await ctrl.get_status(session, active, Endpoint(kind=kind, id=target_id))


@router.post(
    "/relationships/batch",
    response_model=BatchStatusResponse,
    summary="Relationship statuses for many targets",
    description="Targets that do not exist are reported with every status set to none.",
)
async def get_relationships(
    body: BatchStatusRequest,
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> BatchStatusResponse:
    return await ctrl.get_statuses(session, active, body.targets)
