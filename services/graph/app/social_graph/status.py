"""
Social graph domain — relationship status resolution.

Resolution order, from the ACTIVE persona's point of view:
  1. a block between the two underlying principals (either direction)
     → blocked, every other field "none"
  2. the live (non-rejected) connection for the exact endpoint pair
     → accepted | pending_sent | pending_received
  3. follow edges, independently of the connection:
     follow_status       active → target (only when target is a user)
     followed_by_status  target → active (only when active is personal)

resolve_from_records is pure; resolve_status/resolve_statuses fetch the
records and delegate to it.
"""
from __future__ import annotations

import logging
import uuid

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts import service as accounts
from app.accounts.constants import AccountType
from app.accounts.persona import Endpoint, Persona
from app.exceptions import NotFound
from app.social_graph import service
from app.social_graph.constants import (
    ConnectionStatus,
    ConnectionView,
    FollowStatus,
    FollowView,
)
from app.social_graph.models import Connection, Follow

logger = logging.getLogger(__name__)


class RelationshipStatus(BaseModel):
    target: Endpoint
    connection_status: ConnectionView = ConnectionView.NONE
    connection_id: uuid.UUID | None = None
    follow_status: FollowView = FollowView.NONE
    follow_id: uuid.UUID | None = None
    followed_by_status: FollowView = FollowView.NONE
    followed_by_id: uuid.UUID | None = None
    blocked: bool = False

    @classmethod
    def none(cls, target: Endpoint) -> RelationshipStatus:
        return cls(target=target)


def _connection_view(active: Endpoint, connection: Connection | None) -> ConnectionView:
    if connection is None or connection.status is ConnectionStatus.REJECTED:
        return ConnectionView.NONE
    if connection.status is ConnectionStatus.ACCEPTED:
        return ConnectionView.ACCEPTED
    if connection.requester == active:
        return ConnectionView.PENDING_SENT
    return ConnectionView.PENDING_RECEIVED


def resolve_from_records(
    active: Persona,
    target: Endpoint,
    *,
    blocked: bool,
    connection: Connection | None = None,
    outgoing_follow: Follow | None = None,
    incoming_follow: Follow | None = None,
) -> RelationshipStatus:
    if blocked:
        return RelationshipStatus(target=target, blocked=True)

    status = RelationshipStatus(target=target)
    view = _connection_view(active.endpoint, connection)
    if view is not ConnectionView.NONE:
        status.connection_status = view
        status.connection_id = connection.connection_id

    if target.kind is AccountType.USER and outgoing_follow is not None:
        status.follow_status = (
            FollowView.ACCEPTED
            if outgoing_follow.status is FollowStatus.ACCEPTED
            else FollowView.PENDING_SENT
        )
        status.follow_id = outgoing_follow.follow_id

    if active.kind is AccountType.USER and incoming_follow is not None:
        status.followed_by_status = (
            FollowView.ACCEPTED
            if incoming_follow.status is FollowStatus.ACCEPTED
            else FollowView.PENDING_RECEIVED
        )
        status.followed_by_id = incoming_follow.follow_id
    return status


async def resolve_status(
    session: AsyncSession,
    active: Persona,
    target: Endpoint,
) -> RelationshipStatus:
    """Status of ``target`` as seen by ``active``.  NotFound if the target doesn't exist."""
    if target == active.endpoint:
        return RelationshipStatus.none(target)
    target_principal = await accounts.principal_of(session, target)
    if await service.is_blocked_between(session, active.owner_principal_id, target_principal):
        return resolve_from_records(active, target, blocked=True)

    connection = await service.find_live_connection(session, active.endpoint, target)
    outgoing = (
        await service.find_follow(session, active.endpoint, target.id)
        if target.kind is AccountType.USER
        else None
    )
    incoming = (
        await service.find_follow(session, target, active.id)
        if active.kind is AccountType.USER
        else None
    )
    return resolve_from_records(
        active,
        target,
        blocked=False,
        connection=connection,
        outgoing_follow=outgoing,
        incoming_follow=incoming,
    )


async def resolve_statuses(
    session: AsyncSession,
    active: Persona,
    targets: list[Endpoint],
) -> list[RelationshipStatus]:
    """Batch variant; a missing target degrades to an all-"none" status."""
    statuses: list[RelationshipStatus] = []
    for target in targets:
        try:
            statuses.append(await resolve_status(session, active, target))
        except NotFound:
            logger.debug("Status target %s not found; reporting none", target.key)
            statuses.append(RelationshipStatus.none(target))
    return statuses
