"""
Social graph domain — pure business logic (zero FastAPI imports).

Every operation takes the ACTIVE persona of the caller; relationships belong
to personas, not to principals, so a personal connection is invisible while
acting as a business and vice versa.  Blocks are the exception: they are
resolved principal-to-principal and override everything.

State rules:
  connection  request  → pending            (recipient must approve)
              accept   pending → accepted   (recipient only)
              reject   pending → rejected   (recipient only, kept as tombstone)
              remove   any → deleted        (either endpoint; idempotent)
  follow      follow   → accepted | pending (followee's follow policy)
              accept   pending → accepted   (followee only)
              reject   pending → deleted    (followee only; idempotent)
              unfollow any → deleted        (follower; idempotent)
  block       block    → creates block, deletes every connection and follow
                         between the two principals' endpoints (one transaction)
              unblock  → deleted (idempotent)
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts import service as accounts
from app.accounts.constants import AccountType, FollowPolicy
from app.accounts.models import Business, User
from app.accounts.persona import Endpoint, Persona
from app.exceptions import (
    AlreadyConnected,
    AlreadyFollowing,
    Blocked,
    CannotTargetSelf,
    ConnectionNotFound,
    ConnectionRequestAlreadyReceived,
    ConnectionRequestAlreadySent,
    FollowLimitExceeded,
    FollowRequestAlreadySent,
    FollowRequestNotFound,
    InvalidState,
    NotAuthorized,
)
from app.social_graph.constants import (
    FOLLOW_LIMIT,
    ConnectionStatus,
    FollowStatus,
    RequestDirection,
)
from app.social_graph.models import Block, Connection, Follow, pair_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockResult:
    block: Block
    created: bool
    removed_connections: int = 0
    removed_follows: int = 0


# ── Internal helpers ───────────────────────────────────────────────────────────

def _is(kind_col, id_col, endpoint: Endpoint):
    return sa.and_(kind_col == endpoint.kind, id_col == endpoint.id)


async def find_live_connection(
    session: AsyncSession, a: Endpoint, b: Endpoint
) -> Connection | None:
    """The non-rejected connection for the unordered pair (a, b), if any."""
    result = await session.execute(
        sa.select(Connection).where(
            Connection.pair_key == pair_key(a, b),
            Connection.status != ConnectionStatus.REJECTED,
        )
    )
    return result.scalar_one_or_none()


async def _get_connection(session: AsyncSession, connection_id: uuid.UUID) -> Connection | None:
    result = await session.execute(
        sa.select(Connection).where(Connection.connection_id == connection_id)
    )
    return result.scalar_one_or_none()


async def _get_follow(session: AsyncSession, follow_id: uuid.UUID) -> Follow | None:
    result = await session.execute(sa.select(Follow).where(Follow.follow_id == follow_id))
    return result.scalar_one_or_none()


async def find_follow(
    session: AsyncSession, follower: Endpoint, followee_id: uuid.UUID
) -> Follow | None:
    result = await session.execute(
        sa.select(Follow).where(
            _is(Follow.follower_kind, Follow.follower_id, follower),
            Follow.followee_id == followee_id,
        )
    )
    return result.scalar_one_or_none()


async def _count_following(session: AsyncSession, follower: Endpoint) -> int:
    result = await session.execute(
        sa.select(sa.func.count())
        .select_from(Follow)
        .where(_is(Follow.follower_kind, Follow.follower_id, follower))
    )
    return result.scalar_one()


async def is_blocked_between(
    session: AsyncSession, principal_a: uuid.UUID, principal_b: uuid.UUID
) -> bool:
    """True if either principal (through any of its personas) blocked the other."""
    result = await session.execute(
        sa.select(
            sa.exists().where(
                sa.or_(
                    sa.and_(
                        Block.blocker_principal_id == principal_a,
                        Block.blocked_id == principal_b,
                    ),
                    sa.and_(
                        Block.blocker_principal_id == principal_b,
                        Block.blocked_id == principal_a,
                    ),
                )
            )
        )
    )
    return result.scalar_one()


async def _assert_not_blocked(
    session: AsyncSession, active: Persona, target: Endpoint
) -> None:
    target_principal = await accounts.principal_of(session, target)
    if await is_blocked_between(session, active.owner_principal_id, target_principal):
        raise Blocked()


def _raise_for_live(connection: Connection, requester: Endpoint) -> None:
    if connection.status is ConnectionStatus.ACCEPTED:
        raise AlreadyConnected()
    if connection.requester == requester:
        raise ConnectionRequestAlreadySent()
    raise ConnectionRequestAlreadyReceived()


# ── Connections ────────────────────────────────────────────────────────────────

async def send_connection_request(
    session: AsyncSession,
    requester: Persona,
    recipient: Endpoint,
) -> Connection:
    me = requester.endpoint
    if me == recipient:
        raise CannotTargetSelf("You cannot connect with yourself.")
    await _assert_not_blocked(session, requester, recipient)

    existing = await find_live_connection(session, me, recipient)
    if existing is not None:
        _raise_for_live(existing, me)

    connection = Connection(
        requester_kind=me.kind,
        requester_id=me.id,
        recipient_kind=recipient.kind,
        recipient_id=recipient.id,
        pair_key=pair_key(me, recipient),
        status=ConnectionStatus.PENDING,
    )
    try:
        async with session.begin_nested():
            session.add(connection)
    except IntegrityError:
        # Lost a race with a concurrent request for the same pair.
        winner = await find_live_connection(session, me, recipient)
        if winner is None:
            raise
        _raise_for_live(winner, me)
    return connection


async def accept_connection_request(
    session: AsyncSession,
    actor: Persona,
    connection_id: uuid.UUID,
) -> Connection:
    connection = await _get_connection(session, connection_id)
    if connection is None:
        raise ConnectionNotFound()
    if connection.recipient != actor.endpoint:
        raise NotAuthorized("You can only accept connection requests sent to you.")
    if connection.status is not ConnectionStatus.PENDING:
        raise InvalidState(f"This connection request is already {connection.status.value}.")
    await _assert_not_blocked(session, actor, connection.requester)
    connection.status = ConnectionStatus.ACCEPTED
    await session.flush()
    return connection


async def reject_connection_request(
    session: AsyncSession,
    actor: Persona,
    connection_id: uuid.UUID,
) -> Connection:
    connection = await _get_connection(session, connection_id)
    if connection is None:
        raise ConnectionNotFound()
    if connection.recipient != actor.endpoint:
        raise NotAuthorized("You can only reject connection requests sent to you.")
    if connection.status is ConnectionStatus.REJECTED:
        return connection
    if connection.status is not ConnectionStatus.PENDING:
        raise InvalidState("Cannot reject an accepted connection. Remove it instead.")
    connection.status = ConnectionStatus.REJECTED
    await session.flush()
    return connection


async def remove_connection(
    session: AsyncSession,
    actor: Persona,
    connection_id: uuid.UUID,
) -> Connection | None:
    """Delete a connection in any state.  Returns None if it was already gone.

    Used both to cancel an outgoing request and to sever an accepted connection.
    The returned (detached) row tells the caller which pair was affected.
    """
    connection = await _get_connection(session, connection_id)
    if connection is None:
        return None
    if actor.endpoint not in (connection.requester, connection.recipient):
        raise NotAuthorized("You can only remove your own connections.")
    await session.delete(connection)
    await session.flush()
    return connection


# ── Follows ────────────────────────────────────────────────────────────────────

async def follow_user(
    session: AsyncSession,
    follower: Persona,
    followee_id: uuid.UUID,
    *,
    limit: int = FOLLOW_LIMIT,
) -> Follow:
    me = follower.endpoint
    if me == Endpoint(kind=AccountType.USER, id=followee_id):
        raise CannotTargetSelf("You cannot follow yourself.")
    followee = await accounts.get_user(session, followee_id)
    await _assert_not_blocked(session, follower, Endpoint(kind=AccountType.USER, id=followee.id))

    existing = await find_follow(session, me, followee_id)
    if existing is not None:
        if existing.status is FollowStatus.ACCEPTED:
            raise AlreadyFollowing()
        raise FollowRequestAlreadySent()
    if await _count_following(session, me) >= limit:
        raise FollowLimitExceeded(limit)

    status = (
        FollowStatus.ACCEPTED
        if followee.follow_policy is FollowPolicy.ANYONE
        else FollowStatus.PENDING
    )
    edge = Follow(follower_kind=me.kind, follower_id=me.id, followee_id=followee_id, status=status)
    try:
        async with session.begin_nested():
            session.add(edge)
    except IntegrityError:
        winner = await find_follow(session, me, followee_id)
        if winner is None:
            raise
        if winner.status is FollowStatus.ACCEPTED:
            raise AlreadyFollowing()
        raise FollowRequestAlreadySent()
    return edge


async def unfollow_user(
    session: AsyncSession,
    follower: Persona,
    followee_id: uuid.UUID,
) -> bool:
    """Remove the follow edge (or cancel the pending request).  False if none existed."""
    result = await session.execute(
        sa.delete(Follow).where(
            _is(Follow.follower_kind, Follow.follower_id, follower.endpoint),
            Follow.followee_id == followee_id,
        )
    )
    return result.rowcount > 0


async def accept_follow_request(
    session: AsyncSession,
    actor: Persona,
    follow_id: uuid.UUID,
) -> Follow:
    edge = await _get_follow(session, follow_id)
    if edge is None:
        raise FollowRequestNotFound()
    if edge.followee != actor.endpoint:
        raise NotAuthorized("You can only accept follow requests sent to you.")
    if edge.status is not FollowStatus.PENDING:
        raise InvalidState("Follow request already accepted.")
    await _assert_not_blocked(session, actor, edge.follower)
    edge.status = FollowStatus.ACCEPTED
    await session.flush()
    return edge


async def reject_follow_request(
    session: AsyncSession,
    actor: Persona,
    follow_id: uuid.UUID,
) -> Follow | None:
    """Delete a pending follow request.  Returns None if it was already gone."""
    edge = await _get_follow(session, follow_id)
    if edge is None:
        return None
    if edge.followee != actor.endpoint:
        raise NotAuthorized("You can only reject follow requests sent to you.")
    if edge.status is not FollowStatus.PENDING:
        raise InvalidState("Cannot reject an accepted follower.")
    await session.delete(edge)
    await session.flush()
    return edge


# ── Blocks ─────────────────────────────────────────────────────────────────────

async def _find_block(
    session: AsyncSession, blocker: Endpoint, blocked_id: uuid.UUID
) -> Block | None:
    result = await session.execute(
        sa.select(Block).where(
            _is(Block.blocker_kind, Block.blocker_id, blocker),
            Block.blocked_id == blocked_id,
        )
    )
    return result.scalar_one_or_none()


async def block_principal(
    session: AsyncSession,
    blocker: Persona,
    blocked_principal_id: uuid.UUID,
) -> BlockResult:
    """Block a principal and sever every connection/follow between the two sides.

    Re-blocking returns the existing block with created=False.
    """
    if blocker.owner_principal_id == blocked_principal_id:
        raise CannotTargetSelf("You cannot block yourself.")
    await accounts.get_user(session, blocked_principal_id)

    existing = await _find_block(session, blocker.endpoint, blocked_principal_id)
    if existing is not None:
        return BlockResult(block=existing, created=False)

    mine = await accounts.endpoints_of_principal(session, blocker.owner_principal_id)
    theirs = await accounts.endpoints_of_principal(session, blocked_principal_id)
    pairs = [pair_key(a, b) for a in mine for b in theirs]

    block = Block(
        blocker_kind=blocker.kind,
        blocker_id=blocker.id,
        blocker_principal_id=blocker.owner_principal_id,
        blocked_id=blocked_principal_id,
    )
    try:
        async with session.begin_nested():
            session.add(block)
            removed_connections = await session.execute(
                sa.delete(Connection).where(Connection.pair_key.in_(pairs))
            )
            removed_follows = await session.execute(
                sa.delete(Follow).where(
                    sa.or_(
                        sa.and_(
                            sa.or_(*[_is(Follow.follower_kind, Follow.follower_id, e) for e in mine]),
                            Follow.followee_id == blocked_principal_id,
                        ),
                        sa.and_(
                            sa.or_(*[_is(Follow.follower_kind, Follow.follower_id, e) for e in theirs]),
                            Follow.followee_id == blocker.owner_principal_id,
                        ),
                    )
                )
            )
    except IntegrityError:
        # A concurrent identical block won; its side effects already ran.
        winner = await _find_block(session, blocker.endpoint, blocked_principal_id)
        if winner is None:
            raise
        return BlockResult(block=winner, created=False)

    logger.info(
        "Block %s → %s removed %d connection(s) and %d follow(s)",
        blocker.endpoint.key,
        blocked_principal_id,
        removed_connections.rowcount,
        removed_follows.rowcount,
    )
    return BlockResult(
        block=block,
        created=True,
        removed_connections=removed_connections.rowcount,
        removed_follows=removed_follows.rowcount,
    )


async def unblock_principal(
    session: AsyncSession,
    blocker: Persona,
    blocked_principal_id: uuid.UUID,
) -> bool:
    """Remove the acting persona's block.  False if there was none."""
    result = await session.execute(
        sa.delete(Block).where(
            _is(Block.blocker_kind, Block.blocker_id, blocker.endpoint),
            Block.blocked_id == blocked_principal_id,
        )
    )
    return result.rowcount > 0


# ── Listings ───────────────────────────────────────────────────────────────────

async def _page(session: AsyncSession, stmt, count_stmt, page: int, size: int):
    total = (await session.execute(count_stmt)).scalar_one()
    rows = (await session.execute(stmt.limit(size).offset((page - 1) * size))).scalars().all()
    return list(rows), total


async def list_connections(
    session: AsyncSession,
    persona: Persona,
    *,
    page: int,
    size: int,
) -> tuple[list[Connection], int]:
    """Accepted connections of ``persona`` (either side), newest first."""
    me = persona.endpoint
    where = sa.and_(
        Connection.status == ConnectionStatus.ACCEPTED,
        sa.or_(
            _is(Connection.requester_kind, Connection.requester_id, me),
            _is(Connection.recipient_kind, Connection.recipient_id, me),
        ),
    )
    return await _page(
        session,
        sa.select(Connection).where(where).order_by(Connection.updated_at.desc()),
        sa.select(sa.func.count()).select_from(Connection).where(where),
        page,
        size,
    )


async def list_connection_requests(
    session: AsyncSession,
    persona: Persona,
    direction: RequestDirection,
    *,
    page: int,
    size: int,
) -> tuple[list[Connection], int]:
    me = persona.endpoint
    side = (
        _is(Connection.recipient_kind, Connection.recipient_id, me)
        if direction is RequestDirection.INCOMING
        else _is(Connection.requester_kind, Connection.requester_id, me)
    )
    where = sa.and_(Connection.status == ConnectionStatus.PENDING, side)
    return await _page(
        session,
        sa.select(Connection).where(where).order_by(Connection.created_at.desc()),
        sa.select(sa.func.count()).select_from(Connection).where(where),
        page,
        size,
    )


async def list_following(
    session: AsyncSession,
    persona: Persona,
    *,
    page: int,
    size: int,
) -> tuple[list[Follow], int]:
    """Users ``persona`` follows (accepted edges only)."""
    where = sa.and_(
        _is(Follow.follower_kind, Follow.follower_id, persona.endpoint),
        Follow.status == FollowStatus.ACCEPTED,
    )
    return await _page(
        session,
        sa.select(Follow).where(where).order_by(Follow.created_at.desc()),
        sa.select(sa.func.count()).select_from(Follow).where(where),
        page,
        size,
    )


async def _incoming_follows(
    session: AsyncSession,
    persona: Persona,
    status: FollowStatus,
    page: int,
    size: int,
) -> tuple[list[Follow], int]:
    # Businesses are never followees.
    if persona.kind is not AccountType.USER:
        return [], 0
    where = sa.and_(Follow.followee_id == persona.id, Follow.status == status)
    return await _page(
        session,
        sa.select(Follow).where(where).order_by(Follow.created_at.desc()),
        sa.select(sa.func.count()).select_from(Follow).where(where),
        page,
        size,
    )


async def list_followers(
    session: AsyncSession, persona: Persona, *, page: int, size: int
) -> tuple[list[Follow], int]:
    return await _incoming_follows(session, persona, FollowStatus.ACCEPTED, page, size)


async def list_follow_requests(
    session: AsyncSession, persona: Persona, *, page: int, size: int
) -> tuple[list[Follow], int]:
    """Pending follow requests awaiting ``persona``'s approval."""
    return await _incoming_follows(session, persona, FollowStatus.PENDING, page, size)


async def count_followers(session: AsyncSession, persona: Persona) -> int:
    if persona.kind is not AccountType.USER:
        return 0
    result = await session.execute(
        sa.select(sa.func.count())
        .select_from(Follow)
        .where(Follow.followee_id == persona.id, Follow.status == FollowStatus.ACCEPTED)
    )
    return result.scalar_one()


async def count_following(session: AsyncSession, persona: Persona) -> int:
    result = await session.execute(
        sa.select(sa.func.count())
        .select_from(Follow)
        .where(
            _is(Follow.follower_kind, Follow.follower_id, persona.endpoint),
            Follow.status == FollowStatus.ACCEPTED,
        )
    )
    return result.scalar_one()


async def list_blocked(
    session: AsyncSession,
    persona: Persona,
    *,
    page: int,
    size: int,
) -> tuple[list[tuple[Block, User]], int]:
    where = _is(Block.blocker_kind, Block.blocker_id, persona.endpoint)
    total = (
        await session.execute(sa.select(sa.func.count()).select_from(Block).where(where))
    ).scalar_one()
    rows = await session.execute(
        sa.select(Block, User)
        .join(User, User.id == Block.blocked_id)
        .where(where)
        .order_by(Block.created_at.desc())
        .limit(size)
        .offset((page - 1) * size)
    )
    return [(b, u) for b, u in rows.all()], total


async def display_names(
    session: AsyncSession, endpoints: list[Endpoint]
) -> dict[Endpoint, str]:
    """Batch lookup of display names for list responses."""
    user_ids = {e.id for e in endpoints if e.kind is AccountType.USER}
    business_ids = {e.id for e in endpoints if e.kind is AccountType.BUSINESS}
    names: dict[Endpoint, str] = {}
    if user_ids:
        result = await session.execute(
            sa.select(User.id, User.display_name).where(User.id.in_(user_ids))
        )
        for uid, name in result.all():
            names[Endpoint(kind=AccountType.USER, id=uid)] = name
    if business_ids:
        result = await session.execute(
            sa.select(Business.id, Business.name).where(Business.id.in_(business_ids))
        )
        for bid, name in result.all():
            names[Endpoint(kind=AccountType.BUSINESS, id=bid)] = name
    return names
