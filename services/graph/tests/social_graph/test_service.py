import uuid

import pytest
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.constants import AccountType, FollowPolicy
from app.accounts.persona import Endpoint, Persona, Principal
from app.exceptions import (
    AlreadyConnected,
    AlreadyExists,
    AlreadyPending,
    Blocked,
    CannotTargetSelf,
    ConnectionNotFound,
    ConnectionRequestAlreadyReceived,
    ConnectionRequestAlreadySent,
    FollowLimitExceeded,
    FollowRequestAlreadySent,
    InvalidState,
    NotAuthorized,
    NotFound,
)
from app.social_graph import service as svc
from app.social_graph.constants import ConnectionStatus, FollowStatus, RequestDirection
from app.social_graph.models import Block, Connection, Follow


def _me(user) -> Persona:
    return Persona.personal(Principal(id=user.id))


def _as_business(business) -> Persona:
    return Persona.business(business.id, business.owner_id)


def _user_ep(user) -> Endpoint:
    return Endpoint(kind=AccountType.USER, id=user.id)


def _business_ep(business) -> Endpoint:
    return Endpoint(kind=AccountType.BUSINESS, id=business.id)


async def _count(session: AsyncSession, model) -> int:
    return (await session.execute(sa.select(sa.func.count()).select_from(model))).scalar_one()


# ── Connections ────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_send_connection_request_creates_pending(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    assert conn.status is ConnectionStatus.PENDING
    assert conn.requester == _user_ep(alice)
    assert conn.recipient == _user_ep(bob)


@pytest.mark.asyncio
async def test_connection_to_self_is_rejected(db_session, make_user) -> None:
    alice = await make_user("Alice")
    with pytest.raises(CannotTargetSelf):
        await svc.send_connection_request(db_session, _me(alice), _user_ep(alice))


@pytest.mark.asyncio
async def test_connection_to_missing_account_is_not_found(db_session, make_user) -> None:
    alice = await make_user("Alice")
    with pytest.raises(NotFound):
        await svc.send_connection_request(
            db_session, _me(alice), Endpoint(kind=AccountType.BUSINESS, id=uuid.uuid4())
        )


@pytest.mark.asyncio
async def test_duplicate_request_is_already_pending_in_either_direction(
    db_session, make_user
) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    with pytest.raises(ConnectionRequestAlreadySent):
        await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    with pytest.raises(ConnectionRequestAlreadyReceived) as exc_info:
        await svc.send_connection_request(db_session, _me(bob), _user_ep(alice))
    assert isinstance(exc_info.value, AlreadyPending)
    assert await _count(db_session, Connection) == 1


@pytest.mark.asyncio
async def test_request_after_accept_is_already_connected(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    await svc.accept_connection_request(db_session, _me(bob), conn.connection_id)
    with pytest.raises(AlreadyConnected):
        await svc.send_connection_request(db_session, _me(bob), _user_ep(alice))


@pytest.mark.asyncio
async def test_only_recipient_can_accept_or_reject(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    with pytest.raises(NotAuthorized):
        await svc.accept_connection_request(db_session, _me(alice), conn.connection_id)
    with pytest.raises(NotAuthorized):
        await svc.reject_connection_request(db_session, _me(alice), conn.connection_id)
    assert conn.status is ConnectionStatus.PENDING


@pytest.mark.asyncio
async def test_accept_non_pending_is_invalid_state(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    await svc.accept_connection_request(db_session, _me(bob), conn.connection_id)
    with pytest.raises(InvalidState):
        await svc.accept_connection_request(db_session, _me(bob), conn.connection_id)
    with pytest.raises(InvalidState):
        await svc.reject_connection_request(db_session, _me(bob), conn.connection_id)


@pytest.mark.asyncio
async def test_reject_keeps_tombstone_and_allows_new_request(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    first = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    rejected = await svc.reject_connection_request(db_session, _me(bob), first.connection_id)
    assert rejected.status is ConnectionStatus.REJECTED

    again = await svc.reject_connection_request(db_session, _me(bob), first.connection_id)
    assert again.connection_id == first.connection_id

    second = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    assert second.connection_id != first.connection_id
    assert second.status is ConnectionStatus.PENDING
    assert await _count(db_session, Connection) == 2


@pytest.mark.asyncio
async def test_remove_connection_is_idempotent(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    await svc.accept_connection_request(db_session, _me(bob), conn.connection_id)

    removed = await svc.remove_connection(db_session, _me(alice), conn.connection_id)
    assert removed is not None
    assert await svc.remove_connection(db_session, _me(alice), conn.connection_id) is None
    assert await svc.remove_connection(db_session, _me(bob), conn.connection_id) is None

    fresh = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    assert fresh.status is ConnectionStatus.PENDING


@pytest.mark.asyncio
async def test_requester_can_cancel_pending_request(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    await svc.remove_connection(db_session, _me(alice), conn.connection_id)
    assert await svc.find_live_connection(db_session, _user_ep(alice), _user_ep(bob)) is None


@pytest.mark.asyncio
async def test_stranger_cannot_remove_connection(db_session, make_user) -> None:
    alice, bob, carol = await make_user("Alice"), await make_user("Bob"), await make_user("Carol")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    with pytest.raises(NotAuthorized):
        await svc.remove_connection(db_session, _me(carol), conn.connection_id)


@pytest.mark.asyncio
async def test_accept_after_remove_is_not_found(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    await svc.remove_connection(db_session, _me(alice), conn.connection_id)
    with pytest.raises(ConnectionNotFound):
        await svc.accept_connection_request(db_session, _me(bob), conn.connection_id)


@pytest.mark.asyncio
async def test_personal_and_business_connections_are_separate_pairs(
    db_session, make_user, make_business
) -> None:
    owner, bob = await make_user("Owner"), await make_user("Bob")
    acme = await make_business(owner, "Acme")
    await svc.send_connection_request(db_session, _me(owner), _user_ep(bob))
    conn = await svc.send_connection_request(db_session, _as_business(acme), _user_ep(bob))
    assert conn.requester == _business_ep(acme)
    assert await _count(db_session, Connection) == 2


@pytest.mark.asyncio
async def test_business_can_be_connection_recipient(db_session, make_user, make_business) -> None:
    owner, bob = await make_user("Owner"), await make_user("Bob")
    acme = await make_business(owner, "Acme")
    conn = await svc.send_connection_request(db_session, _me(bob), _business_ep(acme))
    with pytest.raises(NotAuthorized):
        # The owner's personal persona is not the recipient.
        await svc.accept_connection_request(db_session, _me(owner), conn.connection_id)
    accepted = await svc.accept_connection_request(
        db_session, _as_business(acme), conn.connection_id
    )
    assert accepted.status is ConnectionStatus.ACCEPTED


# ── Follows ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_follow_open_account_is_accepted(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    edge = await svc.follow_user(db_session, _me(alice), bob.id)
    assert edge.status is FollowStatus.ACCEPTED
    with pytest.raises(AlreadyExists):
        await svc.follow_user(db_session, _me(alice), bob.id)


@pytest.mark.asyncio
async def test_follow_approval_account_is_pending(db_session, make_user) -> None:
    alice = await make_user("Alice")
    bob = await make_user("Bob", FollowPolicy.APPROVAL)
    edge = await svc.follow_user(db_session, _me(alice), bob.id)
    assert edge.status is FollowStatus.PENDING
    with pytest.raises(FollowRequestAlreadySent):
        await svc.follow_user(db_session, _me(alice), bob.id)

    accepted = await svc.accept_follow_request(db_session, _me(bob), edge.follow_id)
    assert accepted.status is FollowStatus.ACCEPTED
    with pytest.raises(InvalidState):
        await svc.accept_follow_request(db_session, _me(bob), edge.follow_id)


@pytest.mark.asyncio
async def test_follow_self_and_missing_user(db_session, make_user) -> None:
    alice = await make_user("Alice")
    with pytest.raises(CannotTargetSelf):
        await svc.follow_user(db_session, _me(alice), alice.id)
    with pytest.raises(NotFound):
        await svc.follow_user(db_session, _me(alice), uuid.uuid4())


@pytest.mark.asyncio
async def test_business_persona_can_follow_its_owner(db_session, make_user, make_business) -> None:
    owner = await make_user("Owner")
    acme = await make_business(owner, "Acme")
    edge = await svc.follow_user(db_session, _as_business(acme), owner.id)
    assert edge.follower == _business_ep(acme)


@pytest.mark.asyncio
async def test_follow_limit(db_session, make_user) -> None:
    alice, bob, carol = await make_user("Alice"), await make_user("Bob"), await make_user("Carol")
    await svc.follow_user(db_session, _me(alice), bob.id, limit=1)
    with pytest.raises(FollowLimitExceeded):
        await svc.follow_user(db_session, _me(alice), carol.id, limit=1)


@pytest.mark.asyncio
async def test_reject_follow_then_follow_creates_fresh_request(db_session, make_user) -> None:
    u1 = await make_user("U1")
    u2 = await make_user("U2", FollowPolicy.APPROVAL)
    first = await svc.follow_user(db_session, _me(u1), u2.id)
    first_id = first.follow_id

    with pytest.raises(NotAuthorized):
        await svc.reject_follow_request(db_session, _me(u1), first_id)
    await svc.reject_follow_request(db_session, _me(u2), first_id)
    assert await svc.reject_follow_request(db_session, _me(u2), first_id) is None

    second = await svc.follow_user(db_session, _me(u1), u2.id)
    assert second.status is FollowStatus.PENDING
    assert second.follow_id != first_id
    assert await _count(db_session, Follow) == 1


@pytest.mark.asyncio
async def test_unfollow_is_idempotent(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    await svc.follow_user(db_session, _me(alice), bob.id)
    assert await svc.unfollow_user(db_session, _me(alice), bob.id) is True
    assert await svc.unfollow_user(db_session, _me(alice), bob.id) is False


# ── Blocks ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_block_removes_connection_and_follows_both_ways(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    await svc.accept_connection_request(db_session, _me(bob), conn.connection_id)
    await svc.follow_user(db_session, _me(alice), bob.id)
    await svc.follow_user(db_session, _me(bob), alice.id)

    result = await svc.block_principal(db_session, _me(alice), bob.id)
    assert result.created is True
    assert result.removed_connections == 1
    assert result.removed_follows == 2
    assert await _count(db_session, Connection) == 0
    assert await _count(db_session, Follow) == 0
    assert await svc.is_blocked_between(db_session, bob.id, alice.id)


@pytest.mark.asyncio
async def test_block_covers_every_persona_of_both_principals(
    db_session, make_user, make_business
) -> None:
    owner, bob = await make_user("Owner"), await make_user("Bob")
    acme = await make_business(owner, "Acme")
    await svc.send_connection_request(db_session, _as_business(acme), _user_ep(bob))
    await svc.follow_user(db_session, _as_business(acme), bob.id)

    await svc.block_principal(db_session, _me(bob), owner.id)
    assert await _count(db_session, Connection) == 0
    assert await _count(db_session, Follow) == 0
    with pytest.raises(Blocked):
        await svc.send_connection_request(db_session, _as_business(acme), _user_ep(bob))
    with pytest.raises(Blocked):
        await svc.follow_user(db_session, _me(owner), bob.id)


@pytest.mark.asyncio
async def test_block_twice_leaves_one_record(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    first = await svc.block_principal(db_session, _me(alice), bob.id)
    second = await svc.block_principal(db_session, _me(alice), bob.id)
    assert second.created is False
    assert second.block.block_id == first.block.block_id
    assert await _count(db_session, Block) == 1


@pytest.mark.asyncio
async def test_block_self_is_rejected(db_session, make_user) -> None:
    alice = await make_user("Alice")
    with pytest.raises(CannotTargetSelf):
        await svc.block_principal(db_session, _me(alice), alice.id)


@pytest.mark.asyncio
async def test_accept_after_block_is_blocked(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    conn = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    # Block written after the request, bypassing block_principal's cleanup.
    db_session.add(
        Block(
            blocker_kind=AccountType.USER,
            blocker_id=bob.id,
            blocker_principal_id=bob.id,
            blocked_id=alice.id,
        )
    )
    await db_session.flush()
    with pytest.raises(Blocked):
        await svc.accept_connection_request(db_session, _me(bob), conn.connection_id)


@pytest.mark.asyncio
async def test_unblock_is_idempotent_and_allows_requests(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    await svc.block_principal(db_session, _me(alice), bob.id)
    assert await svc.unblock_principal(db_session, _me(alice), bob.id) is True
    assert await svc.unblock_principal(db_session, _me(alice), bob.id) is False
    conn = await svc.send_connection_request(db_session, _me(bob), _user_ep(alice))
    assert conn.status is ConnectionStatus.PENDING


# ── Listings ───────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_listings(db_session, make_user) -> None:
    alice = await make_user("Alice", FollowPolicy.APPROVAL)
    bob, carol = await make_user("Bob"), await make_user("Carol")

    to_bob = await svc.send_connection_request(db_session, _me(alice), _user_ep(bob))
    await svc.accept_connection_request(db_session, _me(bob), to_bob.connection_id)
    await svc.send_connection_request(db_session, _me(carol), _user_ep(alice))
    await svc.follow_user(db_session, _me(alice), bob.id)
    await svc.follow_user(db_session, _me(bob), alice.id)
    from_bob = await svc.find_follow(db_session, _user_ep(bob), alice.id)
    await svc.accept_follow_request(db_session, _me(alice), from_bob.follow_id)
    request = await svc.follow_user(db_session, _me(carol), alice.id)

    connections, total = await svc.list_connections(db_session, _me(alice), page=1, size=20)
    assert total == 1 and connections[0].connection_id == to_bob.connection_id

    incoming, _ = await svc.list_connection_requests(
        db_session, _me(alice), RequestDirection.INCOMING, page=1, size=20
    )
    outgoing, _ = await svc.list_connection_requests(
        db_session, _me(alice), RequestDirection.OUTGOING, page=1, size=20
    )
    assert [c.requester for c in incoming] == [_user_ep(carol)]
    assert outgoing == []

    following, _ = await svc.list_following(db_session, _me(alice), page=1, size=20)
    followers, _ = await svc.list_followers(db_session, _me(alice), page=1, size=20)
    requests, _ = await svc.list_follow_requests(db_session, _me(alice), page=1, size=20)
    assert [f.followee_id for f in following] == [bob.id]
    assert [f.follower for f in followers] == [_user_ep(bob)]
    assert [f.follow_id for f in requests] == [request.follow_id]
    assert await svc.count_followers(db_session, _me(alice)) == 1
    assert await svc.count_following(db_session, _me(alice)) == 1


@pytest.mark.asyncio
async def test_list_blocked(db_session, make_user) -> None:
    alice, bob = await make_user("Alice"), await make_user("Bob")
    await svc.block_principal(db_session, _me(alice), bob.id)
    rows, total = await svc.list_blocked(db_session, _me(alice), page=1, size=20)
    assert total == 1
    block, user = rows[0]
    assert user.id == bob.id
    assert block.blocker == _user_ep(alice)
