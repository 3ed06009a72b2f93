"""
Accounts domain — pure business logic (zero FastAPI imports).

Owns users/businesses and the server-side half of the persona model:
  - load_principal rebuilds the Principal (with owned businesses) per request
  - resolve_active_persona re-validates the X-Active-Account-* claim
  - mutations on profiles/businesses are gated by the permission engine
"""
from __future__ import annotations

import logging
import uuid

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts.constants import AccountType, FollowPolicy
from app.accounts.models import Business, User
from app.accounts.persona import Endpoint, Persona, Principal, persona_belongs_to
from app.exceptions import (
    BusinessNotFound,
    NotAuthenticated,
    NotAuthorized,
    PersonaNotOwned,
    UserNotFound,
)
from app.permissions import engine
from app.permissions.schemas import BusinessMeta, Decision, ProfileMeta
from app.social_graph.models import Block, Connection, Follow

logger = logging.getLogger(__name__)


def _require(decision: Decision) -> None:
    if not decision.allowed:
        raise NotAuthorized(decision.reason)


# ── Users / businesses ────────────────────────────────────────────────────────

async def create_user(
    session: AsyncSession,
    display_name: str,
    *,
    user_id: uuid.UUID | None = None,
    follow_policy: FollowPolicy = FollowPolicy.ANYONE,
) -> User:
    user = User(id=user_id or uuid.uuid4(), display_name=display_name, follow_policy=follow_policy)
    session.add(user)
    await session.flush()
    return user


async def get_user(session: AsyncSession, user_id: uuid.UUID) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise UserNotFound()
    return user


async def get_business(session: AsyncSession, business_id: uuid.UUID) -> Business:
    business = await session.get(Business, business_id)
    if business is None:
        raise BusinessNotFound()
    return business


async def list_businesses(session: AsyncSession, owner_id: uuid.UUID) -> list[Business]:
    result = await session.execute(
        sa.select(Business).where(Business.owner_id == owner_id).order_by(Business.created_at)
    )
    return list(result.scalars().all())


async def create_business(
    session: AsyncSession,
    principal: Principal,
    name: str,
) -> Business:
    """Register a business owned by ``principal`` (any active persona may do this)."""
    await get_user(session, principal.id)
    business = Business(owner_id=principal.id, name=name)
    session.add(business)
    await session.flush()
    return business


async def update_business(
    session: AsyncSession,
    principal: Principal,
    active: Persona,
    business_id: uuid.UUID,
    *,
    name: str,
) -> Business:
    business = await get_business(session, business_id)
    _require(
        engine.can_manage_business(
            principal,
            active,
            BusinessMeta(id=business.id, owner_id=business.owner_id, name=business.name),
        )
    )
    business.name = name
    await session.flush()
    return business


async def delete_business(
    session: AsyncSession,
    principal: Principal,
    active: Persona,
    business_id: uuid.UUID,
) -> bool:
    """Delete a business and every relationship row naming it.

    Returns False when the business was already gone (idempotent retry).
    """
    business = await session.get(Business, business_id)
    if business is None:
        return False
    _require(
        engine.can_delete_business(
            principal,
            active,
            BusinessMeta(id=business.id, owner_id=business.owner_id, name=business.name),
        )
    )
    removed_connections = await session.execute(
        sa.delete(Connection).where(
            sa.or_(
                sa.and_(
                    Connection.requester_kind == AccountType.BUSINESS,
                    Connection.requester_id == business_id,
                ),
                sa.and_(
                    Connection.recipient_kind == AccountType.BUSINESS,
                    Connection.recipient_id == business_id,
                ),
            )
        )
    )
    removed_follows = await session.execute(
        sa.delete(Follow).where(
            Follow.follower_kind == AccountType.BUSINESS, Follow.follower_id == business_id
        )
    )
    await session.execute(
        sa.delete(Block).where(
            Block.blocker_kind == AccountType.BUSINESS, Block.blocker_id == business_id
        )
    )
    await session.execute(sa.delete(Business).where(Business.id == business_id))
    logger.info(
        "Deleted business %s (%d connection(s), %d follow(s) removed)",
        business_id,
        removed_connections.rowcount,
        removed_follows.rowcount,
    )
    return True


async def update_follow_policy(
    session: AsyncSession,
    principal: Principal,
    active: Persona,
    policy: FollowPolicy,
) -> User:
    user = await get_user(session, principal.id)
    _require(
        engine.can_edit_profile(
            principal, active, ProfileMeta(kind=AccountType.USER, id=user.id)
        )
    )
    user.follow_policy = policy
    await session.flush()
    return user


# ── Principal / persona ───────────────────────────────────────────────────────

async def load_principal(session: AsyncSession, principal_id: uuid.UUID) -> Principal:
    """Rebuild the Principal from the database (owned businesses are authoritative here)."""
    if await session.get(User, principal_id) is None:
        raise NotAuthenticated("Your account no longer exists. Please log in again.")
    result = await session.execute(
        sa.select(Business.id).where(Business.owner_id == principal_id)
    )
    return Principal(id=principal_id, owned_business_ids=frozenset(result.scalars().all()))


def resolve_active_persona(
    principal: Principal,
    kind: AccountType | None,
    account_id: uuid.UUID | None,
) -> Persona:
    """Turn the active-persona claim of a request into a validated Persona."""
    if kind is None or kind is AccountType.USER:
        if account_id is not None and account_id != principal.id:
            raise NotAuthorized("You can only act as your own personal account.")
        return Persona.personal(principal)
    if account_id is None:
        raise PersonaNotOwned("A business id is required when acting as a business.")
    persona = Persona.business(account_id, principal.id)
    if not persona_belongs_to(persona, principal):
        raise PersonaNotOwned()
    return persona


async def principal_of(session: AsyncSession, endpoint: Endpoint) -> uuid.UUID:
    """Return the principal that owns ``endpoint``.  NotFound if it doesn't exist."""
    if endpoint.kind is AccountType.USER:
        return (await get_user(session, endpoint.id)).id
    result = await session.execute(
        sa.select(Business.owner_id).where(Business.id == endpoint.id)
    )
    owner_id = result.scalar_one_or_none()
    if owner_id is None:
        raise BusinessNotFound()
    return owner_id


async def endpoints_of_principal(
    session: AsyncSession, principal_id: uuid.UUID
) -> list[Endpoint]:
    """The principal's personal endpoint followed by every business it owns."""
    result = await session.execute(
        sa.select(Business.id).where(Business.owner_id == principal_id)
    )
    return [Endpoint(kind=AccountType.USER, id=principal_id)] + [
        Endpoint(kind=AccountType.BUSINESS, id=bid) for bid in result.scalars().all()
    ]

