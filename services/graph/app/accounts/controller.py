"""
Accounts domain — request orchestration.
"""
from __future__ import annotations

import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts import service as svc
from app.accounts.persona import Persona, Principal
from app.accounts.schemas import (
    BusinessCreateRequest,
    BusinessOut,
    BusinessUpdateRequest,
    MeResponse,
    PersonaOut,
    SettingsUpdateRequest,
)
from app.social_graph import service as graph


async def get_me(session: AsyncSession, principal: Principal, active: Persona) -> MeResponse:
    user = await svc.get_user(session, principal.id)
    businesses = await svc.list_businesses(session, principal.id)
    return MeResponse(
        id=user.id,
        display_name=user.display_name,
        follow_policy=user.follow_policy,
        businesses=[BusinessOut.model_validate(b) for b in businesses],
        active_persona=PersonaOut.model_validate(active),
        followers_count=await graph.count_followers(session, active),
        following_count=await graph.count_following(session, active),
    )


async def update_settings(
    session: AsyncSession,
    principal: Principal,
    active: Persona,
    body: SettingsUpdateRequest,
) -> MeResponse:
    await svc.update_follow_policy(session, principal, active, body.follow_policy)
    return await get_me(session, principal, active)


async def create_business(
    session: AsyncSession, principal: Principal, body: BusinessCreateRequest
) -> BusinessOut:
    business = await svc.create_business(session, principal, body.name)
    return BusinessOut.model_validate(business)


async def update_business(
    session: AsyncSession,
    principal: Principal,
    active: Persona,
    business_id: uuid.UUID,
    body: BusinessUpdateRequest,
) -> BusinessOut:
    business = await svc.update_business(session, principal, active, business_id, name=body.name)
    return BusinessOut.model_validate(business)


async def delete_business(
    session: AsyncSession,
    principal: Principal,
    active: Persona,
    business_id: uuid.UUID,
) -> None:
    await svc.delete_business(session, principal, active, business_id)
