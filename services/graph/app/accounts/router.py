"""
Accounts domain — routes.

Routes (prefixed /api/v1):
  GET    /me                      Principal, owned businesses, active persona
  PATCH  /me/settings             Follow policy (personal persona only)
  POST   /businesses              Register a business owned by the caller
  PATCH  /businesses/{id}         Rename (that business persona must be active)
  DELETE /businesses/{id}         Delete, with every relationship naming it
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts import controller as ctrl
from app.accounts.dependencies import get_active_persona, get_principal
from app.accounts.persona import Persona, Principal
from app.accounts.schemas import (
    BusinessCreateRequest,
    BusinessOut,
    BusinessUpdateRequest,
    MeResponse,
    SettingsUpdateRequest,
)
from app.database import get_db

router = APIRouter(tags=["accounts"])


@router.get("/me", response_model=MeResponse, summary="Who am I, and as whom am I acting")
async def get_me(
    principal: Principal = Depends(get_principal),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> MeResponse:
    return await ctrl.get_me(session, principal, active)


@router.patch("/me/settings", response_model=MeResponse, summary="Update my follow policy")
async def update_settings(
    body: SettingsUpdateRequest,
    principal: Principal = Depends(get_principal),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> MeResponse:
    return await ctrl.update_settings(session, principal, active, body)


@router.post(
    "/businesses",
    response_model=BusinessOut,
    status_code=status.HTTP_201_CREATED,
    summary="Register a business",
)
async def create_business(
    body: BusinessCreateRequest,
    principal: Principal = Depends(get_principal),
    session: AsyncSession = Depends(get_db),
) -> BusinessOut:
    return await ctrl.create_business(session, principal, body)


@router.patch(
    "/businesses/{business_id}",
    response_model=BusinessOut,
    summary="Update a business",
    description="The business persona must be active.",
)
async def update_business(
    business_id: uuid.UUID,
    body: BusinessUpdateRequest,
    principal: Principal = Depends(get_principal),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> BusinessOut:
    return await ctrl.update_business(session, principal, active, business_id, body)


@router.delete(
    "/businesses/{business_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a business",
    description="Removes every connection, follow and block naming the business.",
)
async def delete_business(
    business_id: uuid.UUID,
    principal: Principal = Depends(get_principal),
    active: Persona = Depends(get_active_persona),
    session: AsyncSession = Depends(get_db),
) -> None:
    await ctrl.delete_business(session, principal, active, business_id)
