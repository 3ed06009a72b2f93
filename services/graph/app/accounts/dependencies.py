"""
Accounts domain — FastAPI dependencies resolving who is calling and as whom.

get_principal        bearer JWT → Principal (owned businesses re-read from DB)
get_active_persona   X-Active-Account-Type / X-Active-Account-Id → Persona,
                     ownership re-validated on every request
*_optional           same, but None for anonymous callers
"""
from __future__ import annotations

import uuid

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.accounts import service as svc
from app.accounts.constants import (
    ACTIVE_ACCOUNT_ID_HEADER,
    ACTIVE_ACCOUNT_TYPE_HEADER,
    AccountType,
)
from app.accounts.persona import Persona, Principal
from app.database import get_db
from shared.auth.dependencies import get_current_user_optional, get_current_user_required
from shared.models.user import CurrentUser


async def get_principal(
    current_user: CurrentUser = Depends(get_current_user_required),
    session: AsyncSession = Depends(get_db),
) -> Principal:
    return await svc.load_principal(session, current_user.id)


async def get_active_persona(
    principal: Principal = Depends(get_principal),
    account_type: AccountType | None = Header(None, alias=ACTIVE_ACCOUNT_TYPE_HEADER),
    account_id: uuid.UUID | None = Header(None, alias=ACTIVE_ACCOUNT_ID_HEADER),
) -> Persona:
    return svc.resolve_active_persona(principal, account_type, account_id)


async def get_principal_optional(
    current_user: CurrentUser | None = Depends(get_current_user_optional),
    session: AsyncSession = Depends(get_db),
) -> Principal | None:
    if current_user is None:
        return None
    return await svc.load_principal(session, current_user.id)


async def get_active_persona_optional(
    principal: Principal | None = Depends(get_principal_optional),
    account_type: AccountType | None = Header(None, alias=ACTIVE_ACCOUNT_TYPE_HEADER),
    account_id: uuid.UUID | None = Header(None, alias=ACTIVE_ACCOUNT_ID_HEADER),
) -> Persona | None:
    if principal is None:
        return None
    return svc.resolve_active_persona(principal, account_type, account_id)
