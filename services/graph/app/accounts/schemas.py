"""
Accounts domain — Pydantic V2 request/response schemas.
"""
from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from app.accounts.constants import AccountType, FollowPolicy


class _Base(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)


class BusinessOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    owner_id: uuid.UUID
    name: str
    created_at: datetime


class PersonaOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: AccountType
    id: uuid.UUID
    owner_principal_id: uuid.UUID


class MeResponse(BaseModel):
    id: uuid.UUID
    display_name: str
    follow_policy: FollowPolicy
    businesses: list[BusinessOut]
    active_persona: PersonaOut
    # Counts for the ACTIVE persona, not the principal.
    followers_count: int
    following_count: int


class SettingsUpdateRequest(_Base):
    follow_policy: FollowPolicy


class BusinessCreateRequest(_Base):
    name: str = Field(min_length=1, max_length=150)


class BusinessUpdateRequest(_Base):
    name: str = Field(min_length=1, max_length=150)
