"""
Permissions domain — decision type, resource-authorship metadata and the
evaluate endpoint's request/response schemas.

Resource metadata is read-only here: posts, comments and profiles live in
other services, which pass the authorship fields they hold.
"""
from __future__ import annotations

import enum
import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.accounts.constants import AccountType
from app.accounts.persona import Endpoint


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> Decision:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> Decision:
        return cls(allowed=False, reason=reason)


# ── Resource metadata ─────────────────────────────────────────────────────────

class _Meta(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class PostMeta(_Meta):
    id: uuid.UUID | None = None
    # Persona id of the author.  Legacy rows may lack it → deny by default.
    author_account_id: uuid.UUID | None = None
    author_account_type: AccountType | None = None
    author_name: str | None = None
    # Legacy fallback fields; never grant access on their own.
    author_user_id: uuid.UUID | None = None
    owner_id: uuid.UUID | None = None


class CommentMeta(PostMeta):
    # Owner of the page the parent post lives on (moderation override).
    parent_page_owner: Endpoint | None = None


class ProfileMeta(_Meta):
    kind: AccountType
    id: uuid.UUID
    # Registered owner; required for business profiles.
    owner_id: uuid.UUID | None = None
    name: str | None = None


class BusinessMeta(_Meta):
    id: uuid.UUID
    owner_id: uuid.UUID | None = None
    name: str | None = None


# ── Evaluate endpoint ─────────────────────────────────────────────────────────

class PermissionAction(str, enum.Enum):
    EDIT_POST = "edit_post"
    DELETE_POST = "delete_post"
    EDIT_COMMENT = "edit_comment"
    DELETE_COMMENT = "delete_comment"
    EDIT_PROFILE = "edit_profile"
    MANAGE_BUSINESS = "manage_business"
    DELETE_BUSINESS = "delete_business"


class EvaluateItem(BaseModel):
    model_config = ConfigDict(extra="forbid")

    action: PermissionAction
    resource: dict[str, Any]


class EvaluateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    checks: list[EvaluateItem] = Field(min_length=1, max_length=100)


class EvaluateResult(BaseModel):
    action: PermissionAction
    allowed: bool
    reason: str | None = None


class EvaluateResponse(BaseModel):
    results: list[EvaluateResult]
