"""
Permissions domain — pure authorization predicates.

Every predicate is a total function of (principal, active persona, resource)
returning a Decision.  A denial is a normal outcome, never an exception, and
a logged-out caller (None principal or persona) always gets a deny with a
readable reason.

Rules:
  posts / comments  allowed iff the ACTIVE persona authored them (strict
                    persona-id match; owning the author is not enough)
  comment delete    additionally allowed for the owner of the parent post's page
  profiles          personal: active persona is that person;
                    business: active persona is that business AND the
                    principal is its registered owner
  businesses        same ownership re-check, business persona must be active
"""
from __future__ import annotations

from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from app.accounts.constants import AccountType
from app.accounts.persona import Persona, Principal, persona_belongs_to
from app.permissions.schemas import (
    BusinessMeta,
    CommentMeta,
    Decision,
    PermissionAction,
    PostMeta,
    ProfileMeta,
)


def _context_denial(
    principal: Principal | None, active: Persona | None, doing: str
) -> Decision | None:
    if principal is None or active is None:
        return Decision.deny(f"You must be logged in to {doing}.")
    if not persona_belongs_to(active, principal):
        return Decision.deny("Your active account is not available. Switch accounts and try again.")
    return None


def _switch_hint(principal: Principal, meta: PostMeta, doing: str) -> str:
    author = meta.author_account_id
    if author == principal.id:
        return f"Switch to your personal account to {doing}."
    if author is not None and principal.owns(author):
        return f"Switch to {meta.author_name or 'this business'} to {doing}."
    return f"You do not have permission to {doing}."


def _authored_by_active(
    principal: Principal | None,
    active: Persona | None,
    meta: PostMeta | None,
    doing: str,
) -> Decision:
    denial = _context_denial(principal, active, doing)
    if denial is not None:
        return denial
    if meta is None or meta.author_account_id is None:
        return Decision.deny(f"You do not have permission to {doing}.")
    same_kind = meta.author_account_type is None or meta.author_account_type is active.kind
    if same_kind and meta.author_account_id == active.id:
        return Decision.allow()
    return Decision.deny(_switch_hint(principal, meta, doing))


# ── Posts / comments ──────────────────────────────────────────────────────────

def can_edit_post(
    principal: Principal | None, active: Persona | None, post: PostMeta | None
) -> Decision:
    return _authored_by_active(principal, active, post, "edit this post")


def can_delete_post(
    principal: Principal | None, active: Persona | None, post: PostMeta | None
) -> Decision:
    return _authored_by_active(principal, active, post, "delete this post")


def can_edit_comment(
    principal: Principal | None, active: Persona | None, comment: CommentMeta | None
) -> Decision:
    return _authored_by_active(principal, active, comment, "edit this comment")


def can_delete_comment(
    principal: Principal | None, active: Persona | None, comment: CommentMeta | None
) -> Decision:
    decision = _authored_by_active(principal, active, comment, "delete this comment")
    if decision.allowed or principal is None or active is None or comment is None:
        return decision
    if not persona_belongs_to(active, principal):
        return decision
    # Page owners moderate comments under their posts regardless of authorship.
    if comment.parent_page_owner is not None and comment.parent_page_owner == active.endpoint:
        return Decision.allow()
    return decision


# ── Profiles / businesses ─────────────────────────────────────────────────────

def _business_control(
    principal: Principal | None,
    active: Persona | None,
    business_id,
    owner_id,
    name: str | None,
    doing: str,
    not_owner_reason: str,
) -> Decision:
    denial = _context_denial(principal, active, doing)
    if denial is not None:
        return denial
    if owner_id is None or owner_id != principal.id:
        return Decision.deny(not_owner_reason)
    if active.kind is not AccountType.BUSINESS or active.id != business_id:
        return Decision.deny(f"Switch to {name or 'this business'} to {doing}.")
    return Decision.allow()


def can_edit_profile(
    principal: Principal | None, active: Persona | None, profile: ProfileMeta | None
) -> Decision:
    if profile is None:
        return Decision.deny("Profile not found.")
    if profile.kind is AccountType.BUSINESS:
        return _business_control(
            principal,
            active,
            profile.id,
            profile.owner_id,
            profile.name,
            "edit this profile",
            "You do not have admin access to this business.",
        )
    denial = _context_denial(principal, active, "edit profiles")
    if denial is not None:
        return denial
    if profile.id != principal.id:
        return Decision.deny("You can only edit your own profile.")
    if active.kind is not AccountType.USER:
        return Decision.deny("Switch to your personal account to edit this profile.")
    return Decision.allow()


def can_manage_business(
    principal: Principal | None, active: Persona | None, business: BusinessMeta | None
) -> Decision:
    if business is None:
        return Decision.deny("Business not found.")
    return _business_control(
        principal,
        active,
        business.id,
        business.owner_id,
        business.name,
        "manage it",
        "You do not have admin access to this business.",
    )


def can_delete_business(
    principal: Principal | None, active: Persona | None, business: BusinessMeta | None
) -> Decision:
    if business is None:
        return Decision.deny("Business not found.")
    return _business_control(
        principal,
        active,
        business.id,
        business.owner_id,
        business.name,
        "delete it",
        "You do not have permission to delete this business.",
    )


# ── Dispatch ──────────────────────────────────────────────────────────────────

_PREDICATES: dict[PermissionAction, tuple[Callable[..., Decision], type]] = {
    PermissionAction.EDIT_POST: (can_edit_post, PostMeta),
    PermissionAction.DELETE_POST: (can_delete_post, PostMeta),
    PermissionAction.EDIT_COMMENT: (can_edit_comment, CommentMeta),
    PermissionAction.DELETE_COMMENT: (can_delete_comment, CommentMeta),
    PermissionAction.EDIT_PROFILE: (can_edit_profile, ProfileMeta),
    PermissionAction.MANAGE_BUSINESS: (can_manage_business, BusinessMeta),
    PermissionAction.DELETE_BUSINESS: (can_delete_business, BusinessMeta),
}


def evaluate(
    action: PermissionAction,
    principal: Principal | None,
    active: Persona | None,
    resource: Any,
) -> Decision:
    """Run the predicate for ``action``; ``resource`` may be a meta model or a dict."""
    predicate, meta_type = _PREDICATES[action]
    if isinstance(resource, dict):
        try:
            resource = meta_type.model_validate(resource)
        except ValidationError:
            return Decision.deny("Resource metadata is incomplete.")
    return predicate(principal, active, resource)
