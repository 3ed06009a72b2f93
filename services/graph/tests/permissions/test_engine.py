import uuid

import pytest

from app.accounts.constants import AccountType
from app.accounts.persona import Endpoint, Persona, Principal
from app.permissions import engine
from app.permissions.schemas import (
    BusinessMeta,
    CommentMeta,
    PermissionAction,
    PostMeta,
    ProfileMeta,
)

P_ID = uuid.uuid4()
SHOP = uuid.uuid4()
PRINCIPAL = Principal(id=P_ID, owned_business_ids=frozenset({SHOP}))
AS_ME = Persona.personal(PRINCIPAL)
AS_SHOP = Persona.business(SHOP, P_ID)


def _post(author: uuid.UUID | None, kind: AccountType | None = None, name: str | None = None) -> PostMeta:
    return PostMeta(id=uuid.uuid4(), author_account_id=author, author_account_type=kind, author_name=name)


# ── Posts ─────────────────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    "predicate", [engine.can_edit_post, engine.can_delete_post, engine.can_edit_comment]
)
def test_authorship_is_strict_to_active_persona(predicate) -> None:
    shop_post = _post(SHOP, AccountType.BUSINESS, "Shop")
    assert predicate(PRINCIPAL, AS_SHOP, shop_post).allowed
    denied = predicate(PRINCIPAL, AS_ME, shop_post)
    assert not denied.allowed
    assert denied.reason.startswith("Switch to Shop")

    my_post = _post(P_ID, AccountType.USER)
    assert predicate(PRINCIPAL, AS_ME, my_post).allowed
    denied = predicate(PRINCIPAL, AS_SHOP, my_post)
    assert not denied.allowed
    assert "personal account" in denied.reason


def test_someone_elses_post_is_denied() -> None:
    decision = engine.can_edit_post(PRINCIPAL, AS_ME, _post(uuid.uuid4()))
    assert not decision.allowed
    assert decision.reason == "You do not have permission to edit this post."


def test_legacy_post_without_author_account_is_denied() -> None:
    legacy = PostMeta(id=uuid.uuid4(), author_user_id=P_ID, owner_id=P_ID)
    assert not engine.can_edit_post(PRINCIPAL, AS_ME, legacy).allowed


def test_logged_out_caller_is_denied_with_reason() -> None:
    decision = engine.can_delete_post(None, None, _post(P_ID))
    assert not decision.allowed
    assert decision.reason == "You must be logged in to delete this post."


def test_stale_persona_is_denied() -> None:
    lost_shop = Principal(id=P_ID)
    decision = engine.can_edit_post(lost_shop, AS_SHOP, _post(SHOP, AccountType.BUSINESS))
    assert not decision.allowed


# ── Comments ──────────────────────────────────────────────────────────────────

def test_page_owner_can_delete_others_comments() -> None:
    comment = CommentMeta(
        id=uuid.uuid4(),
        author_account_id=uuid.uuid4(),
        parent_page_owner=Endpoint(kind=AccountType.BUSINESS, id=SHOP),
    )
    assert engine.can_delete_comment(PRINCIPAL, AS_SHOP, comment).allowed
    assert not engine.can_delete_comment(PRINCIPAL, AS_ME, comment).allowed
    assert not engine.can_edit_comment(PRINCIPAL, AS_SHOP, comment).allowed


# ── Profiles / businesses ─────────────────────────────────────────────────────

def test_personal_profile_edit() -> None:
    mine = ProfileMeta(kind=AccountType.USER, id=P_ID)
    assert engine.can_edit_profile(PRINCIPAL, AS_ME, mine).allowed
    assert not engine.can_edit_profile(PRINCIPAL, AS_SHOP, mine).allowed
    other = ProfileMeta(kind=AccountType.USER, id=uuid.uuid4())
    assert engine.can_edit_profile(PRINCIPAL, AS_ME, other).reason == (
        "You can only edit your own profile."
    )


def test_business_profile_edit_requires_owner_and_persona() -> None:
    shop = ProfileMeta(kind=AccountType.BUSINESS, id=SHOP, owner_id=P_ID, name="Shop")
    assert engine.can_edit_profile(PRINCIPAL, AS_SHOP, shop).allowed
    assert engine.can_edit_profile(PRINCIPAL, AS_ME, shop).reason == (
        "Switch to Shop to edit this profile."
    )
    unowned = ProfileMeta(kind=AccountType.BUSINESS, id=SHOP, owner_id=uuid.uuid4())
    assert not engine.can_edit_profile(PRINCIPAL, AS_SHOP, unowned).allowed


def test_manage_and_delete_business() -> None:
    meta = BusinessMeta(id=SHOP, owner_id=P_ID, name="Shop")
    assert engine.can_manage_business(PRINCIPAL, AS_SHOP, meta).allowed
    assert engine.can_delete_business(PRINCIPAL, AS_SHOP, meta).allowed
    assert not engine.can_delete_business(PRINCIPAL, AS_ME, meta).allowed
    assert not engine.can_manage_business(PRINCIPAL, AS_SHOP, None).allowed


# ── Dispatch ──────────────────────────────────────────────────────────────────

def test_evaluate_accepts_dicts() -> None:
    decision = engine.evaluate(
        PermissionAction.EDIT_POST,
        PRINCIPAL,
        AS_SHOP,
        {"author_account_id": str(SHOP), "author_account_type": "business"},
    )
    assert decision.allowed


def test_evaluate_incomplete_metadata_is_denied() -> None:
    decision = engine.evaluate(PermissionAction.EDIT_PROFILE, PRINCIPAL, AS_ME, {"kind": "user"})
    assert not decision.allowed
    assert decision.reason == "Resource metadata is incomplete."
