"""
Sync layer — client-side relationship cache as a pure reducer.

No I/O, no framework imports.  Three transitions over the same CacheState:

  optimistic_apply  write the expected post-mutation status immediately and
                    remember what it replaced (PendingMutation)
  reconcile         replace the optimistic entry with the server's answer
                    (or drop it when the server gave none)
  rollback          restore the pre-mutation entry after a failure

Every write stamps the entry with a fresh revision from a monotonic counter.
reconcile/rollback only act when the entry still carries the revision their
own optimistic step wrote; otherwise a newer mutation (or a persona switch)
has already superseded them and the state is returned unchanged.
"""
from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any

from app.accounts.persona import Endpoint
from app.social_graph.constants import ConnectionView, FollowView
from app.social_graph.status import RelationshipStatus


class MutationAction(str, enum.Enum):
    SEND_CONNECTION = "send_connection"
    ACCEPT_CONNECTION = "accept_connection"
    REJECT_CONNECTION = "reject_connection"
    REMOVE_CONNECTION = "remove_connection"
    FOLLOW = "follow"
    UNFOLLOW = "unfollow"
    ACCEPT_FOLLOW = "accept_follow"
    REJECT_FOLLOW = "reject_follow"
    BLOCK = "block"
    UNBLOCK = "unblock"


_CLEARED: dict[str, Any] = {
    "connection_status": ConnectionView.NONE,
    "connection_id": None,
    "follow_status": FollowView.NONE,
    "follow_id": None,
    "followed_by_status": FollowView.NONE,
    "followed_by_id": None,
}

# Fields each action overwrites on the optimistic entry.
TRANSITIONS: dict[MutationAction, dict[str, Any]] = {
    MutationAction.SEND_CONNECTION: {"connection_status": ConnectionView.PENDING_SENT},
    MutationAction.ACCEPT_CONNECTION: {"connection_status": ConnectionView.ACCEPTED},
    MutationAction.REJECT_CONNECTION: {"connection_status": ConnectionView.NONE, "connection_id": None},
    MutationAction.REMOVE_CONNECTION: {"connection_status": ConnectionView.NONE, "connection_id": None},
    # Optimistically assume an open follow policy; reconcile corrects to pending.
    MutationAction.FOLLOW: {"follow_status": FollowView.ACCEPTED},
    MutationAction.UNFOLLOW: {"follow_status": FollowView.NONE, "follow_id": None},
    MutationAction.ACCEPT_FOLLOW: {"followed_by_status": FollowView.ACCEPTED},
    MutationAction.REJECT_FOLLOW: {"followed_by_status": FollowView.NONE, "followed_by_id": None},
    MutationAction.BLOCK: {**_CLEARED, "blocked": True},
    MutationAction.UNBLOCK: {**_CLEARED, "blocked": False},
}


@dataclass(frozen=True, slots=True)
class StatusEntry:
    status: RelationshipStatus
    revision: int
    # True while a mutation's server answer is outstanding.
    optimistic: bool = False


@dataclass(frozen=True, slots=True)
class PendingMutation:
    scope: str | None
    target: Endpoint
    action: MutationAction
    revision: int
    previous: StatusEntry | None


@dataclass(frozen=True, slots=True)
class CacheState:
    # Key of the persona the entries were resolved for; None when logged out.
    scope: str | None = None
    entries: Mapping[str, StatusEntry] = field(default_factory=lambda: MappingProxyType({}))
    last_revision: int = 0

    def get(self, target: Endpoint) -> StatusEntry | None:
        return self.entries.get(target.key)


def _with_entry(state: CacheState, key: str, entry: StatusEntry | None, revision: int) -> CacheState:
    entries = dict(state.entries)
    if entry is None:
        entries.pop(key, None)
    else:
        entries[key] = entry
    return replace(
        state,
        entries=MappingProxyType(entries),
        last_revision=max(state.last_revision, revision),
    )


def _is_current(state: CacheState, pending: PendingMutation) -> bool:
    if state.scope != pending.scope:
        return False
    entry = state.entries.get(pending.target.key)
    return entry is not None and entry.revision == pending.revision


# ── Transitions ────────────────────────────────────────────────────────────────

def optimistic_apply(
    state: CacheState, target: Endpoint, action: MutationAction
) -> tuple[CacheState, PendingMutation]:
    previous = state.get(target)
    base = previous.status if previous is not None else RelationshipStatus.none(target)
    optimistic = base.model_copy(update=TRANSITIONS[action])
    revision = state.last_revision + 1
    pending = PendingMutation(
        scope=state.scope,
        target=target,
        action=action,
        revision=revision,
        previous=previous,
    )
    entry = StatusEntry(status=optimistic, revision=revision, optimistic=True)
    return _with_entry(state, target.key, entry, revision), pending


def reconcile(
    state: CacheState,
    pending: PendingMutation,
    authoritative: RelationshipStatus | None,
) -> CacheState:
    """Install the server's status; None invalidates the entry so it is re-fetched."""
    if not _is_current(state, pending):
        return state
    if authoritative is None:
        return _with_entry(state, pending.target.key, None, state.last_revision)
    revision = state.last_revision + 1
    return _with_entry(
        state, pending.target.key, StatusEntry(status=authoritative, revision=revision), revision
    )


def rollback(state: CacheState, pending: PendingMutation) -> CacheState:
    if not _is_current(state, pending):
        return state
    # An optimistic predecessor lost its own server answer; re-fetch instead.
    if pending.previous is None or pending.previous.optimistic:
        return _with_entry(state, pending.target.key, None, state.last_revision)
    revision = state.last_revision + 1
    restored = replace(pending.previous, revision=revision)
    return _with_entry(state, pending.target.key, restored, revision)


# ── Fetch bookkeeping ──────────────────────────────────────────────────────────

def store_fetched(
    state: CacheState, status: RelationshipStatus, *, scope: str | None = None
) -> CacheState:
    """Cache a fetched status unless a mutation for the target is in flight.

    ``scope`` is the persona the fetch was issued for; a result that arrives
    after a persona switch is dropped.
    """
    if scope is not None and scope != state.scope:
        return state
    current = state.get(status.target)
    if current is not None and current.optimistic:
        return state
    revision = state.last_revision + 1
    return _with_entry(state, status.target.key, StatusEntry(status=status, revision=revision), revision)


def invalidate(state: CacheState, target: Endpoint) -> CacheState:
    return _with_entry(state, target.key, None, state.last_revision)


def reset_scope(state: CacheState, scope: str | None) -> CacheState:
    """Drop every entry and re-key the cache to a new active persona."""
    return CacheState(scope=scope, last_revision=state.last_revision)
