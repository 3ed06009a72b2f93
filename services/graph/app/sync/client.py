"""
Sync layer — relationship cache bound to a persona session and a transport.

Each mutation runs the same three steps:
  1. optimistic_apply on the target's entry
  2. the transport call
  3. reconcile with the server's relationship status, or rollback on failure
and returns a MutationOutcome.  Nothing is retried; a retry is a new call.
A cancelled call (or any non-transport exception) also rolls back, then
re-raises.

The cache is scoped to the active persona.  Switching persona (or a
revalidation that falls back to personal) drops every entry.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from app.accounts.constants import AccountType
from app.accounts.persona import (
    Endpoint,
    Persona,
    PersonaSession,
    PersonaStore,
    Principal,
    RedisPersonaStore,
)
from app.config import Settings
from app.exceptions import ErrorKind
from app.redis_client import get_redis_client
from app.social_graph.status import RelationshipStatus
from app.sync import state as cache
from app.sync.state import CacheState, MutationAction, StatusEntry
from app.sync.transport import GraphTransport, TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class MutationOutcome:
    ok: bool
    entry: StatusEntry | None
    error_kind: ErrorKind | None = None
    message: str | None = None


def _user(user_id: uuid.UUID) -> Endpoint:
    return Endpoint(kind=AccountType.USER, id=user_id)


class RelationshipSync:
    def __init__(
        self,
        session: PersonaSession,
        transport: GraphTransport,
        store: PersonaStore | None = None,
    ) -> None:
        self._session = session
        self._transport = transport
        self._store = store
        self._state = CacheState(scope=self._scope())

    def _scope(self) -> str | None:
        active = self._session.active_persona()
        return active.endpoint.key if active is not None else None

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def session(self) -> PersonaSession:
        return self._session

    def cached(self, target: Endpoint) -> RelationshipStatus | None:
        entry = self._state.get(target)
        return entry.status if entry is not None else None

    # ── Persona ──────────────────────────────────────────────────────────────

    def _rescope(self) -> None:
        scope = self._scope()
        if scope != self._state.scope:
            self._state = cache.reset_scope(self._state, scope)

    async def _persist(self) -> None:
        if self._store is not None:
            await self._session.save(self._store)

    async def switch_persona(self, target: Persona) -> Persona:
        """Switch locally; raises NotAuthorized/NotAuthenticated with no state change."""
        persona = self._session.switch_persona(target)
        self._rescope()
        await self._persist()
        return persona

    async def switch_to_personal(self) -> Persona:
        persona = self._session.switch_to_personal()
        self._rescope()
        await self._persist()
        return persona

    async def switch_to_business(self, business_id: uuid.UUID) -> Persona:
        persona = self._session.switch_to_business(business_id)
        self._rescope()
        await self._persist()
        return persona

    async def refresh_principal(self) -> bool:
        """Re-read owned businesses from the server and revalidate the active persona."""
        principal = self._session.principal
        if principal is None:
            return False
        # Asked as the personal persona; a stale business persona would be refused.
        me = await self._transport.get_me(Persona.personal(principal))
        changed = self._session.revalidate(uuid.UUID(b["id"]) for b in me["businesses"])
        if changed:
            self._rescope()
            await self._persist()
        return changed

    async def logout(self) -> None:
        await self._session.logout(self._store)
        self._rescope()

    # ── Fetch ────────────────────────────────────────────────────────────────

    async def fetch_status(self, target: Endpoint) -> RelationshipStatus:
        """Fetch and cache one status.  TransportError propagates."""
        active = self._session.active_persona()
        if active is None:
            raise TransportError(ErrorKind.NOT_AUTHENTICATED, "You must be logged in.")
        scope = active.endpoint.key
        status = await self._transport.get_status(active, target)
        self._state = cache.store_fetched(self._state, status, scope=scope)
        return status

    async def _fetch_or_none(self, target: Endpoint) -> RelationshipStatus:
        try:
            return await self.fetch_status(target)
        except TransportError as exc:
            logger.warning("Status lookup for %s degraded to none: %s", target.key, exc.message)
            return RelationshipStatus.none(target)

    async def fetch_statuses(self, targets: list[Endpoint]) -> dict[str, RelationshipStatus]:
        """Parallel lookups; a failed target reports none without failing the batch."""
        results = await asyncio.gather(*(self._fetch_or_none(t) for t in targets))
        return {status.target.key: status for status in results}

    # ── Mutations ────────────────────────────────────────────────────────────

    async def _mutate(
        self,
        target: Endpoint,
        action: MutationAction,
        call: Callable[[Persona], Awaitable[RelationshipStatus | None]],
    ) -> MutationOutcome:
        active = self._session.active_persona()
        if active is None:
            return MutationOutcome(
                ok=False,
                entry=None,
                error_kind=ErrorKind.NOT_AUTHENTICATED,
                message="You must be logged in to do that.",
            )
        self._state, pending = cache.optimistic_apply(self._state, target, action)
        try:
            authoritative = await call(active)
        except TransportError as exc:
            self._state = cache.rollback(self._state, pending)
            return MutationOutcome(
                ok=False,
                entry=self._state.get(target),
                error_kind=exc.kind,
                message=exc.message,
            )
        except BaseException:
            # Cancelled or crashed mid-flight; the optimistic entry must not outlive the call.
            self._state = cache.rollback(self._state, pending)
            raise
        self._state = cache.reconcile(self._state, pending, authoritative)
        if action in (MutationAction.BLOCK, MutationAction.UNBLOCK):
            # Blocks span every persona of the other principal; those entries are stale.
            stale = [e.status.target for k, e in self._state.entries.items() if k != target.key]
            for other in stale:
                self._state = cache.invalidate(self._state, other)
        return MutationOutcome(ok=True, entry=self._state.get(target))

    async def send_connection_request(self, target: Endpoint) -> MutationOutcome:
        return await self._mutate(
            target,
            MutationAction.SEND_CONNECTION,
            lambda p: self._transport.send_connection_request(p, target),
        )

    async def accept_connection(
        self, target: Endpoint, connection_id: uuid.UUID
    ) -> MutationOutcome:
        return await self._mutate(
            target,
            MutationAction.ACCEPT_CONNECTION,
            lambda p: self._transport.accept_connection(p, connection_id),
        )

    async def reject_connection(
        self, target: Endpoint, connection_id: uuid.UUID
    ) -> MutationOutcome:
        return await self._mutate(
            target,
            MutationAction.REJECT_CONNECTION,
            lambda p: self._transport.reject_connection(p, connection_id),
        )

    async def remove_connection(
        self, target: Endpoint, connection_id: uuid.UUID
    ) -> MutationOutcome:
        return await self._mutate(
            target,
            MutationAction.REMOVE_CONNECTION,
            lambda p: self._transport.remove_connection(p, connection_id),
        )

    async def follow(self, user_id: uuid.UUID) -> MutationOutcome:
        return await self._mutate(
            _user(user_id), MutationAction.FOLLOW, lambda p: self._transport.follow(p, user_id)
        )

    async def unfollow(self, user_id: uuid.UUID) -> MutationOutcome:
        return await self._mutate(
            _user(user_id), MutationAction.UNFOLLOW, lambda p: self._transport.unfollow(p, user_id)
        )

    async def accept_follow(self, follower: Endpoint, follow_id: uuid.UUID) -> MutationOutcome:
        return await self._mutate(
            follower,
            MutationAction.ACCEPT_FOLLOW,
            lambda p: self._transport.accept_follow(p, follow_id),
        )

    async def reject_follow(self, follower: Endpoint, follow_id: uuid.UUID) -> MutationOutcome:
        return await self._mutate(
            follower,
            MutationAction.REJECT_FOLLOW,
            lambda p: self._transport.reject_follow(p, follow_id),
        )

    async def block(self, user_id: uuid.UUID) -> MutationOutcome:
        return await self._mutate(
            _user(user_id), MutationAction.BLOCK, lambda p: self._transport.block(p, user_id)
        )

    async def unblock(self, user_id: uuid.UUID) -> MutationOutcome:
        return await self._mutate(
            _user(user_id), MutationAction.UNBLOCK, lambda p: self._transport.unblock(p, user_id)
        )


async def create_sync(settings: Settings, principal: Principal, token: str) -> RelationshipSync:
    """Restore the persisted persona from Redis and wire up an HTTP transport."""
    store = RedisPersonaStore(
        get_redis_client(settings.redis_url), settings.persona_store_ttl_seconds
    )
    session = await PersonaSession.restore(principal, store)
    transport = GraphTransport(
        settings.api_base_url, token, timeout=settings.sync_timeout_seconds
    )
    return RelationshipSync(session, transport, store)
