"""
Accounts domain — identity model (Principal, Persona, Endpoint) and the
client-side active-persona session.

A Principal is the authenticated human.  A Persona is an identity the
principal may act as: itself (kind=user, id == principal id) or any business
it owns.  Exactly one persona is active per client session; switching is a
local reassignment — the server re-validates ownership on every request from
the X-Active-Account-* headers.

The chosen persona may be persisted (Redis in production) and is revalidated
against the principal's current businesses whenever it is restored.
"""
from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Iterable
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field, model_validator
from redis.asyncio import Redis

from app.accounts.constants import AccountType
from app.exceptions import NotAuthenticated, NotAuthorized, PersonaNotOwned

logger = logging.getLogger(__name__)


# ── Value types ───────────────────────────────────────────────────────────────

class Endpoint(BaseModel):
    """One side of a Connection/Follow — a tagged (kind, id) pair."""

    model_config = ConfigDict(frozen=True)

    kind: AccountType
    id: uuid.UUID

    @property
    def key(self) -> str:
        return f"{self.kind.value}:{self.id}"


class Principal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    owned_business_ids: frozenset[uuid.UUID] = Field(default_factory=frozenset)

    def owns(self, business_id: uuid.UUID) -> bool:
        return business_id in self.owned_business_ids


class Persona(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: AccountType
    id: uuid.UUID
    owner_principal_id: uuid.UUID

    @model_validator(mode="after")
    def _personal_id_is_principal_id(self) -> Persona:
        if self.kind is AccountType.USER and self.id != self.owner_principal_id:
            raise ValueError("a personal persona's id must equal its principal's id")
        return self

    @classmethod
    def personal(cls, principal: Principal) -> Persona:
        return cls(kind=AccountType.USER, id=principal.id, owner_principal_id=principal.id)

    @classmethod
    def business(cls, business_id: uuid.UUID, owner_principal_id: uuid.UUID) -> Persona:
        return cls(
            kind=AccountType.BUSINESS, id=business_id, owner_principal_id=owner_principal_id
        )

    @property
    def endpoint(self) -> Endpoint:
        return Endpoint(kind=self.kind, id=self.id)

    @property
    def is_personal(self) -> bool:
        return self.kind is AccountType.USER


def persona_belongs_to(persona: Persona, principal: Principal) -> bool:
    """True when ``principal`` is allowed to act as ``persona`` right now."""
    if persona.owner_principal_id != principal.id:
        return False
    if persona.kind is AccountType.USER:
        return persona.id == principal.id
    return principal.owns(persona.id)


# ── Persistence ───────────────────────────────────────────────────────────────

class PersonaStore(Protocol):
    async def get(self, principal_id: uuid.UUID) -> str | None: ...

    async def set(self, principal_id: uuid.UUID, value: str) -> None: ...

    async def delete(self, principal_id: uuid.UUID) -> None: ...


class RedisPersonaStore:
    """Key schema: ``persona:active:{principal_id}`` → JSON ``{"kind", "id"}``."""

    def __init__(self, redis: Redis, ttl_seconds: int) -> None:
        self._redis = redis
        self._ttl = ttl_seconds

    @staticmethod
    def _key(principal_id: uuid.UUID) -> str:
        return f"persona:active:{principal_id}"

    async def get(self, principal_id: uuid.UUID) -> str | None:
        return await self._redis.get(self._key(principal_id))

    async def set(self, principal_id: uuid.UUID, value: str) -> None:
        await self._redis.setex(self._key(principal_id), self._ttl, value)

    async def delete(self, principal_id: uuid.UUID) -> None:
        await self._redis.delete(self._key(principal_id))


class MemoryPersonaStore:
    """In-process store for single-process clients; counts writes."""

    def __init__(self) -> None:
        self.values: dict[uuid.UUID, str] = {}
        self.writes = 0

    async def get(self, principal_id: uuid.UUID) -> str | None:
        return self.values.get(principal_id)

    async def set(self, principal_id: uuid.UUID, value: str) -> None:
        self.values[principal_id] = value
        self.writes += 1

    async def delete(self, principal_id: uuid.UUID) -> None:
        self.values.pop(principal_id, None)


def _encode(persona: Persona) -> str:
    return json.dumps({"kind": persona.kind.value, "id": str(persona.id)}, sort_keys=True)


def _decode(raw: str, principal: Principal) -> Persona | None:
    try:
        data = json.loads(raw)
        kind = AccountType(data["kind"])
        persona_id = uuid.UUID(data["id"])
    except (ValueError, KeyError, TypeError):
        return None
    if kind is AccountType.USER:
        return Persona.personal(principal) if persona_id == principal.id else None
    return Persona.business(persona_id, principal.id)


# ── Session ───────────────────────────────────────────────────────────────────

class PersonaSession:
    """Active-persona state for one logged-in client session."""

    def __init__(self, principal: Principal | None = None) -> None:
        self._principal = principal
        self._active: Persona | None = Persona.personal(principal) if principal else None
        # Last value known to be in the store; lets save() skip redundant writes.
        self._persisted: str | None = None

    @property
    def principal(self) -> Principal | None:
        return self._principal

    def active_persona(self) -> Persona | None:
        return self._active

    def is_personal_active(self) -> bool:
        return self._active is not None and self._active.kind is AccountType.USER

    def is_business_active(self) -> bool:
        return self._active is not None and self._active.kind is AccountType.BUSINESS

    def switch_persona(self, target: Persona) -> Persona:
        """Make ``target`` active.  Raises without changing state if it isn't ours."""
        if self._principal is None:
            raise NotAuthenticated()
        if not persona_belongs_to(target, self._principal):
            if target.kind is AccountType.BUSINESS:
                raise PersonaNotOwned()
            raise NotAuthorized("You can only act as your own personal account.")
        self._active = target
        return target

    def switch_to_personal(self) -> Persona:
        if self._principal is None:
            raise NotAuthenticated()
        return self.switch_persona(Persona.personal(self._principal))

    def switch_to_business(self, business_id: uuid.UUID) -> Persona:
        if self._principal is None:
            raise NotAuthenticated()
        return self.switch_persona(Persona.business(business_id, self._principal.id))

    def revalidate(self, owned_business_ids: Iterable[uuid.UUID]) -> bool:
        """Refresh the owned-business list; fall back to personal if needed.

        Returns True only when the active persona changed.  Calling it again
        with the same list is a no-op.
        """
        if self._principal is None:
            return False
        owned = frozenset(owned_business_ids)
        if owned != self._principal.owned_business_ids:
            self._principal = self._principal.model_copy(update={"owned_business_ids": owned})
        if self._active is not None and persona_belongs_to(self._active, self._principal):
            return False
        logger.info(
            "Active persona %s no longer owned by %s; falling back to personal",
            self._active.endpoint.key if self._active else None,
            self._principal.id,
        )
        self._active = Persona.personal(self._principal)
        return True

    async def save(self, store: PersonaStore) -> bool:
        """Persist the active persona.  Returns False when nothing had to be written."""
        if self._principal is None or self._active is None:
            return False
        value = _encode(self._active)
        if value == self._persisted:
            return False
        await store.set(self._principal.id, value)
        self._persisted = value
        return True

    @classmethod
    async def restore(cls, principal: Principal, store: PersonaStore) -> PersonaSession:
        """Rebuild a session from the store, revalidating against ``principal``."""
        session = cls(principal)
        raw = await store.get(principal.id)
        session._persisted = raw
        if raw is not None:
            saved = _decode(raw, principal)
            if saved is not None:
                session._active = saved
        session.revalidate(principal.owned_business_ids)
        await session.save(store)
        return session

    async def logout(self, store: PersonaStore | None = None) -> None:
        if store is not None and self._principal is not None:
            await store.delete(self._principal.id)
        self._principal = None
        self._active = None
        self._persisted = None
