"""
Sync layer — async httpx client for the graph service HTTP API.

Every call carries the bearer token and the active persona headers.  Any
failure (non-2xx, network, or a 2xx body that does not parse) surfaces as
TransportError with the server's machine-readable kind when one is present:

  {"error": {"code": "already_pending", "message": "..."}}  → kind from code
  {"detail": "Not authenticated"}                           → kind from status
"""
from __future__ import annotations

import logging
import uuid
from typing import Any

import httpx
from pydantic import ValidationError

from app.accounts.constants import (
    ACTIVE_ACCOUNT_ID_HEADER,
    ACTIVE_ACCOUNT_TYPE_HEADER,
)
from app.accounts.persona import Endpoint, Persona
from app.exceptions import ErrorKind
from app.social_graph.status import RelationshipStatus

logger = logging.getLogger(__name__)

_KIND_BY_STATUS: dict[int, ErrorKind] = {
    401: ErrorKind.NOT_AUTHENTICATED,
    403: ErrorKind.NOT_AUTHORIZED,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.INVALID_STATE,
    422: ErrorKind.INVALID_STATE,
    429: ErrorKind.LIMIT_EXCEEDED,
}


class TransportError(Exception):
    """A failed call.  ``kind`` is None for network errors and unmapped statuses."""

    def __init__(
        self,
        kind: ErrorKind | None,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _error_from_response(response: httpx.Response) -> TransportError:
    kind = _KIND_BY_STATUS.get(response.status_code)
    message = f"Request failed ({response.status_code})."
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        detail = body.get("detail")
        if isinstance(error, dict):
            message = error.get("message") or message
            try:
                kind = ErrorKind(error.get("code"))
            except ValueError:
                pass
        elif isinstance(detail, str):
            message = detail
        elif isinstance(detail, list) and detail and isinstance(detail[0], dict):
            # FastAPI validation errors
            message = str(detail[0].get("msg", message))
    return TransportError(kind, message, response.status_code)


def _malformed() -> TransportError:
    return TransportError(None, "Unexpected response from server.")


def _status(raw: Any) -> RelationshipStatus:
    try:
        return RelationshipStatus.model_validate(raw)
    except ValidationError as exc:
        raise _malformed() from exc


def _relationship(body: Any) -> RelationshipStatus | None:
    if body is None:
        return None
    if not isinstance(body, dict):
        raise _malformed()
    raw = body.get("relationship")
    return _status(raw) if raw else None


class GraphTransport:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> GraphTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @staticmethod
    def _persona_headers(persona: Persona) -> dict[str, str]:
        return {
            ACTIVE_ACCOUNT_TYPE_HEADER: persona.kind.value,
            ACTIVE_ACCOUNT_ID_HEADER: str(persona.id),
        }

    async def _request(
        self,
        method: str,
        path: str,
        persona: Persona,
        *,
        json: Any = None,
    ) -> dict[str, Any] | None:
        try:
            response = await self._client.request(
                method, path, json=json, headers=self._persona_headers(persona)
            )
        except httpx.HTTPError as exc:
            logger.warning("Graph API %s %s failed: %s", method, path, exc)
            raise TransportError(None, "Network error. Please try again.") from exc
        if response.status_code >= 400:
            error = _error_from_response(response)
            logger.warning(
                "Graph API %s %s → %s (%s)", method, path, response.status_code, error.kind
            )
            raise error
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("Graph API %s %s returned a non-JSON body", method, path)
            raise _malformed() from exc

    # ── Accounts ─────────────────────────────────────────────────────────────

    async def get_me(self, persona: Persona) -> dict[str, Any]:
        body = await self._request("GET", "/me", persona)
        if not isinstance(body, dict) or not isinstance(body.get("businesses"), list):
            raise _malformed()
        return body

    # ── Status ───────────────────────────────────────────────────────────────

    async def get_status(self, persona: Persona, target: Endpoint) -> RelationshipStatus:
        body = await self._request(
            "GET", f"/relationships/{target.kind.value}/{target.id}", persona
        )
        return _status(body)

    async def get_statuses(
        self, persona: Persona, targets: list[Endpoint]
    ) -> list[RelationshipStatus]:
        body = await self._request(
            "POST",
            "/relationships/batch",
            persona,
            json={"targets": [t.model_dump(mode="json") for t in targets]},
        )
        if not isinstance(body, dict) or not isinstance(body.get("items"), list):
            raise _malformed()
        return [_status(item) for item in body["items"]]

    # ── Connections ──────────────────────────────────────────────────────────

    async def send_connection_request(
        self, persona: Persona, target: Endpoint
    ) -> RelationshipStatus | None:
        body = await self._request(
            "POST", "/connections", persona, json={"target": target.model_dump(mode="json")}
        )
        return _relationship(body)

    async def accept_connection(
        self, persona: Persona, connection_id: uuid.UUID
    ) -> RelationshipStatus | None:
        return _relationship(
            await self._request("POST", f"/connections/{connection_id}/accept", persona)
        )

    async def reject_connection(
        self, persona: Persona, connection_id: uuid.UUID
    ) -> RelationshipStatus | None:
        return _relationship(
            await self._request("POST", f"/connections/{connection_id}/reject", persona)
        )

    async def remove_connection(
        self, persona: Persona, connection_id: uuid.UUID
    ) -> RelationshipStatus | None:
        return _relationship(
            await self._request("DELETE", f"/connections/{connection_id}", persona)
        )

    # ── Follows ──────────────────────────────────────────────────────────────

    async def follow(self, persona: Persona, user_id: uuid.UUID) -> RelationshipStatus | None:
        return _relationship(await self._request("POST", f"/users/{user_id}/follow", persona))

    async def unfollow(self, persona: Persona, user_id: uuid.UUID) -> RelationshipStatus | None:
        return _relationship(await self._request("DELETE", f"/users/{user_id}/follow", persona))

    async def accept_follow(
        self, persona: Persona, follow_id: uuid.UUID
    ) -> RelationshipStatus | None:
        return _relationship(await self._request("POST", f"/follows/{follow_id}/accept", persona))

    async def reject_follow(
        self, persona: Persona, follow_id: uuid.UUID
    ) -> RelationshipStatus | None:
        return _relationship(await self._request("POST", f"/follows/{follow_id}/reject", persona))

    # ── Blocks ───────────────────────────────────────────────────────────────

    async def block(self, persona: Persona, user_id: uuid.UUID) -> RelationshipStatus | None:
        return _relationship(await self._request("POST", f"/users/{user_id}/block", persona))

    async def unblock(self, persona: Persona, user_id: uuid.UUID) -> RelationshipStatus | None:
        return _relationship(await self._request("DELETE", f"/users/{user_id}/block", persona))
