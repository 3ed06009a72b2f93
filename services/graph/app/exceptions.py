"""
Graph service — domain exceptions.

Every error carries a machine-distinguishable ``kind`` (see ErrorKind), a
preset HTTP status code and a human-readable message, so call sites never
need to specify these.  The exception handler registered in main.py wraps
them in the shared error envelope; the sync transport rebuilds the kind from
that envelope on the client side.

Permission denials are NOT raised here by the permission engine — it returns
a Decision.  Routers turn a denied Decision into NotAuthorized(reason).
"""
from __future__ import annotations

import enum

from fastapi import status


class ErrorKind(str, enum.Enum):
    NOT_AUTHENTICATED = "not_authenticated"
    NOT_AUTHORIZED = "not_authorized"
    ALREADY_EXISTS = "already_exists"
    ALREADY_PENDING = "already_pending"
    ALREADY_CONNECTED = "already_connected"
    INVALID_STATE = "invalid_state"
    BLOCKED = "blocked"
    NOT_FOUND = "not_found"
    LIMIT_EXCEEDED = "limit_exceeded"


class GraphError(Exception):
    kind: ErrorKind = ErrorKind.INVALID_STATE
    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "The request could not be completed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


# ── Taxonomy roots ────────────────────────────────────────────────────────────

class NotAuthenticated(GraphError):
    kind = ErrorKind.NOT_AUTHENTICATED
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "You must be logged in to do that."


class NotAuthorized(GraphError):
    kind = ErrorKind.NOT_AUTHORIZED
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to perform this action."


class AlreadyExists(GraphError):
    kind = ErrorKind.ALREADY_EXISTS
    status_code = status.HTTP_409_CONFLICT
    default_message = "This relationship already exists."


class AlreadyPending(GraphError):
    kind = ErrorKind.ALREADY_PENDING
    status_code = status.HTTP_409_CONFLICT
    default_message = "A request between these accounts is already pending."


class AlreadyConnected(GraphError):
    kind = ErrorKind.ALREADY_CONNECTED
    status_code = status.HTTP_409_CONFLICT
    default_message = "You are already connected."


class InvalidState(GraphError):
    kind = ErrorKind.INVALID_STATE
    status_code = status.HTTP_409_CONFLICT
    default_message = "This action does not apply to the current state."


class Blocked(GraphError):
    kind = ErrorKind.BLOCKED
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You cannot interact with this account."


class NotFound(GraphError):
    kind = ErrorKind.NOT_FOUND
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found."


# ── Specific cases ────────────────────────────────────────────────────────────

class CannotTargetSelf(InvalidState):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "You cannot do that to your own account."


class AlreadyFollowing(AlreadyExists):
    default_message = "You are already following this user."


class FollowRequestAlreadySent(AlreadyPending):
    default_message = "Follow request already sent."


class ConnectionRequestAlreadySent(AlreadyPending):
    default_message = "Connection request already sent."


class ConnectionRequestAlreadyReceived(AlreadyPending):
    default_message = "This account has already sent you a connection request."


class FollowLimitExceeded(GraphError):
    kind = ErrorKind.LIMIT_EXCEEDED
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, limit: int) -> None:
        super().__init__(f"You have reached the maximum following limit ({limit:,}).")


class UserNotFound(NotFound):
    default_message = "User not found."


class BusinessNotFound(NotFound):
    default_message = "Business not found."


class ConnectionNotFound(NotFound):
    default_message = "Connection not found."


class FollowRequestNotFound(NotFound):
    default_message = "Follow request not found."


class PersonaNotOwned(NotAuthorized):
    """Active-persona headers name a business the principal does not own."""

    default_message = "You can only act as businesses you own."
