"""
Social graph domain — enums and limits.
"""
from __future__ import annotations

import enum


class ConnectionStatus(str, enum.Enum):
    """Stored state of a Connection row."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"  # tombstone; ignored by resolution and uniqueness


class FollowStatus(str, enum.Enum):
    """Stored state of a Follow row.  Rejection deletes the row."""

    PENDING = "pending"
    ACCEPTED = "accepted"


class ConnectionView(str, enum.Enum):
    """Connection status as seen from the active persona."""

    NONE = "none"
    PENDING_SENT = "pending_sent"
    PENDING_RECEIVED = "pending_received"
    ACCEPTED = "accepted"


class FollowView(str, enum.Enum):
    """Follow edge status as seen from the active persona."""

    NONE = "none"
    PENDING_SENT = "pending_sent"
    PENDING_RECEIVED = "pending_received"
    ACCEPTED = "accepted"


class RequestDirection(str, enum.Enum):
    INCOMING = "incoming"
    OUTGOING = "outgoing"


# Hard limit on the number of users one persona can follow; Settings.follow_limit overrides.
FOLLOW_LIMIT: int = 5_000
