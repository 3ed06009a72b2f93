"""
Accounts domain — enums and header names.
"""
from __future__ import annotations

import enum


class AccountType(str, enum.Enum):
    """Kind of an acting identity / relationship endpoint.

    USER is both the Personal persona and the User endpoint; BUSINESS is both
    the Business persona and the Business endpoint.
    """

    USER = "user"
    BUSINESS = "business"


class FollowPolicy(str, enum.Enum):
    ANYONE = "anyone"      # follows are accepted immediately
    APPROVAL = "approval"  # follows start pending until the followee accepts


# Request headers carrying the active persona (absent → personal persona)
ACTIVE_ACCOUNT_TYPE_HEADER = "X-Active-Account-Type"
ACTIVE_ACCOUNT_ID_HEADER = "X-Active-Account-Id"
