"""
Bearer JWT encode/decode helpers.

Tokens are issued by the upstream login flow; this module exists so every
service (and the tests) agree on the claim layout.  Only ``sub`` (the
principal's user id) is read; other claims the issuer adds, such as email or
platform roles, are ignored.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from jose import jwt

from shared.auth.config import AuthSettings
from shared.models.user import CurrentUser


def create_access_token(
    user_id: UUID,
    settings: AuthSettings,
    *,
    expire_seconds: int | None = None,
    extra_claims: dict | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **(extra_claims or {}),
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds or settings.expire_seconds),
        "iss": settings.issuer,
        "aud": settings.audience,
    }
    return jwt.encode(payload, settings.secret, algorithm=settings.algorithm)


def decode_token(token: str, settings: AuthSettings) -> dict:
    """Verify signature, issuer, audience and expiry. Raises jose.JWTError on failure."""
    return jwt.decode(
        token,
        settings.secret,
        algorithms=[settings.algorithm],
        issuer=settings.issuer,
        audience=settings.audience,
    )


def payload_to_user(payload: dict) -> CurrentUser:
    user_id = payload.get("sub")
    if not user_id:
        raise ValueError("Missing sub in token")
    return CurrentUser(id=UUID(user_id))
