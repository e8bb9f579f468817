from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import jwt

from core.config import settings


def create_access_token(*, user_id: str, username: str, role: str, expires_minutes: int | None = None) -> str:
    """Mint a staff token signed with the shared secret.

    Session issuance belongs to the portal's auth service; this is used by the
    dev seed script and the tests to produce tokens the block API accepts.
    """

    now = datetime.now(timezone.utc)
    minutes = int(expires_minutes if expires_minutes is not None else settings.access_token_expire_minutes)
    payload: dict[str, Any] = {
        "sub": user_id,
        "username": username,
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
