from __future__ import annotations

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from core.config import settings
from core.security import decode_token


bearer_scheme = HTTPBearer(auto_error=False)


def _extract_token(request: Request, creds: HTTPAuthorizationCredentials | None) -> str | None:
    if creds is not None and creds.credentials:
        return creds.credentials
    cookie_token = request.cookies.get("access_token")
    return cookie_token or None


def get_auth_payload(
    request: Request,
    creds: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> dict:
    cached = getattr(request.state, "auth_payload", None)
    if isinstance(cached, dict):
        return cached

    token = _extract_token(request, creds)
    if not token:
        raise HTTPException(status_code=401, detail="NOT_AUTHENTICATED")
    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=401, detail="INVALID_TOKEN")

    if not payload.get("sub"):
        raise HTTPException(status_code=401, detail="INVALID_TOKEN")

    request.state.auth_payload = payload
    return payload


def require_staff(payload: dict = Depends(get_auth_payload)) -> dict:
    """Registrar/admin staff only. Roles come from the token; there is no local user table."""

    role = str(payload.get("role") or "").upper()
    if role not in settings.staff_role_set:
        raise HTTPException(status_code=403, detail="NOT_AUTHORIZED")
    return payload


def get_registrar_id(payload: dict = Depends(require_staff)) -> str:
    return str(payload["sub"])
