from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .settings import get_settings

_security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# PUBLIC_INTERFACE
def create_access_token(owner_id: int, expires_minutes: int = 60) -> str:
    """Issue a signed bearer token identifying `owner_id`."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(owner_id),
        "user_id": owner_id,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


# PUBLIC_INTERFACE
def get_current_owner(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(_security),
) -> int:
    """
    FastAPI dependency: verify the bearer token and return the owner id it carries.

    The owner id is read from the `user_id` claim, falling back to `sub`.

    Raises:
        HTTPException(401) if the token is missing, invalid, expired, or has no integer owner id.
    """
    if creds is None or not creds.credentials:
        raise _unauthorized("Not authenticated")

    settings = get_settings()
    try:
        payload = jwt.decode(
            creds.credentials, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token has expired")
    except jwt.InvalidTokenError:
        raise _unauthorized("Invalid token")

    raw = payload.get("user_id", payload.get("sub"))
    try:
        owner_id = int(raw)
    except (TypeError, ValueError):
        raise _unauthorized("Token carries no user id")
    if owner_id <= 0:
        raise _unauthorized("Token carries no user id")
    return owner_id
