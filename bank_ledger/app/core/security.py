"""Principal resolution.

Requests carry ``Authorization: Bearer <jwt>`` whose ``sub`` claim is the
account id. Tokens are issued by the identity provider sharing
``LEDGER_JWT_SECRET``; ``create_access_token`` is the same encoding, used for
seeding and tests.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Optional

from fastapi import Header, HTTPException, status
from jose import JWTError, jwt

from .config import Settings, get_settings


def create_access_token(account_id: int, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    expires = datetime.now(UTC) + timedelta(minutes=settings.access_token_expire_minutes)
    claims = {"sub": str(account_id), "exp": expires}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_principal_id(
    authorization: Optional[str] = Header(default=None, alias="Authorization"),
) -> int:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise _unauthorized()
    token = authorization.split(" ", 1)[1].strip()

    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        return int(claims["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        raise _unauthorized()
