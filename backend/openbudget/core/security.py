from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Dict

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from openbudget.config import get_settings

settings = get_settings()
bearer = HTTPBearer()


@dataclass(frozen=True)
class Principal:
    sub: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == settings.ADMIN_ROLE


def _epoch(moment: dt.datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=dt.timezone.utc)
    return int(moment.astimezone(dt.timezone.utc).timestamp())


def create_access(sub: str, role: str = "user", *, minutes: int | None = None) -> str:
    """Mint a token the way the portal's auth service does. Used by tests and local tooling."""
    issued = dt.datetime.now(dt.timezone.utc)
    lifetime = dt.timedelta(minutes=settings.JWT_ACCESS_MIN if minutes is None else minutes)
    claims = {"sub": sub, "role": role, "typ": "access", "iat": _epoch(issued), "exp": _epoch(issued + lifetime)}
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_access(token: str) -> Dict[str, Any]:
    """Verify signature and expiry; raises ValueError for anything that is not a usable access token."""
    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError as exc:
        raise ValueError(str(exc)) from exc
    if claims.get("typ", "access") != "access":
        raise ValueError("Not an access token")
    if not claims.get("sub"):
        raise ValueError("Missing subject")
    return claims


def get_current_principal(creds: HTTPAuthorizationCredentials = Depends(bearer)) -> Principal:
    try:
        claims = decode_access(creds.credentials)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token")
    return Principal(sub=str(claims["sub"]), role=str(claims.get("role") or "user"))


def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin role required")
    return principal
