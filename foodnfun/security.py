"""Session tokens and the per-route access rules.

The role is resolved once, when a token is issued, and carried as a claim.
Authorization never reads the profiles table.
"""

from __future__ import annotations

import hmac
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated

import jwt
from fastapi import Depends, Header

from .config import get_settings
from .errors import AuthorizationDenied, NotAuthenticated
from .models import Identity, Profile, Role

JWT_ALGORITHM = "HS256"


@dataclass(frozen=True)
class Principal:
    identity_id: uuid.UUID
    email: str
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in (Role.MANAGER, Role.SERVANT)


def create_session_token(identity: Identity, profile: Profile) -> str:
    settings = get_settings()
    now = datetime.now(timezone.utc)
    claims = {
        "sub": str(identity.id),
        "email": identity.email,
        "role": profile.role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_ttl_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> Principal:
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError as exc:
        raise NotAuthenticated("Session token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise NotAuthenticated("Invalid session token") from exc
    try:
        return Principal(
            identity_id=uuid.UUID(claims["sub"]),
            email=claims.get("email", ""),
            role=Role(claims["role"]),
        )
    except (KeyError, ValueError) as exc:
        raise NotAuthenticated("Session token is missing required claims") from exc


def verify_access_key(
    x_access_key: Annotated[str | None, Header(alias="X-Access-Key")] = None
) -> None:
    settings = get_settings()
    # no configured key means nobody may provision identities or mint tokens
    if not settings.access_key:
        raise NotAuthenticated("Identity provisioning is disabled: no access key configured")
    if not x_access_key or not hmac.compare_digest(x_access_key.encode(), settings.access_key.encode()):
        raise NotAuthenticated("Invalid access key")


def optional_principal(
    authorization: Annotated[str | None, Header()] = None,
) -> Principal | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise NotAuthenticated("Expected a bearer token")
    return decode_session_token(token.strip())


def require_principal(
    principal: Annotated[Principal | None, Depends(optional_principal)],
) -> Principal:
    if principal is None:
        raise NotAuthenticated("Authentication required")
    return principal


def require_staff(
    principal: Annotated[Principal, Depends(require_principal)],
) -> Principal:
    if not principal.is_staff:
        raise AuthorizationDenied("Staff role required")
    return principal


AccessGuard = Annotated[None, Depends(verify_access_key)]
CurrentPrincipal = Annotated[Principal, Depends(require_principal)]
StaffPrincipal = Annotated[Principal, Depends(require_staff)]
