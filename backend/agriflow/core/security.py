"""
Authentication boundary with the identity service.

Tokens are issued by the external identity service and signed with a shared
secret. This module only verifies them and exposes the principal they carry.
"""

import hmac
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from agriflow.core.config import settings

bearer_scheme = HTTPBearer(auto_error=False)


class Role(str, Enum):
    """Roles carried by identity tokens."""

    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Verified caller identity."""

    id: int
    role: Role


def decode_token(token: str) -> Principal:
    """
    Decode and verify an identity token.

    Args:
        token: Encoded JWT.

    Returns:
        Principal carried by the token.

    Raises:
        HTTPException: 401 if the token is invalid, expired, or lacks a known role.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return Principal(id=int(payload["id"]), role=Role(payload["role"]))
    except (KeyError, TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Principal:
    """Dependency returning the authenticated principal."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. No token was provided.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return decode_token(credentials.credentials)


def require_roles(*roles: Role) -> Callable[..., Principal]:
    """
    Build a dependency that only admits principals holding one of ``roles``.

    Args:
        roles: Accepted roles.

    Returns:
        FastAPI dependency callable.
    """

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access forbidden, insufficient permissions.",
            )
        return principal

    return dependency


def verify_worker_key(x_worker_key: str | None = Header(None)) -> None:
    """Dependency admitting ML worker callbacks carrying the shared key."""
    if x_worker_key is None or not hmac.compare_digest(x_worker_key, settings.worker_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid worker key",
        )


require_operator = require_roles(Role.USER, Role.ADMIN)
require_admin = require_roles(Role.ADMIN)
