"""
forge.api.deps — FastAPI dependency injection
==============================================

Bearer tokens are issued by the external identity provider and signed
with the shared ``JWT_SECRET`` (HS256).  Claims used here: ``sub`` (user
id), ``username``, ``role`` (member / domain_lead / admin) and ``domain``.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from forge.config import ForgeConfig, load_config
from forge.constants import ROLE_ADMIN, ROLE_MEMBER, ROLES
from forge.database.engine import create_db_engine
from forge.services.event_service import Actor

_WEAK_SECRETS = frozenset({
    "forge-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> ForgeConfig:
    return load_config()


def get_optional_config() -> ForgeConfig | None:
    """The loaded config, or None when config.yaml is absent."""
    try:
        return get_config()
    except FileNotFoundError:
        return None


def _decode(authorization: str | None) -> Actor:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")

    sub = payload.get("sub")
    if not sub:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    role = payload.get("role", ROLE_MEMBER)
    if role not in ROLES:
        role = ROLE_MEMBER
    return Actor(
        id=str(sub),
        username=payload.get("username"),
        role=role,
        domain=payload.get("domain"),
    )


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> Actor:
    """Validate the bearer JWT and return the caller.  Raises 401 if invalid."""
    return _decode(authorization)


def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
) -> Actor | None:
    """Like :func:`get_current_user`, but anonymous requests yield None."""
    if authorization is None:
        return None
    return _decode(authorization)


def get_current_admin(
    user: Annotated[Actor, Depends(get_current_user)],
) -> Actor:
    """Require the ``admin`` role.  Raises 403 otherwise."""
    if user.role != ROLE_ADMIN:
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return user
