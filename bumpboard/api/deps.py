"""
bumpboard.api.deps — FastAPI dependency injection
==================================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from bumpboard.config import BumpboardConfig, load_config
from bumpboard.database.engine import create_db_engine
from bumpboard.engine.bump_policy import BumpPolicy
from bumpboard.services.bump_service import BumpNotifier, pg_notifier

_WEAK_SECRETS = frozenset({
    "bumpboard-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, too short
    (< 32 chars), or a known weak default.
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
def get_config() -> BumpboardConfig:
    return load_config()


def get_policy(cfg: Annotated[BumpboardConfig, Depends(get_config)]) -> BumpPolicy:
    return BumpPolicy.from_config(cfg)


def get_notifier(engine: Annotated[Engine, Depends(get_engine)]) -> BumpNotifier:
    return pg_notifier(engine)


def _decode(token: str) -> dict:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return payload


def get_optional_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict | None:
    """JWT payload when a bearer token is sent, ``None`` for anonymous visitors.

    A token that is present but invalid is still rejected with 401.
    """
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Malformed Authorization header")
    return _decode(authorization.split(" ", 1)[1])


def get_current_user(
    user: Annotated[dict | None, Depends(get_optional_user)],
) -> dict:
    """Validate the JWT and return its payload.  Raises 401 if absent or invalid."""
    if user is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    return user
