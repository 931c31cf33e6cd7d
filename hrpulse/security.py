"""Bearer-token helpers and identity resolution."""

from __future__ import annotations

import hashlib
import secrets

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import get_db
from .models import ApiToken

bearer_scheme = HTTPBearer(auto_error=False)


def generate_access_token() -> str:
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_token(db: Session, user_id: int) -> str:
    """Persist a new token for ``user_id`` and return its plaintext once."""
    access_token = generate_access_token()
    db.add(ApiToken(user_id=user_id, token_hash=hash_token(access_token)))
    return access_token


def resolve_identity(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> int | None:
    """Return the authenticated user id, or ``None`` for anonymous requests.

    The id is also recorded on ``request.state.user_id``.
    """
    request.state.user_id = None
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None

    token = db.scalar(
        select(ApiToken).where(
            ApiToken.token_hash == hash_token(credentials.credentials),
            ApiToken.revoked_at.is_(None),
        )
    )
    if token is None:
        return None

    request.state.user_id = token.user_id
    return token.user_id
