"""Read-only lookups the access guard needs from persistence."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.orm import Session

from .models import Tenant, User


class AccessStore(Protocol):
    """Return ``None`` for unknown ids; raise only on genuine I/O failure."""

    def get_user(self, user_id: int) -> User | None: ...

    def get_tenant(self, tenant_id: int) -> Tenant | None: ...


class SqlAlchemyAccessStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get_user(self, user_id: int) -> User | None:
        return self.db.get(User, user_id, populate_existing=True)

    def get_tenant(self, tenant_id: int) -> Tenant | None:
        return self.db.get(Tenant, tenant_id, populate_existing=True)
