"""Tier changes and seat-limit enforcement."""

from __future__ import annotations

import logging
import re
import secrets

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .constants import SubscriptionTier, get_seat_limit, normalize_seat_limit, parse_tier
from .models import BillingAuditLog, Employee, Tenant, User

logger = logging.getLogger(__name__)

_SLUG_UNSAFE = re.compile(r"[^a-z0-9]+")
_SLUG_ATTEMPTS = 5


class EmployeeLimitReached(Exception):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Employee limit reached. Cannot exceed {limit} employees.")
        self.limit = limit


class InvalidEmployeeReference(Exception):
    def __init__(self, user_id: int) -> None:
        super().__init__("Invalid tenant, user, or department reference.")
        self.user_id = user_id


def effective_seat_limit(tenant: Tenant) -> int | None:
    return normalize_seat_limit(tenant.max_employees)


def count_employees(db: Session, tenant_id: int) -> int:
    return db.scalar(select(func.count(Employee.id)).where(Employee.tenant_id == tenant_id)) or 0


def generate_feedback_slug(full_name: str) -> str:
    """Public feedback link id such as ``jane-doe-4f9a01bc``."""
    base = _SLUG_UNSAFE.sub("-", full_name.strip().lower()).strip("-")[:40] or "employee"
    return f"{base}-{secrets.token_hex(4)}"


def allocate_feedback_slug(db: Session, full_name: str) -> str:
    """Return a feedback slug not yet used by any tenant."""
    for _ in range(_SLUG_ATTEMPTS):
        slug = generate_feedback_slug(full_name)
        if db.scalar(select(Employee.id).where(Employee.feedback_slug == slug)) is None:
            return slug
        logger.info("Feedback slug collision, retrying", extra={"slug": slug})
    raise RuntimeError(f"could not allocate a unique feedback slug after {_SLUG_ATTEMPTS} attempts")


def _check_user_reference(db: Session, tenant: Tenant, user_id: int) -> None:
    user = db.get(User, user_id)
    if user is None or user.tenant_id != tenant.id:
        raise InvalidEmployeeReference(user_id)


def create_employee_with_limit_check(
    db: Session,
    tenant: Tenant,
    *,
    full_name: str,
    email: str,
    employee_number: str | None = None,
    user_id: int | None = None,
) -> Employee:
    """Add an employee unless the tenant is already at its seat limit.

    The tenant row is locked for the count on databases that support
    ``SELECT ... FOR UPDATE``. A linked ``user_id`` must belong to the same
    tenant. The caller commits.
    """
    locked = db.get(Tenant, tenant.id, with_for_update=True, populate_existing=True)
    if locked is None:
        raise LookupError(f"tenant {tenant.id} not found")

    if user_id is not None:
        _check_user_reference(db, locked, user_id)

    limit = effective_seat_limit(locked)
    if limit is not None and count_employees(db, locked.id) >= limit:
        raise EmployeeLimitReached(limit)

    employee = Employee(
        tenant_id=locked.id,
        user_id=user_id,
        full_name=full_name,
        email=email,
        employee_number=employee_number,
        feedback_slug=allocate_feedback_slug(db, full_name),
    )
    db.add(employee)
    db.flush()
    return employee


def _snapshot(tenant: Tenant) -> dict:
    return {"subscriptionTier": tenant.subscription_tier, "maxEmployees": tenant.max_employees}


def change_tenant_tier(
    db: Session,
    tenant: Tenant,
    new_tier: SubscriptionTier | str,
    operator_id: int,
    *,
    override_seat_limit: bool = False,
    max_employees: int | None = None,
) -> Tenant:
    """Move ``tenant`` to ``new_tier`` and record a ``tier_change`` audit entry.

    The seat limit follows the new tier unless ``override_seat_limit`` is set,
    in which case ``max_employees`` is stored (``None`` or ``-1``: unlimited).
    """
    new_tier = parse_tier(new_tier)
    before = _snapshot(tenant)

    tenant.subscription_tier = new_tier.value
    if override_seat_limit:
        tenant.max_employees = normalize_seat_limit(max_employees)
    else:
        tenant.max_employees = get_seat_limit(new_tier)

    db.add(
        BillingAuditLog(
            tenant_id=tenant.id,
            user_id=operator_id,
            action="tier_change",
            old_value=before,
            new_value=_snapshot(tenant),
            description=f"Tenant tier changed from {before['subscriptionTier']} to {new_tier.value}",
        )
    )
    db.flush()
    logger.info(
        "Tenant tier changed",
        extra={
            "tenant_id": tenant.id,
            "operator_id": operator_id,
            "old_tier": before["subscriptionTier"],
            "new_tier": new_tier.value,
        },
    )
    return tenant
