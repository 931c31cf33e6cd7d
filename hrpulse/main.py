"""FastAPI app for a multi-tenant HR performance platform."""

from __future__ import annotations

import logging
import os
import re
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import Depends, FastAPI, Query, Request, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .access import AccessDecision
from .billing import (
    EmployeeLimitReached,
    InvalidEmployeeReference,
    change_tenant_tier,
    count_employees,
    create_employee_with_limit_check,
    effective_seat_limit,
)
from .constants import (
    Feature,
    SubscriptionTier,
    UserRole,
    get_seat_limit,
    get_tier_display_info,
    get_tier_features,
    is_unlimited,
    is_valid_feature,
    is_valid_tier,
    list_tier_catalog,
    parse_tier,
)
from .db import get_db, init_db
from .errors import ApiError, ConflictError, NotFoundError, RoleRequiredError, api_error_handler
from .guards import (
    TierInfo,
    attach_tier_info,
    check_feature_access,
    get_access_store,
    require_authenticated,
    require_feature,
)
from .models import BillingAuditLog, Employee, Tenant, User
from .schemas import (
    AuthResponse,
    BillingAuditOut,
    EmployeeCreateRequest,
    EmployeeListOut,
    EmployeeOut,
    RegisterRequest,
    TenantOut,
    TierChangeRequest,
    UserCreateRequest,
    UserOut,
)
from .security import issue_token
from .storage import AccessStore

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
DEFAULT_SUBSCRIPTION_TIER = parse_tier(os.getenv("DEFAULT_SUBSCRIPTION_TIER", SubscriptionTier.TIER1.value))


@dataclass
class RequestContext:
    user: User
    tenant: Tenant


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="HR Performance API",
    description="Multi-tenant performance management with subscription-tier feature gating.",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_exception_handler(ApiError, api_error_handler)


def validate_email(email: str) -> None:
    if not EMAIL_REGEX.match(email):
        raise ApiError(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "INVALID_EMAIL",
            "Invalid email format.",
        )


def get_current_user(
    user_id: int = Depends(require_authenticated),
    db: Session = Depends(get_db),
) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise ApiError(
            status.HTTP_401_UNAUTHORIZED,
            "AUTHENTICATION_REQUIRED",
            "Token user not found.",
        )
    return user


def get_tenant_context(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> RequestContext:
    tenant = db.get(Tenant, user.tenant_id) if user.tenant_id is not None else None
    if tenant is None:
        raise NotFoundError("User or tenant not found.")
    return RequestContext(user=user, tenant=tenant)


def require_tenant_admin(context: RequestContext = Depends(get_tenant_context)) -> RequestContext:
    if context.user.role not in {UserRole.TENANT_ADMIN.value, UserRole.PLATFORM_ADMIN.value}:
        raise RoleRequiredError("TENANT_ADMIN_REQUIRED", "Tenant administrator role required.")
    return context


def require_platform_admin(user: User = Depends(get_current_user)) -> User:
    if user.role != UserRole.PLATFORM_ADMIN.value:
        raise RoleRequiredError("PLATFORM_ADMIN_REQUIRED", "Platform administrator role required.")
    return user


@app.get("/health")
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/auth/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> AuthResponse:
    validate_email(payload.email)
    existing_tenant = db.scalar(select(Tenant).where(Tenant.slug == payload.tenant_slug))
    if existing_tenant:
        raise ConflictError("Tenant slug already exists.")

    tenant = Tenant(
        name=payload.tenant_name.strip(),
        slug=payload.tenant_slug.strip(),
        subscription_tier=DEFAULT_SUBSCRIPTION_TIER.value,
        max_employees=get_seat_limit(DEFAULT_SUBSCRIPTION_TIER),
    )
    user = User(
        tenant=tenant,
        email=payload.email.strip().lower(),
        full_name=payload.full_name.strip(),
        role=UserRole.TENANT_ADMIN.value,
    )
    db.add_all([tenant, user])
    try:
        db.flush()
        access_token = issue_token(db, user.id)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Unable to register tenant with provided data.") from None

    db.refresh(tenant)
    db.refresh(user)
    logger.info("Tenant registered", extra={"tenant_id": tenant.id, "tier": tenant.subscription_tier})

    return AuthResponse(
        access_token=access_token,
        token_type="bearer",
        tenant=TenantOut.model_validate(tenant),
        user=UserOut.model_validate(user),
    )


@app.get("/subscription/tiers")
def get_tier_catalog() -> dict[str, list[dict]]:
    return {"tiers": list_tier_catalog()}


@app.get("/subscription/tier-info")
def get_tier_info(
    context: RequestContext = Depends(get_tenant_context),
    tier_info: TierInfo | None = Depends(attach_tier_info),
) -> dict:
    tier = parse_tier(context.tenant.subscription_tier)
    features = get_tier_features(tier)
    display = get_tier_display_info(tier)
    max_employees = tier_info.max_employees if tier_info else effective_seat_limit(context.tenant)
    return {
        "tier": tier.value,
        "displayName": display.display_name,
        "pricing": {"monthly": display.monthly_price, "yearly": display.yearly_price},
        "features": {
            **{feature.value: enabled for feature, enabled in features.flags.items()},
            "maxEmployees": features.max_employees,
            "supportLevel": features.support_level.value,
        },
        "enabledFeatures": [feature.value for feature in features.enabled()],
        "maxEmployees": max_employees,
        "unlimitedSeats": is_unlimited(max_employees),
    }


@app.get("/features/{feature_key}")
def get_feature_access(
    feature_key: str,
    request: Request,
    _: int = Depends(require_authenticated),
    store: AccessStore = Depends(get_access_store),
) -> dict:
    if not is_valid_feature(feature_key):
        raise ApiError(status.HTTP_404_NOT_FOUND, "UNKNOWN_FEATURE", "Unknown feature.")

    decision = check_feature_access(request, feature_key, store)
    return {"feature": feature_key, **decision.to_dict()}


@app.get("/tenants/me", response_model=TenantOut)
def get_my_tenant(context: RequestContext = Depends(get_tenant_context)) -> Tenant:
    return context.tenant


@app.get("/tenants/me/users", response_model=list[UserOut])
def list_my_users(
    context: RequestContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> list[User]:
    return list(db.scalars(select(User).where(User.tenant_id == context.tenant.id).order_by(User.id)).all())


@app.post("/tenants/me/users", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_tenant_user(
    payload: UserCreateRequest,
    context: RequestContext = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
) -> User:
    validate_email(payload.email)
    user = User(
        tenant_id=context.tenant.id,
        email=payload.email.strip().lower(),
        full_name=payload.full_name.strip(),
        role=payload.role,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ConflictError("User already exists.") from None
    db.refresh(user)
    return user


@app.get(
    "/tenants/me/employees",
    response_model=EmployeeListOut,
    dependencies=[Depends(require_feature(Feature.BASIC_EMPLOYEE_MANAGEMENT))],
)
def list_employees(
    context: RequestContext = Depends(get_tenant_context),
    tier_info: TierInfo | None = Depends(attach_tier_info),
    db: Session = Depends(get_db),
) -> EmployeeListOut:
    employees = db.scalars(
        select(Employee).where(Employee.tenant_id == context.tenant.id).order_by(Employee.id)
    ).all()
    return EmployeeListOut(
        employees=[EmployeeOut.model_validate(employee) for employee in employees],
        seats_used=len(employees),
        max_employees=tier_info.max_employees if tier_info else effective_seat_limit(context.tenant),
    )


@app.post(
    "/tenants/me/employees",
    response_model=EmployeeOut,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_feature(Feature.BASIC_EMPLOYEE_MANAGEMENT))],
)
def create_employee(
    payload: EmployeeCreateRequest,
    context: RequestContext = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
) -> Employee:
    validate_email(payload.email)
    current_tier = context.tenant.subscription_tier
    try:
        employee = create_employee_with_limit_check(
            db,
            context.tenant,
            full_name=payload.full_name.strip(),
            email=payload.email.strip().lower(),
            employee_number=payload.employee_number,
            user_id=payload.user_id,
        )
        db.commit()
    except EmployeeLimitReached as exc:
        db.rollback()
        raise ApiError(
            status.HTTP_403_FORBIDDEN,
            "EMPLOYEE_LIMIT_REACHED",
            str(exc),
            maxEmployees=exc.limit,
            currentTier=current_tier,
            upgradeRequired=True,
        ) from None
    except InvalidEmployeeReference as exc:
        db.rollback()
        raise ApiError(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "INVALID_REFERENCE",
            str(exc),
            userId=exc.user_id,
        ) from None
    except IntegrityError:
        db.rollback()
        raise ConflictError("Employee already exists in this tenant.") from None
    db.refresh(employee)
    return employee


@app.get("/reports/advanced")
def advanced_analytics_report(
    _: AccessDecision = Depends(require_feature(Feature.ADVANCED_ANALYTICS)),
    context: RequestContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> dict:
    seats_used = count_employees(db, context.tenant.id)
    limit = effective_seat_limit(context.tenant)
    return {
        "kpis": {
            "headcount": seats_used,
            "seat_limit": limit,
            "seat_utilization": round(seats_used / limit, 3) if limit else None,
        }
    }


@app.get("/reports/custom")
def custom_report(
    _: AccessDecision = Depends(require_feature(Feature.CUSTOM_REPORTS)),
    group_by: str = Query(default="status", pattern="^(status|email_domain)$"),
    context: RequestContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> dict:
    employees = db.scalars(select(Employee).where(Employee.tenant_id == context.tenant.id)).all()
    if group_by == "status":
        buckets = Counter(employee.status for employee in employees)
    else:
        buckets = Counter(employee.email.rsplit("@", 1)[-1] for employee in employees)
    return {"group_by": group_by, "rows": [{"key": key, "count": count} for key, count in sorted(buckets.items())]}


@app.get("/reports/export")
def export_employees(
    _: AccessDecision = Depends(require_feature(Feature.DATA_EXPORT)),
    context: RequestContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
) -> dict:
    employees = db.scalars(
        select(Employee).where(Employee.tenant_id == context.tenant.id).order_by(Employee.id)
    ).all()
    return {
        "tenant": context.tenant.slug,
        "rows": [EmployeeOut.model_validate(employee).model_dump(mode="json") for employee in employees],
    }


@app.patch("/platform/tenants/{tenant_id}/tier", response_model=TenantOut)
def update_tenant_tier(
    tenant_id: int,
    payload: TierChangeRequest,
    operator: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
) -> Tenant:
    if not is_valid_tier(payload.tier):
        raise ApiError(
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "INVALID_TIER",
            f"Unknown subscription tier '{payload.tier}'.",
        )
    tenant = db.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant not found.")

    change_tenant_tier(
        db,
        tenant,
        payload.tier,
        operator.id,
        override_seat_limit="max_employees" in payload.model_fields_set,
        max_employees=payload.max_employees,
    )
    db.commit()
    db.refresh(tenant)
    return tenant


@app.get("/platform/billing-audit", response_model=list[BillingAuditOut])
def list_billing_audit(
    tenant_id: int | None = None,
    limit: int = Query(default=100, ge=1, le=500),
    _: User = Depends(require_platform_admin),
    db: Session = Depends(get_db),
) -> list[BillingAuditLog]:
    query = select(BillingAuditLog)
    if tenant_id is not None:
        query = query.where(BillingAuditLog.tenant_id == tenant_id)
    return list(db.scalars(query.order_by(BillingAuditLog.id.desc()).limit(limit)).all())
