"""FastAPI adapters that turn access decisions into HTTP responses.

This module is the only place that maps a decision to a status code:

- 401 ``AUTHENTICATION_REQUIRED`` when the request carries no identity
- 403 ``FEATURE_NOT_AVAILABLE`` when the tenant's tier lacks the feature
- 500 ``FEATURE_VALIDATION_ERROR`` when no decision could be reached
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, Request, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from .access import REASON_AUTHENTICATION_REQUIRED, AccessDecision, check_access
from .constants import Feature, SubscriptionTier, normalize_seat_limit, parse_feature, parse_tier
from .db import get_db
from .errors import ApiError
from .security import bearer_scheme, resolve_identity
from .storage import AccessStore, SqlAlchemyAccessStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TierInfo:
    tier: SubscriptionTier
    max_employees: int | None


def get_access_store(db: Session = Depends(get_db)) -> AccessStore:
    return SqlAlchemyAccessStore(db)


def _authentication_required() -> ApiError:
    return ApiError(
        status.HTTP_401_UNAUTHORIZED,
        "AUTHENTICATION_REQUIRED",
        "Authentication required",
    )


def require_authenticated(user_id: int | None = Depends(resolve_identity)) -> int:
    if user_id is None:
        raise _authentication_required()
    return user_id


def _validation_error() -> ApiError:
    return ApiError(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "FEATURE_VALIDATION_ERROR",
        "Failed to validate feature access",
    )


def require_feature(feature: Feature | str) -> Callable[..., AccessDecision]:
    """Build a route dependency that blocks callers whose tier lacks ``feature``.

    Use as ``dependencies=[Depends(require_feature(Feature.CUSTOM_REPORTS))]``
    or as a parameter to receive the :class:`AccessDecision`. The route body
    only runs when access is granted.
    """
    feature = parse_feature(feature)

    def _guard(
        request: Request,
        credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
        db: Session = Depends(get_db),
        store: AccessStore = Depends(get_access_store),
    ) -> AccessDecision:
        try:
            user_id = resolve_identity(request, credentials, db)
        except Exception:
            logger.exception("Identity lookup failed", extra={"feature": feature.value})
            raise _validation_error() from None
        if user_id is None:
            raise _authentication_required()

        decision = check_access(store, user_id, feature)
        if decision.failed:
            raise _validation_error()
        if not decision.allowed:
            raise ApiError(
                status.HTTP_403_FORBIDDEN,
                "FEATURE_NOT_AVAILABLE",
                decision.reason or "Feature not available in your subscription tier",
                feature=feature.value,
                currentTier=decision.tier.value if decision.tier else None,
                upgradeRequired=True,
            )
        return decision

    return _guard


def check_feature_access(request: Request, feature: Feature | str, store: AccessStore) -> AccessDecision:
    """Decide access inside a route handler without rejecting the request."""
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        return AccessDecision.deny(REASON_AUTHENTICATION_REQUIRED)
    return check_access(store, user_id, feature)


def attach_tier_info(
    request: Request,
    user_id: int | None = Depends(resolve_identity),
    store: AccessStore = Depends(get_access_store),
) -> TierInfo | None:
    """Best-effort annotation of ``request.state.tier_info``.

    This is not an access check. Lookup failures are logged and swallowed,
    and the request proceeds with ``tier_info`` set to ``None``.
    """
    request.state.tier_info = None
    if user_id is None:
        return None

    try:
        user = store.get_user(user_id)
        if user is None or user.tenant_id is None:
            return None
        tenant = store.get_tenant(user.tenant_id)
        if tenant is None:
            return None
        info = TierInfo(
            tier=parse_tier(tenant.subscription_tier),
            max_employees=normalize_seat_limit(tenant.max_employees),
        )
    except Exception:
        logger.warning("Could not attach tier info", exc_info=True, extra={"user_id": user_id})
        return None

    request.state.tier_info = info
    return info
