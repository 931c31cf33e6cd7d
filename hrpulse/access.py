"""Tier-based access decisions for authenticated users.

``check_access`` is the security boundary: it never raises, and any failure
to resolve the user, the tenant or the tier is reported as a denial.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

from .constants import Feature, SubscriptionTier, UserRole, has_feature, parse_feature, parse_tier
from .storage import AccessStore

logger = logging.getLogger(__name__)

REASON_NOT_FOUND: Final[str] = "user or tenant not found"
REASON_TENANT_NOT_FOUND: Final[str] = "tenant not found"
REASON_VALIDATION_FAILED: Final[str] = "feature validation failed"
REASON_AUTHENTICATION_REQUIRED: Final[str] = "authentication required"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str | None = None
    tier: SubscriptionTier | None = None

    @classmethod
    def deny(cls, reason: str, tier: SubscriptionTier | None = None) -> "AccessDecision":
        return cls(allowed=False, reason=reason, tier=tier)

    @property
    def failed(self) -> bool:
        """True when the guard could not reach a decision at all."""
        return not self.allowed and self.reason == REASON_VALIDATION_FAILED

    def to_dict(self) -> dict:
        payload: dict = {"allowed": self.allowed}
        if self.reason is not None:
            payload["reason"] = self.reason
        if self.tier is not None:
            payload["tier"] = self.tier.value
        return payload


def feature_unavailable_reason(feature: Feature, tier: SubscriptionTier) -> str:
    return f"feature '{feature.value}' not available in '{tier.value}' tier"


def check_access(store: AccessStore, user_id: int, feature: Feature | str) -> AccessDecision:
    """Decide whether ``user_id`` may use ``feature`` under its tenant's tier.

    Every call reads the user and tenant again, so a tier change applies to
    the next request.
    """
    try:
        feature = parse_feature(feature)
        user = store.get_user(user_id)
        if user is None:
            return AccessDecision.deny(REASON_NOT_FOUND)

        if user.role == UserRole.PLATFORM_ADMIN.value:
            return AccessDecision(allowed=True)

        if user.tenant_id is None:
            return AccessDecision.deny(REASON_NOT_FOUND)

        tenant = store.get_tenant(user.tenant_id)
        if tenant is None:
            return AccessDecision.deny(REASON_TENANT_NOT_FOUND)

        tier = parse_tier(tenant.subscription_tier)
        if has_feature(tier, feature):
            return AccessDecision(allowed=True, tier=tier)

        logger.info(
            "Feature denied by tier",
            extra={"user_id": user_id, "tenant_id": tenant.id, "feature": feature.value, "tier": tier.value},
        )
        return AccessDecision.deny(feature_unavailable_reason(feature, tier), tier=tier)
    except Exception:
        logger.exception(
            "Feature access validation failed",
            extra={"user_id": user_id, "feature": getattr(feature, "value", feature)},
        )
        return AccessDecision.deny(REASON_VALIDATION_FAILED)
