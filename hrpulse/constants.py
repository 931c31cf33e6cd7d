"""Subscription tiers, feature flags and the per-tier feature matrix.

The matrix is built once at import time and exposed read-only through the
accessor functions below. Import fails if any tier is missing a feature set
or display entry.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Final, Mapping


class SubscriptionTier(str, Enum):
    FREE_VIP = "free_vip"
    TIER1 = "tier1"
    TIER2 = "tier2"
    TIER3 = "tier3"
    TIER4 = "tier4"
    TIER5 = "tier5"
    LIFETIME_DEAL = "lifetime_deal"
    PLATFORM_INTERNAL = "platform_internal"
    CUSTOM_ENTERPRISE = "custom_enterprise"


class Feature(str, Enum):
    """Boolean feature flags. Values are the names used on the wire."""

    # Core
    BASIC_EMPLOYEE_MANAGEMENT = "basicEmployeeManagement"
    BASIC_DASHBOARD = "basicDashboard"
    EMPLOYEE_PROFILES = "employeeProfiles"

    # Employee management
    BULK_EMPLOYEE_OPERATIONS = "bulkEmployeeOperations"
    ADVANCED_EMPLOYEE_SEARCH = "advancedEmployeeSearch"
    DEPARTMENT_MANAGEMENT = "departmentManagement"
    JOB_POSITION_MANAGEMENT = "jobPositionManagement"
    EMPLOYEE_HIERARCHY = "employeeHierarchy"

    # Performance & reviews
    PERFORMANCE_REVIEWS = "performanceReviews"
    ADVANCED_PERFORMANCE_METRICS = "advancedPerformanceMetrics"
    CUSTOM_PERFORMANCE_CRITERIA = "customPerformanceCriteria"

    # Feedback
    BASIC_FEEDBACK = "basicFeedback"
    QR_CODE_FEEDBACK = "qrCodeFeedback"
    ADVANCED_FEEDBACK_ANALYTICS = "advancedFeedbackAnalytics"
    REAL_TIME_FEEDBACK_ALERTS = "realTimeFeedbackAlerts"

    # Goals & development
    GOAL_TRACKING = "goalTracking"
    ADVANCED_GOAL_ANALYTICS = "advancedGoalAnalytics"
    PERSONAL_DEVELOPMENT_PLANS = "personalDevelopmentPlans"

    # Analytics & reporting
    BASIC_REPORTING = "basicReporting"
    ADVANCED_ANALYTICS = "advancedAnalytics"
    CUSTOM_REPORTS = "customReports"
    DATA_EXPORT = "dataExport"

    # Collaboration
    TEAM_COLLABORATION = "teamCollaboration"
    CROSS_DEPARTMENT_VISIBILITY = "crossDepartmentVisibility"

    # Integration & API
    API_ACCESS = "apiAccess"
    WEBHOOKS = "webhooks"
    SSO_INTEGRATION = "ssoIntegration"


class SupportLevel(str, Enum):
    EMAIL = "email"
    PRIORITY = "priority"
    DEDICATED = "dedicated"


class UserRole(str, Enum):
    PLATFORM_ADMIN = "platform_admin"
    TENANT_ADMIN = "tenant_admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class UnknownTierError(LookupError):
    def __init__(self, tier: object) -> None:
        super().__init__(f"unknown subscription tier: {tier!r}")
        self.tier = tier


class UnknownFeatureError(LookupError):
    def __init__(self, feature: object) -> None:
        super().__init__(f"unknown feature: {feature!r}")
        self.feature = feature


# Legacy seat-limit rows store -1 for unlimited; None is written everywhere else.
LEGACY_UNLIMITED_SEATS: Final[int] = -1


@dataclass(frozen=True)
class TierFeatureSet:
    flags: Mapping[Feature, bool]
    max_employees: int | None
    support_level: SupportLevel

    def enabled(self) -> list[Feature]:
        return [feature for feature in Feature if self.flags[feature]]


@dataclass(frozen=True)
class TierDisplayInfo:
    display_name: str
    monthly_price: int
    yearly_price: int
    description: str
    highlights: tuple[str, ...]
    sort_order: int
    is_public: bool = True


def _feature_set(
    enabled: frozenset[Feature],
    max_employees: int | None,
    support_level: SupportLevel,
) -> TierFeatureSet:
    flags = {feature: feature in enabled for feature in Feature}
    return TierFeatureSet(
        flags=MappingProxyType(flags),
        max_employees=max_employees,
        support_level=support_level,
    )


_FREE_VIP: Final = frozenset(
    {
        Feature.BASIC_EMPLOYEE_MANAGEMENT,
        Feature.BASIC_DASHBOARD,
        Feature.EMPLOYEE_PROFILES,
        Feature.PERFORMANCE_REVIEWS,
        Feature.BASIC_FEEDBACK,
        Feature.QR_CODE_FEEDBACK,
        Feature.GOAL_TRACKING,
        Feature.BASIC_REPORTING,
    }
)
_TIER1: Final = _FREE_VIP | {
    Feature.BULK_EMPLOYEE_OPERATIONS,
    Feature.ADVANCED_EMPLOYEE_SEARCH,
    Feature.DEPARTMENT_MANAGEMENT,
    Feature.JOB_POSITION_MANAGEMENT,
    Feature.EMPLOYEE_HIERARCHY,
    Feature.ADVANCED_FEEDBACK_ANALYTICS,
    Feature.REAL_TIME_FEEDBACK_ALERTS,
    Feature.ADVANCED_GOAL_ANALYTICS,
    Feature.ADVANCED_ANALYTICS,
    Feature.TEAM_COLLABORATION,
}
_TIER2: Final = _TIER1 | {
    Feature.ADVANCED_PERFORMANCE_METRICS,
    Feature.PERSONAL_DEVELOPMENT_PLANS,
    Feature.DATA_EXPORT,
    Feature.CROSS_DEPARTMENT_VISIBILITY,
}
_TIER3: Final = _TIER2 | {
    Feature.CUSTOM_PERFORMANCE_CRITERIA,
    Feature.CUSTOM_REPORTS,
    Feature.API_ACCESS,
}
_TIER4: Final = _TIER3 | {
    Feature.WEBHOOKS,
    Feature.SSO_INTEGRATION,
}
_EVERYTHING: Final = frozenset(Feature)
# Lifetime deal buyers get tier1 plus review metrics, without live alerts.
_LIFETIME_DEAL: Final = (_TIER1 | {Feature.ADVANCED_PERFORMANCE_METRICS}) - {
    Feature.REAL_TIME_FEEDBACK_ALERTS
}


_TIER_FEATURES: Final[Mapping[SubscriptionTier, TierFeatureSet]] = MappingProxyType(
    {
        SubscriptionTier.FREE_VIP: _feature_set(_FREE_VIP, 10, SupportLevel.EMAIL),
        SubscriptionTier.TIER1: _feature_set(_TIER1, 25, SupportLevel.EMAIL),
        SubscriptionTier.TIER2: _feature_set(_TIER2, 50, SupportLevel.EMAIL),
        SubscriptionTier.TIER3: _feature_set(_TIER3, 100, SupportLevel.PRIORITY),
        SubscriptionTier.TIER4: _feature_set(_TIER4, 500, SupportLevel.PRIORITY),
        SubscriptionTier.TIER5: _feature_set(_EVERYTHING, None, SupportLevel.DEDICATED),
        SubscriptionTier.LIFETIME_DEAL: _feature_set(_LIFETIME_DEAL, 50, SupportLevel.EMAIL),
        SubscriptionTier.PLATFORM_INTERNAL: _feature_set(_EVERYTHING, None, SupportLevel.DEDICATED),
        SubscriptionTier.CUSTOM_ENTERPRISE: _feature_set(_EVERYTHING, None, SupportLevel.DEDICATED),
    }
)

_TIER_DISPLAY: Final[Mapping[SubscriptionTier, TierDisplayInfo]] = MappingProxyType(
    {
        SubscriptionTier.FREE_VIP: TierDisplayInfo(
            display_name="Free VIP",
            monthly_price=0,
            yearly_price=0,
            description="Complimentary plan for invited teams getting started with performance management",
            highlights=(
                "Basic performance reviews",
                "Simple goal tracking",
                "Shareable feedback links and QR codes",
                "Basic reporting",
                "Up to 10 team members",
            ),
            sort_order=0,
        ),
        SubscriptionTier.TIER1: TierDisplayInfo(
            display_name="Forming",
            monthly_price=2499,
            yearly_price=24999,
            description="For growing teams establishing their performance culture",
            highlights=(
                "Comprehensive performance reviews",
                "Advanced goal management",
                "360-degree feedback",
                "Team analytics",
                "Up to 25 team members",
            ),
            sort_order=1,
        ),
        SubscriptionTier.TIER2: TierDisplayInfo(
            display_name="Storming",
            monthly_price=3499,
            yearly_price=34999,
            description="For teams navigating growth and putting processes in place",
            highlights=(
                "All Forming features",
                "Performance metrics and development plans",
                "Cross-department visibility",
                "Data export",
                "Up to 50 team members",
            ),
            sort_order=2,
        ),
        SubscriptionTier.TIER3: TierDisplayInfo(
            display_name="Norming",
            monthly_price=4999,
            yearly_price=49999,
            description="For established teams optimizing how they review performance",
            highlights=(
                "All Storming features",
                "Custom reports and review criteria",
                "API access",
                "Priority support",
                "Up to 100 team members",
            ),
            sort_order=3,
        ),
        SubscriptionTier.TIER4: TierDisplayInfo(
            display_name="Performing",
            monthly_price=9999,
            yearly_price=99999,
            description="For mid-size companies running performance management at scale",
            highlights=(
                "All Norming features",
                "Webhooks",
                "Single sign-on",
                "Up to 500 team members",
            ),
            sort_order=4,
        ),
        SubscriptionTier.TIER5: TierDisplayInfo(
            display_name="Transforming",
            monthly_price=19999,
            yearly_price=199999,
            description="Enterprise-grade plan for high-performing organizations",
            highlights=(
                "All Performing features",
                "Unlimited team members",
                "Dedicated support",
            ),
            sort_order=5,
        ),
        SubscriptionTier.LIFETIME_DEAL: TierDisplayInfo(
            display_name="Lifetime Deal",
            monthly_price=0,
            yearly_price=0,
            description="One-time purchase with lifetime access",
            highlights=(
                "Lifetime access",
                "Performance reviews and metrics",
                "Goal management",
                "Team analytics",
                "Up to 50 team members",
            ),
            sort_order=6,
        ),
        SubscriptionTier.PLATFORM_INTERNAL: TierDisplayInfo(
            display_name="Platform Internal",
            monthly_price=0,
            yearly_price=0,
            description="Internal tenant used by platform operators",
            highlights=("All features",),
            sort_order=7,
            is_public=False,
        ),
        SubscriptionTier.CUSTOM_ENTERPRISE: TierDisplayInfo(
            display_name="Custom Enterprise",
            monthly_price=0,
            yearly_price=0,
            description="Contract pricing for large organizations",
            highlights=(
                "All features",
                "Unlimited team members",
                "Dedicated support",
                "Custom contract terms",
            ),
            sort_order=8,
        ),
    }
)


def _verify_matrix() -> None:
    for tier in SubscriptionTier:
        if tier not in _TIER_FEATURES:
            raise RuntimeError(f"tier {tier.value!r} has no feature set")
        if tier not in _TIER_DISPLAY:
            raise RuntimeError(f"tier {tier.value!r} has no display info")
        missing = set(Feature) - set(_TIER_FEATURES[tier].flags)
        if missing:
            names = ", ".join(sorted(feature.value for feature in missing))
            raise RuntimeError(f"tier {tier.value!r} is missing features: {names}")


_verify_matrix()


def parse_tier(tier: SubscriptionTier | str) -> SubscriptionTier:
    try:
        return SubscriptionTier(tier)
    except ValueError:
        raise UnknownTierError(tier) from None


def parse_feature(feature: Feature | str) -> Feature:
    try:
        return Feature(feature)
    except ValueError:
        raise UnknownFeatureError(feature) from None


def is_valid_tier(tier: str) -> bool:
    return tier in {member.value for member in SubscriptionTier}


def is_valid_feature(feature: str) -> bool:
    return feature in {member.value for member in Feature}


def get_tier_features(tier: SubscriptionTier | str) -> TierFeatureSet:
    return _TIER_FEATURES[parse_tier(tier)]


def has_feature(tier: SubscriptionTier | str, feature: Feature | str) -> bool:
    """Return whether ``tier`` includes the boolean ``feature``.

    Seat limits are not features; use :func:`get_seat_limit` for those.
    """
    return get_tier_features(tier).flags[parse_feature(feature)]


def get_seat_limit(tier: SubscriptionTier | str) -> int | None:
    """Seat limit for ``tier``; ``None`` means unlimited."""
    return get_tier_features(tier).max_employees


def get_tier_display_info(tier: SubscriptionTier | str) -> TierDisplayInfo:
    return _TIER_DISPLAY[parse_tier(tier)]


def normalize_seat_limit(limit: int | None) -> int | None:
    """Fold both unlimited sentinels (``None`` and ``-1``) into ``None``."""
    if limit is None or limit == LEGACY_UNLIMITED_SEATS:
        return None
    if limit < 0:
        raise ValueError(f"invalid seat limit: {limit}")
    return limit


def is_unlimited(limit: int | None) -> bool:
    return normalize_seat_limit(limit) is None


def tier_catalog_entry(tier: SubscriptionTier | str) -> dict:
    tier = parse_tier(tier)
    features = get_tier_features(tier)
    display = get_tier_display_info(tier)
    return {
        "id": tier.value,
        "displayName": display.display_name,
        "description": display.description,
        "monthlyPrice": display.monthly_price,
        "yearlyPrice": display.yearly_price,
        "maxSeats": features.max_employees,
        "supportLevel": features.support_level.value,
        "features": list(display.highlights),
    }


def list_tier_catalog(include_private: bool = False) -> list[dict]:
    tiers = sorted(SubscriptionTier, key=lambda tier: _TIER_DISPLAY[tier].sort_order)
    return [
        tier_catalog_entry(tier)
        for tier in tiers
        if include_private or _TIER_DISPLAY[tier].is_public
    ]
