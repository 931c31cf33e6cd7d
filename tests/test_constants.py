from __future__ import annotations

import pytest

from hrpulse.constants import (
    Feature,
    SubscriptionTier,
    SupportLevel,
    UnknownFeatureError,
    UnknownTierError,
    get_seat_limit,
    get_tier_display_info,
    get_tier_features,
    has_feature,
    is_unlimited,
    is_valid_feature,
    is_valid_tier,
    list_tier_catalog,
    normalize_seat_limit,
)


@pytest.mark.parametrize("tier", list(SubscriptionTier))
def test_every_tier_has_a_complete_feature_set(tier: SubscriptionTier) -> None:
    features = get_tier_features(tier)

    assert set(features.flags) == set(Feature)
    assert all(isinstance(enabled, bool) for enabled in features.flags.values())
    assert isinstance(features.support_level, SupportLevel)
    assert get_tier_display_info(tier).display_name


def test_lookups_accept_wire_strings() -> None:
    assert get_tier_features("tier3") is get_tier_features(SubscriptionTier.TIER3)
    assert has_feature("tier3", "apiAccess") is True
    assert has_feature(SubscriptionTier.TIER1, Feature.API_ACCESS) is False


def test_unknown_tier_and_feature_raise() -> None:
    with pytest.raises(UnknownTierError):
        get_tier_features("gold")
    with pytest.raises(UnknownFeatureError):
        has_feature(SubscriptionTier.TIER1, "apiAcess")
    # Seat limits are not boolean features.
    with pytest.raises(UnknownFeatureError):
        has_feature(SubscriptionTier.TIER1, "maxEmployees")


def test_feature_matrix_is_read_only() -> None:
    features = get_tier_features(SubscriptionTier.TIER1)
    with pytest.raises(TypeError):
        features.flags[Feature.API_ACCESS] = True  # type: ignore[index]
    assert has_feature(SubscriptionTier.TIER1, Feature.API_ACCESS) is False


def test_tier_entitlements() -> None:
    assert has_feature(SubscriptionTier.TIER1, Feature.BASIC_FEEDBACK)
    assert not has_feature(SubscriptionTier.TIER1, Feature.API_ACCESS)
    assert not has_feature(SubscriptionTier.TIER2, Feature.CUSTOM_REPORTS)
    assert has_feature(SubscriptionTier.TIER2, Feature.DATA_EXPORT)
    assert has_feature(SubscriptionTier.TIER3, Feature.CUSTOM_REPORTS)
    assert not has_feature(SubscriptionTier.TIER3, Feature.WEBHOOKS)
    assert has_feature(SubscriptionTier.TIER4, Feature.SSO_INTEGRATION)
    assert not has_feature(SubscriptionTier.LIFETIME_DEAL, Feature.REAL_TIME_FEEDBACK_ALERTS)
    assert has_feature(SubscriptionTier.LIFETIME_DEAL, Feature.ADVANCED_PERFORMANCE_METRICS)

    for tier in (
        SubscriptionTier.TIER5,
        SubscriptionTier.PLATFORM_INTERNAL,
        SubscriptionTier.CUSTOM_ENTERPRISE,
    ):
        assert all(has_feature(tier, feature) for feature in Feature)


def test_numbered_tiers_only_add_features() -> None:
    ladder = [
        SubscriptionTier.FREE_VIP,
        SubscriptionTier.TIER1,
        SubscriptionTier.TIER2,
        SubscriptionTier.TIER3,
        SubscriptionTier.TIER4,
        SubscriptionTier.TIER5,
    ]
    for lower, higher in zip(ladder, ladder[1:]):
        assert set(get_tier_features(lower).enabled()) <= set(get_tier_features(higher).enabled())


def test_seat_limits() -> None:
    assert get_seat_limit(SubscriptionTier.FREE_VIP) == 10
    assert get_seat_limit(SubscriptionTier.TIER1) == 25
    assert get_seat_limit(SubscriptionTier.TIER5) is None
    assert is_unlimited(get_seat_limit(SubscriptionTier.CUSTOM_ENTERPRISE))


def test_both_unlimited_sentinels_normalize_to_none() -> None:
    assert normalize_seat_limit(None) is None
    assert normalize_seat_limit(-1) is None
    assert normalize_seat_limit(0) == 0
    assert normalize_seat_limit(25) == 25
    assert is_unlimited(-1)
    with pytest.raises(ValueError):
        normalize_seat_limit(-5)


def test_validity_helpers() -> None:
    assert is_valid_tier("lifetime_deal")
    assert not is_valid_tier("appsumo")
    assert is_valid_feature("customReports")
    assert not is_valid_feature("custom_reports")


def test_public_catalog_is_ordered_and_hides_internal_tier() -> None:
    catalog = list_tier_catalog()
    ids = [entry["id"] for entry in catalog]

    assert "platform_internal" not in ids
    assert ids[:3] == ["free_vip", "tier1", "tier2"]

    tier1 = next(entry for entry in catalog if entry["id"] == "tier1")
    assert tier1["displayName"] == get_tier_display_info("tier1").display_name
    assert tier1["monthlyPrice"] == 2499
    assert tier1["maxSeats"] == 25
    assert tier1["supportLevel"] == "email"
    assert tier1["features"]

    everything = list_tier_catalog(include_private=True)
    assert len(everything) == len(SubscriptionTier)
