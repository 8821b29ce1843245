"""
Unit tests for cloud-filter profiles and escalation.
"""
from datetime import date

import pytest

from eos_agritech.domain.models import CloudFilters, EosConfig, PolygonData
from eos_agritech.services.domain.parameter_profiles import (
    EOS_PARAMETER_PROFILES,
    apply_optimal_parameters,
    escalate_filters,
    filters_from_config,
    get_optimal_parameters,
    is_in_italy,
    italian_season_profile,
    profile_for_attempt,
)


class TestOptimalParameters:
    """Tests for attempt-1 profile selection."""

    @pytest.mark.parametrize("month,profile", [
        (7, "italy_summer"),
        (1, "italy_winter"),
        (12, "italy_winter"),
        (4, "italy_moderate"),
        (10, "italy_moderate"),
    ])
    def test_italian_seasons(self, month, profile):
        assert italian_season_profile(month) == profile

    def test_italy_bounding_box(self):
        assert is_in_italy(12.49, 41.89)
        assert not is_in_italy(1.5, 48.3)

    def test_italian_field_in_summer(self, sample_polygon):
        profile = get_optimal_parameters(sample_polygon, date(2024, 7, 1))

        assert profile.description.startswith("Italy summer")

    def test_field_outside_italy(self, french_polygon):
        profile = get_optimal_parameters(french_polygon, date(2024, 7, 1))

        assert profile == EOS_PARAMETER_PROFILES["europe_default"]

    def test_empty_polygon(self):
        assert get_optimal_parameters(PolygonData()) == EOS_PARAMETER_PROFILES["europe_default"]

    def test_apply_keeps_user_filters(self, sample_polygon, today):
        config = EosConfig(max_cloud_cover_in_aoi=20)

        applied = apply_optimal_parameters(config, sample_polygon, today)

        assert applied.max_cloud_cover_in_aoi == 20
        assert applied.exclude_cover_pixels is False
        assert applied.cloud_masking_level == 1
        assert applied.location.lat == pytest.approx(41.892)
        assert applied.location.lng == pytest.approx(12.4925)

    def test_filters_from_unset_config(self):
        filters = filters_from_config(EosConfig())

        assert filters.max_cloud_cover_in_aoi == 50


class TestEscalation:
    """Tests for filter escalation."""

    def test_profile_sequence(self):
        assert [profile_for_attempt(n) for n in range(1, 5)] == [
            None, "permissive", "very_permissive", "very_permissive",
        ]

    def test_cloud_tolerance_widens_across_attempts(self):
        filters = EOS_PARAMETER_PROFILES["italy_moderate"]
        clouds = [filters.max_cloud_cover_in_aoi]
        for attempt in range(2, 5):
            profile = EOS_PARAMETER_PROFILES[profile_for_attempt(attempt)]
            filters = escalate_filters(filters, profile)
            clouds.append(filters.max_cloud_cover_in_aoi)

        assert clouds == [50, 60, 80, 80]
        assert all(later >= earlier for earlier, later in zip(clouds, clouds[1:]))

    def test_escalation_is_never_stricter(self):
        previous = CloudFilters(max_cloud_cover_in_aoi=70, exclude_cover_pixels=True, cloud_masking_level=2)
        profile = CloudFilters(max_cloud_cover_in_aoi=60, exclude_cover_pixels=False, cloud_masking_level=0)

        escalated = escalate_filters(previous, profile)

        assert escalated.max_cloud_cover_in_aoi == 70
        assert escalated.exclude_cover_pixels is False
        assert escalated.cloud_masking_level == 0

    def test_pixel_exclusion_kept_only_when_both_exclude(self):
        both = CloudFilters(max_cloud_cover_in_aoi=50, exclude_cover_pixels=True, cloud_masking_level=1)

        assert escalate_filters(both, both).exclude_cover_pixels is True
