"""
Domain service: cloud-filter profiles and their escalation.

Attempt 1 of a summary fetch uses a profile chosen from the field's location
and the season. Later attempts switch to more permissive profiles, and the
filters never become stricter from one attempt to the next.
"""
from datetime import date
from typing import Dict, Optional

from eos_agritech.domain.models import (
    CloudFilters,
    EosConfig,
    EosParameterProfile,
    Location,
    PolygonData,
)
from eos_agritech.utils.geo_projection import ring_centroid


EOS_PARAMETER_PROFILES: Dict[str, EosParameterProfile] = {
    "italy_summer": EosParameterProfile(
        max_cloud_cover_in_aoi=50,
        exclude_cover_pixels=False,
        cloud_masking_level=1,
        description="Italy summer - standard EOS cloud filter (50%)",
    ),
    "italy_winter": EosParameterProfile(
        max_cloud_cover_in_aoi=50,
        exclude_cover_pixels=False,
        cloud_masking_level=1,
        description="Italy winter - standard EOS cloud filter (50%)",
    ),
    "italy_moderate": EosParameterProfile(
        max_cloud_cover_in_aoi=50,
        exclude_cover_pixels=False,
        cloud_masking_level=1,
        description="Italy spring/autumn - standard EOS cloud filter (50%)",
    ),
    "europe_default": EosParameterProfile(
        max_cloud_cover_in_aoi=50,
        exclude_cover_pixels=False,
        cloud_masking_level=1,
        description="Europe standard - standard EOS cloud filter (50%)",
    ),
    "permissive": EosParameterProfile(
        max_cloud_cover_in_aoi=60,
        exclude_cover_pixels=False,
        cloud_masking_level=0,
        description="Permissive filters - fallback",
    ),
    "very_permissive": EosParameterProfile(
        max_cloud_cover_in_aoi=80,
        exclude_cover_pixels=False,
        cloud_masking_level=0,
        description="Very permissive filters - last attempt",
    ),
}

# Rough bounding box of Italy
ITALY_LAT_RANGE = (35.0, 47.5)
ITALY_LON_RANGE = (6.0, 19.0)


def is_in_italy(lon: float, lat: float) -> bool:
    return (
        ITALY_LAT_RANGE[0] <= lat <= ITALY_LAT_RANGE[1]
        and ITALY_LON_RANGE[0] <= lon <= ITALY_LON_RANGE[1]
    )


def italian_season_profile(month: int) -> str:
    """Profile name for a month: summer (6-8), winter (12-2) or moderate."""
    if 6 <= month <= 8:
        return "italy_summer"
    if month == 12 or month <= 2:
        return "italy_winter"
    return "italy_moderate"


def get_optimal_parameters(polygon: PolygonData, today: Optional[date] = None) -> EosParameterProfile:
    """
    Choose the attempt-1 profile from location and season.

    Args:
        polygon: Field boundary
        today: Reference date for the season (defaults to today)

    Returns:
        The selected profile
    """
    if not polygon.coordinates:
        return EOS_PARAMETER_PROFILES["europe_default"]

    lon, lat = ring_centroid(polygon.coordinates)
    if not is_in_italy(lon, lat):
        return EOS_PARAMETER_PROFILES["europe_default"]

    month = (today or date.today()).month
    return EOS_PARAMETER_PROFILES[italian_season_profile(month)]


def apply_optimal_parameters(
    config: EosConfig,
    polygon: PolygonData,
    today: Optional[date] = None,
) -> EosConfig:
    """
    Fill unset cloud filters of a config from the optimal profile.

    Filters set explicitly by the user are kept. The field centroid is
    recorded as the config location.
    """
    optimal = get_optimal_parameters(polygon, today)
    updates = {
        "max_cloud_cover_in_aoi": (
            config.max_cloud_cover_in_aoi
            if config.max_cloud_cover_in_aoi is not None
            else optimal.max_cloud_cover_in_aoi
        ),
        "exclude_cover_pixels": (
            config.exclude_cover_pixels
            if config.exclude_cover_pixels is not None
            else optimal.exclude_cover_pixels
        ),
        "cloud_masking_level": (
            config.cloud_masking_level
            if config.cloud_masking_level is not None
            else optimal.cloud_masking_level
        ),
        "location": None,
    }
    if polygon.coordinates:
        lon, lat = ring_centroid(polygon.coordinates)
        updates["location"] = Location(lat=lat, lng=lon)
    return config.model_copy(update=updates)


def filters_from_config(config: EosConfig) -> CloudFilters:
    """Cloud filters of a config whose filters have been filled in."""
    optimal = EOS_PARAMETER_PROFILES["europe_default"]
    return CloudFilters(
        max_cloud_cover_in_aoi=(
            config.max_cloud_cover_in_aoi
            if config.max_cloud_cover_in_aoi is not None
            else optimal.max_cloud_cover_in_aoi
        ),
        exclude_cover_pixels=(
            config.exclude_cover_pixels
            if config.exclude_cover_pixels is not None
            else optimal.exclude_cover_pixels
        ),
        cloud_masking_level=(
            config.cloud_masking_level
            if config.cloud_masking_level is not None
            else optimal.cloud_masking_level
        ),
    )


def profile_for_attempt(attempt: int) -> Optional[str]:
    """
    Escalation profile used on an attempt.

    Returns:
        None for attempt 1 (optimised filters), "permissive" for attempt 2,
        "very_permissive" from attempt 3 on
    """
    if attempt <= 1:
        return None
    if attempt == 2:
        return "permissive"
    return "very_permissive"


def escalate_filters(previous: CloudFilters, profile: CloudFilters) -> CloudFilters:
    """
    Combine the previous filters with an escalation profile.

    The result is never stricter than ``previous``: cloud tolerance takes the
    larger value, masking the lighter level, and cloudy pixels stay excluded
    only when both sides exclude them.
    """
    return CloudFilters(
        max_cloud_cover_in_aoi=max(previous.max_cloud_cover_in_aoi, profile.max_cloud_cover_in_aoi),
        exclude_cover_pixels=previous.exclude_cover_pixels and profile.exclude_cover_pixels,
        cloud_masking_level=min(previous.cloud_masking_level, profile.cloud_masking_level),
    )
