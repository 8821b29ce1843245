"""
Unit tests for summary building.

Tests cover:
- Merging index statistics into a series
- Nearest-value lookup and interpolation
- Trends and field average
- Phenology stage rules
- Weather risks
- Empty summaries
"""
from datetime import timedelta

import pytest

from eos_agritech.domain.models import VegetationPoint, WeatherDay
from eos_agritech.services.domain import summary_builder
from eos_agritech.services.domain.summary_builder import (
    EMPTY_RESULT_SUGGESTIONS,
    build_series,
    compute_weather_risks,
    estimate_phenology_stage,
    field_average,
    nearest_value,
    pct_change,
    vegetation_analysis,
)
from eos_agritech.services.domain.weather_analysis import aggregate_weather


def point(day: str, ndvi: float, ndmi: float = 0.3) -> VegetationPoint:
    return VegetationPoint(date=day, NDVI=ndvi, NDMI=ndmi)


# ============================================================
# Series Tests
# ============================================================

class TestBuildSeries:
    """Tests for merging per-index statistics."""

    def test_sorted_union_of_dates(self):
        series = build_series({
            "NDVI": {"2024-05-10": 0.6, "2024-05-01": 0.5},
            "NDMI": {"2024-05-05": 0.3, "2024-05-10": 0.35},
        })

        assert [p.date for p in series] == ["2024-05-01", "2024-05-05", "2024-05-10"]
        assert series[0].NDMI == 0.0
        assert series[1].NDVI == 0.0
        assert series[2].NDMI == 0.35
        assert series[0].ReCI is None

    def test_reci_only_when_requested(self):
        series = build_series({"NDVI": {"2024-05-01": 0.5}, "NDMI": {}, "RECI": {}})

        assert series[0].ReCI == 0.0

    def test_no_statistics(self):
        assert build_series({"NDVI": {}, "NDMI": {}}) == []


# ============================================================
# Lookup and Trend Tests
# ============================================================

class TestNearestValue:
    """Tests for the value some days before the last observation."""

    def test_exact_observation(self, sample_summary):
        assert nearest_value(sample_summary.ndvi_series, 30, "NDVI") == 0.56

    def test_interpolates_between_distant_observations(self):
        series = [point("2024-04-01", 0.4), point("2024-05-11", 0.8)]

        assert nearest_value(series, 20, "NDVI") == pytest.approx(0.6)

    def test_target_before_first_observation(self):
        series = [point("2024-04-01", 0.4), point("2024-05-11", 0.8)]

        assert nearest_value(series, 60, "NDVI") is None

    def test_empty_series(self):
        assert nearest_value([], 30, "NDVI") is None


class TestTrends:
    """Tests for percent change and field average."""

    def test_pct_change(self):
        assert pct_change(0.73, 0.56) == 30.4
        assert pct_change(0.4, -0.2) == 300.0

    def test_pct_change_without_reference(self):
        assert pct_change(0.5, 0) is None
        assert pct_change(0.5, None) is None
        assert pct_change(None, 0.5) is None

    def test_field_average_uses_last_30_days(self, sample_summary):
        assert field_average(sample_summary.ndvi_series) == 0.65

    def test_field_average_falls_back_to_whole_series(self):
        series = [point("2024-01-01", 0.2), point("2024-05-01", 0.6)]

        assert field_average(series) == 0.4

    def test_summary_trends(self, sample_summary):
        assert sample_summary.ndvi_data.trend_30_days == 30.4
        assert sample_summary.ndvi_data.field_average == 0.65


# ============================================================
# Phenology Tests
# ============================================================

class TestPhenologyStage:
    """Tests for the ordered stage rules."""

    @pytest.mark.parametrize("ndvi,days,slope,max_ndvi,stage", [
        (0.1, 10, 0.0, 0.1, "germination"),
        (0.3, 201, 0.0, 0.8, "tillering"),
        (0.5, 201, 0.0, 0.8, "jointing"),
        (0.65, 201, 0.03, 0.7, "heading"),
        (0.75, 201, 0.02, 0.76, "flowering"),
        (0.65, 201, -0.03, 0.8, "grain_filling"),
        (0.15, 150, 0.0, 0.8, "maturity"),
        (0.85, 201, 0.0, 0.95, "stable"),
        (None, 201, 0.0, 0.0, "unknown"),
    ])
    def test_rules(self, ndvi, days, slope, max_ndvi, stage):
        assert estimate_phenology_stage(ndvi, days, slope, max_ndvi) == stage

    def test_days_rule_wins_over_ndvi(self):
        # Early in the season the days since planting decide
        assert estimate_phenology_stage(0.75, 40, 0.02, 0.76) == "tillering"

    def test_summary_phenology(self, sample_summary):
        phenology = sample_summary.phenology

        assert phenology.current_stage == "flowering"
        assert phenology.development_rate == "normal"
        assert phenology.expected_harvest_days == 200


# ============================================================
# Weather Risk Tests
# ============================================================

class TestWeatherRisks:
    """Tests for weather risks from history and forecast."""

    def test_rainfall_target_depends_on_month(self):
        history = [WeatherDay(rainfall=6.0), WeatherDay(rainfall=4.0)]

        assert compute_weather_risks(history, [], "wheat", 1).precipitation_deficit_mm == -30.0
        assert compute_weather_risks(history, [], "wheat", 6).precipitation_deficit_mm == -60.0

    def test_heat_threshold_depends_on_crop(self):
        history = [WeatherDay(temperature_max=33), WeatherDay(temperature_max=36)]

        assert compute_weather_risks(history, [], "wheat", 6).temperature_stress_days == 2
        assert compute_weather_risks(history, [], "wine", 6).temperature_stress_days == 1
        assert compute_weather_risks(history, [], "olive", 6).temperature_stress_days == 0

    def test_high_heat_risk(self):
        forecast = [WeatherDay(temperature_min=15, temperature_max=34)] * 4

        risks = compute_weather_risks([], forecast, "wheat", 6)

        assert risks.heat_stress_risk == "high"
        assert risks.frost_risk_forecast_7d is False

    def test_missing_values_are_ignored(self):
        risks = compute_weather_risks([WeatherDay(rainfall=None)], [WeatherDay()], "wheat", 6)

        assert risks.temperature_stress_days == 0
        assert risks.heat_stress_risk == "low"
        assert risks.frost_risk_forecast_7d is False

    def test_frost_at_zero_is_not_frost(self):
        risks = compute_weather_risks([], [WeatherDay(temperature_min=0.0)], "wheat", 6)

        assert risks.frost_risk_forecast_7d is False

    def test_cumulative_water_deficit(self):
        history = [WeatherDay(temperature_min=20, temperature_max=40, rainfall=0) for _ in range(10)]
        weather, _ = aggregate_weather(history)

        risks = compute_weather_risks(history, [], "wheat", 6, weather)

        assert risks.water_deficit_cumulative == 125.0

    def test_no_cumulative_deficit_when_rain_covers_evapotranspiration(self):
        history = [WeatherDay(temperature_min=5, temperature_max=15, rainfall=10) for _ in range(5)]
        weather, _ = aggregate_weather(history)

        assert compute_weather_risks(history, [], "wheat", 6, weather).water_deficit_cumulative == 0.0
        assert compute_weather_risks(history, [], "wheat", 6).water_deficit_cumulative is None


# ============================================================
# Vegetation Analysis Tests
# ============================================================

class TestVegetationAnalysis:
    """Tests for growth stage and health of a vegetation series."""

    def test_no_data_is_dormancy(self):
        analysis = vegetation_analysis([])

        assert analysis.growth_stage == "dormancy"
        assert analysis.health_status == "moderate_stress"

    def test_green_up(self):
        assert vegetation_analysis([point("2024-05-01", 0.4), point("2024-05-06", 0.45)]).growth_stage == "green-up"

    def test_peak(self):
        series = [point("2024-05-01", 0.8), point("2024-05-06", 0.79)]

        assert vegetation_analysis(series).growth_stage == "peak"

    def test_senescence(self):
        series = [point("2024-05-01", 0.8), point("2024-05-06", 0.65), point("2024-05-11", 0.55)]

        assert vegetation_analysis(series).growth_stage == "senescence"


# ============================================================
# Summary Tests
# ============================================================

class TestBuildSummary:
    """Tests for assembling summaries."""

    def test_summary_with_observations(self, sample_summary, today):
        assert sample_summary.observation_count == 11
        assert sample_summary.meta.end_date == today.isoformat()
        assert sample_summary.meta.sensor_used == "Sentinel-2 L2A"
        assert sample_summary.meta.suggestions is None
        assert sample_summary.meta.used_filters.max_cloud_cover_in_aoi == 50
        assert sample_summary.ndvi_series[-1].date == today.isoformat()

    def test_empty_summary_carries_suggestions(self, empty_summary):
        assert empty_summary.observation_count == 0
        assert empty_summary.ndvi_data.current_value is None
        assert empty_summary.ndmi_data.water_stress_level is None
        assert empty_summary.phenology.current_stage == "unknown"
        assert empty_summary.meta.suggestions == EMPTY_RESULT_SUGGESTIONS

    def test_empty_summary_helper(self):
        summary = summary_builder.empty_summary("2024-03-01", "2024-05-20", all_attempts_failed=True)

        assert summary.meta.all_attempts_failed is True
        assert summary.ndvi_series == []

    def test_days_between_never_negative(self, today):
        later = (today + timedelta(days=3)).isoformat()

        assert summary_builder.days_between(later, today.isoformat()) == 0
        assert summary_builder.days_between(None, today.isoformat()) is None
