"""
Unit tests for the composite vegetation health index.
"""
import pytest

from eos_agritech.domain.models import IrrigationPlan, SoilMoistureData, VegetationPoint, WeatherRisks
from eos_agritech.services.domain.vegetation_health import (
    analyze_vegetation_health,
    classify_health,
    score_ndmi,
    score_ndvi,
    score_soil_moisture,
    score_weather,
    temporal_trend,
)


def soil(root_zone: float, deficit: float = 0.0, plan: IrrigationPlan = None) -> SoilMoistureData:
    return SoilMoistureData(
        surface_moisture=root_zone,
        root_zone_moisture=root_zone,
        soil_moisture_index=root_zone / 45,
        evapotranspiration_actual=3.2,
        evapotranspiration_potential=4.1,
        water_deficit=deficit,
        drought_stress_level="none",
        historical_percentile=50,
        field_capacity=45,
        wilting_point=15,
        available_water_content=root_zone - 15,
        irrigation_recommendation=plan,
    )


# ============================================================
# Score Tests
# ============================================================

class TestScores:
    """Tests for the component scores."""

    @pytest.mark.parametrize("ndvi,score", [(0.85, 95), (0.73, 80), (0.55, 50), (0.31, 20), (0.1, 10)])
    def test_ndvi_score(self, ndvi, score):
        assert score_ndvi(ndvi) == score

    def test_ndmi_score_carries_stress_level(self):
        assert score_ndmi(0.55) == (90, "none")
        assert score_ndmi(0.39) == (55, "moderate")
        assert score_ndmi(0.1) == (15, "severe")

    def test_weather_without_risks(self):
        assert score_weather(WeatherRisks()) == 75

    def test_weather_penalties_add_up(self):
        risks = WeatherRisks(
            temperature_stress_days=12,
            precipitation_deficit_mm=60,
            heat_stress_risk="high",
            frost_risk_forecast_7d=True,
        )

        assert score_weather(risks) == 75 - 15 - 12 - 15 - 10

    def test_weather_score_floor(self):
        risks = WeatherRisks(
            temperature_stress_days=20,
            precipitation_deficit_mm=100,
            heat_stress_risk="high",
            frost_risk_forecast_7d=True,
        )

        assert score_weather(risks) == 5

    def test_soil_moisture_score(self):
        assert score_soil_moisture(soil(40)) == 95
        assert score_soil_moisture(soil(20, deficit=12)) == 45

    @pytest.mark.parametrize("index,health_class", [
        (80, "excellent"), (70, "good"), (64.9, "average"), (40, "below_average"), (10, "poor"),
    ])
    def test_health_classes(self, index, health_class):
        assert classify_health(index) == health_class


class TestTemporalTrend:
    """Tests for the NDVI trend of the last three observations."""

    def test_short_series(self):
        assert temporal_trend([VegetationPoint(date="2024-05-01", NDVI=0.5, NDMI=0.3)] * 2) == "unknown"

    def test_three_points_without_history(self):
        assert temporal_trend([VegetationPoint(date="2024-05-01", NDVI=0.5, NDMI=0.3)] * 3) == "unknown"

    def test_declining(self):
        values = [0.8, 0.8, 0.6, 0.6, 0.6]
        series = [VegetationPoint(date=f"2024-05-0{i + 1}", NDVI=v, NDMI=0.3) for i, v in enumerate(values)]

        assert temporal_trend(series) == "declining"


# ============================================================
# Health Index Tests
# ============================================================

class TestAnalyzeVegetationHealth:
    """Tests for the weighted health index."""

    def test_weights_without_soil(self, sample_summary):
        analysis = analyze_vegetation_health(sample_summary, "wheat")

        # 80 * 0.45 + 55 * 0.30 + 75 * 0.25
        assert analysis.health_index == pytest.approx(71.25, abs=0.1)
        assert analysis.health_class == "good"
        assert analysis.confidence_level == 95
        assert analysis.eos_factors.soil_moisture_contribution is None
        assert analysis.eos_factors.temporal_trend == "improving"
        assert analysis.eos_factors.data_points == 11
        assert analysis.technical_indicators.water_stress_level == "moderate"
        assert analysis.technical_indicators.vegetation_vigor == "medium"
        assert analysis.technical_indicators.ndvi_range.max == 0.73

    def test_recommendations(self, sample_summary):
        recommendations = analyze_vegetation_health(sample_summary, "wheat").recommendations

        assert "Moderate water stress: increase irrigation frequency" in recommendations
        assert "NDVI trend positive: keep current practices" in recommendations

    def test_weights_with_soil(self, sample_summary):
        plan = IrrigationPlan(timing="immediate", volume_mm=25, priority="critical")
        summary = sample_summary.model_copy(update={"soil_moisture": soil(40, plan=plan)})

        analysis = analyze_vegetation_health(summary, "wheat")

        # 80 * 0.35 + 55 * 0.25 + 75 * 0.25 + 95 * 0.15
        assert analysis.health_index == pytest.approx(74.75, abs=0.1)
        assert analysis.eos_factors.soil_moisture_contribution == 95
        assert "EOS recommends immediate irrigation: 25.0mm" in analysis.recommendations

    def test_empty_summary(self, empty_summary):
        analysis = analyze_vegetation_health(empty_summary, "wheat")

        assert analysis.health_class == "poor"
        assert analysis.eos_factors.temporal_trend == "unknown"
        assert analysis.technical_indicators.water_stress_level == "severe"
