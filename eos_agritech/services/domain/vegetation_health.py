"""
Domain service: composite vegetation health index.

Scores NDVI, NDMI, weather risks and (when present) soil moisture on a
0-100 scale and combines them into a weighted health index.
"""
from datetime import datetime, timezone
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel

from eos_agritech.domain.models import (
    EosSummary,
    SoilMoistureData,
    VegetationPoint,
    WaterStressLevel,
    WeatherRisks,
)

HealthClass = Literal["excellent", "good", "average", "below_average", "poor"]
TemporalTrend = Literal["improving", "stable", "declining", "unknown"]

# (lower bound, score), checked top-down
NDVI_SCORE_BANDS = [(0.8, 95), (0.7, 80), (0.6, 65), (0.5, 50), (0.4, 35), (0.3, 20)]
NDMI_SCORE_BANDS = [(0.5, 90, "none"), (0.4, 75, "mild"), (0.3, 55, "moderate"), (0.2, 35, "moderate")]
HEALTH_CLASS_BANDS = [(80, "excellent"), (65, "good"), (50, "average"), (35, "below_average")]


class NdviRange(BaseModel):
    min: float
    max: float
    avg: float


class EosFactors(BaseModel):
    ndvi_contribution: float
    ndmi_contribution: float
    weather_contribution: float
    soil_moisture_contribution: Optional[float] = None
    temporal_trend: TemporalTrend
    data_points: int


class TechnicalIndicators(BaseModel):
    current_ndvi: float
    ndvi_range: NdviRange
    current_ndmi: float
    water_stress_level: WaterStressLevel
    vegetation_vigor: Literal["high", "medium", "low"]


class HealthAnalysisMeta(BaseModel):
    crop_type: str
    analysis_date: str
    data_source: str
    time_series_length: int


class VegetationHealthAnalysis(BaseModel):
    health_index: float
    confidence_level: int
    health_class: HealthClass
    eos_factors: EosFactors
    technical_indicators: TechnicalIndicators
    recommendations: List[str]
    meta: HealthAnalysisMeta


def score_ndvi(ndvi: float) -> int:
    for bound, score in NDVI_SCORE_BANDS:
        if ndvi >= bound:
            return score
    return 10


def score_ndmi(ndmi: float) -> Tuple[int, WaterStressLevel]:
    """NDMI score together with the water-stress level it implies."""
    for bound, score, level in NDMI_SCORE_BANDS:
        if ndmi >= bound:
            return score, level
    return 15, "severe"


def score_weather(risks: WeatherRisks) -> int:
    """Start from 75 and subtract penalties for each weather risk, clamped to 5-100."""
    score = 75
    stress_days = risks.temperature_stress_days or 0
    deficit = risks.precipitation_deficit_mm or 0

    if stress_days > 15:
        score -= 25
    elif stress_days > 10:
        score -= 15
    elif stress_days > 5:
        score -= 8

    if deficit > 75:
        score -= 20
    elif deficit > 50:
        score -= 12
    elif deficit > 25:
        score -= 6

    if risks.heat_stress_risk == "high":
        score -= 15
    elif risks.heat_stress_risk == "medium":
        score -= 8

    if risks.frost_risk_forecast_7d:
        score -= 10

    return max(5, min(100, score))


def score_soil_moisture(soil: SoilMoistureData) -> int:
    """Score from the root-zone share of field capacity, less a water-deficit penalty."""
    ratio = soil.root_zone_moisture / soil.field_capacity if soil.field_capacity else 0
    if ratio >= 0.8:
        score = 95
    elif ratio >= 0.6:
        score = 80
    elif ratio >= 0.4:
        score = 60
    elif ratio >= 0.2:
        score = 35
    else:
        score = 15

    if soil.water_deficit > 10:
        score -= 15
    elif soil.water_deficit > 5:
        score -= 8

    return max(5, min(100, score))


def classify_health(health_index: float) -> HealthClass:
    for bound, health_class in HEALTH_CLASS_BANDS:
        if health_index >= bound:
            return health_class
    return "poor"


def temporal_trend(time_series: List[VegetationPoint]) -> TemporalTrend:
    """Compare the last three NDVI values with the rest of the series."""
    if len(time_series) < 3:
        return "unknown"
    recent = [p.NDVI for p in time_series[-3:]]
    older = [p.NDVI for p in time_series[:-3]]
    if not older:
        return "unknown"

    diff = sum(recent) / len(recent) - sum(older) / len(older)
    if diff > 0.05:
        return "improving"
    if diff < -0.05:
        return "declining"
    return "stable"


def _confidence(points: int, ndvi: float, ndmi: float, has_soil: bool) -> int:
    confidence = 70
    if points >= 8:
        confidence += 20
    elif points >= 5:
        confidence += 15
    elif points >= 3:
        confidence += 10
    elif points >= 1:
        confidence += 5

    if ndvi > 0.1:
        confidence += 5
    if ndmi > 0.1:
        confidence += 5
    if has_soil:
        confidence += 10

    return max(40, min(95, confidence))


def _recommendations(
    water_stress: WaterStressLevel,
    soil: Optional[SoilMoistureData],
    ndvi: float,
    risks: WeatherRisks,
    trend: TemporalTrend,
) -> List[str]:
    recommendations = []

    if water_stress == "severe":
        recommendations.append("Severe water stress: urgent irrigation needed")
    elif water_stress == "moderate":
        recommendations.append("Moderate water stress: increase irrigation frequency")

    plan = soil.irrigation_recommendation if soil else None
    if plan and plan.timing == "immediate":
        recommendations.append(f"EOS recommends immediate irrigation: {plan.volume_mm}mm")
    elif plan and plan.timing == "within_3_days":
        recommendations.append(f"EOS suggests irrigating within 3 days: {plan.volume_mm}mm")

    if ndvi < 0.4:
        recommendations.append("Low NDVI: check nutrition and weed management")
    elif ndvi < 0.6:
        recommendations.append("Sub-optimal NDVI: consider nitrogen fertilisation")

    if (risks.temperature_stress_days or 0) > 10:
        recommendations.append("Heat stress detected: monitor and protect the crop")
    if (risks.precipitation_deficit_mm or 0) > 50:
        recommendations.append("Significant rainfall deficit: schedule supplementary irrigation")

    if trend == "declining":
        recommendations.append("NDVI trend declining: investigate causes and act quickly")
    elif trend == "improving":
        recommendations.append("NDVI trend positive: keep current practices")

    return recommendations


def analyze_vegetation_health(
    summary: EosSummary,
    crop_type: str,
    time_series: Optional[List[VegetationPoint]] = None,
) -> VegetationHealthAnalysis:
    """
    Compute the composite vegetation health index of a field.

    Weights are 45% NDVI, 30% NDMI and 25% weather, or 35/25/25/15 when
    soil moisture is available.

    Args:
        summary: Field summary
        crop_type: Crop name
        time_series: Index series (defaults to the summary's NDVI series)

    Returns:
        The health analysis
    """
    series = summary.ndvi_series if time_series is None else time_series
    current_ndvi = summary.ndvi_data.current_value or 0.0
    current_ndmi = summary.ndmi_data.current_value or 0.0

    ndvi_values = [p.NDVI for p in series] or [current_ndvi]
    avg_ndvi = sum(ndvi_values) / len(ndvi_values)

    ndvi_score = score_ndvi(current_ndvi)
    ndmi_score, water_stress = score_ndmi(current_ndmi)
    weather_score = score_weather(summary.weather_risks)
    soil = summary.soil_moisture
    soil_score = score_soil_moisture(soil) if soil else None

    if soil_score is not None:
        health_index = ndvi_score * 0.35 + ndmi_score * 0.25 + weather_score * 0.25 + soil_score * 0.15
    else:
        health_index = ndvi_score * 0.45 + ndmi_score * 0.30 + weather_score * 0.25

    if avg_ndvi >= 0.7:
        vigor = "high"
    elif avg_ndvi >= 0.5:
        vigor = "medium"
    else:
        vigor = "low"

    trend = temporal_trend(series)

    return VegetationHealthAnalysis(
        health_index=round(health_index, 1),
        confidence_level=_confidence(len(series), current_ndvi, current_ndmi, soil is not None),
        health_class=classify_health(health_index),
        eos_factors=EosFactors(
            ndvi_contribution=ndvi_score,
            ndmi_contribution=ndmi_score,
            weather_contribution=weather_score,
            soil_moisture_contribution=soil_score,
            temporal_trend=trend,
            data_points=len(series),
        ),
        technical_indicators=TechnicalIndicators(
            current_ndvi=round(current_ndvi, 3),
            ndvi_range=NdviRange(
                min=round(min(ndvi_values), 3),
                max=round(max(ndvi_values), 3),
                avg=round(avg_ndvi, 3),
            ),
            current_ndmi=round(current_ndmi, 3),
            water_stress_level=water_stress,
            vegetation_vigor=vigor,
        ),
        recommendations=_recommendations(water_stress, soil, current_ndvi, summary.weather_risks, trend),
        meta=HealthAnalysisMeta(
            crop_type=crop_type,
            analysis_date=datetime.now(timezone.utc).isoformat(),
            data_source="EOS Data Analytics + Technical Analysis",
            time_series_length=len(series),
        ),
    )
