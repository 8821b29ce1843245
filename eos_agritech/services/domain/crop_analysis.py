"""
Domain service: crop-specific interpretation of NDVI and NDMI.

Maps current index values through per-crop threshold tables to vegetation
health status, water-stress alerts, irrigation advice and trend analysis.
"""
import re
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel

from eos_agritech.domain.models import EosSummary, VegetationPoint, WaterStressLevel


@dataclass(frozen=True)
class NdviThresholds:
    excellent: float
    good: float
    moderate: float
    critical: float


@dataclass(frozen=True)
class NdmiThresholds:
    optimal: float
    stress_threshold: float
    critical_threshold: float


@dataclass(frozen=True)
class CropThresholds:
    ndvi: NdviThresholds
    ndmi: NdmiThresholds


CROP_THRESHOLDS: Dict[str, CropThresholds] = {
    "wheat": CropThresholds(
        ndvi=NdviThresholds(excellent=0.8, good=0.65, moderate=0.45, critical=0.3),
        ndmi=NdmiThresholds(optimal=0.4, stress_threshold=0.25, critical_threshold=0.15),
    ),
    "wine": CropThresholds(
        ndvi=NdviThresholds(excellent=0.75, good=0.6, moderate=0.4, critical=0.25),
        ndmi=NdmiThresholds(optimal=0.35, stress_threshold=0.2, critical_threshold=0.1),
    ),
    "olive": CropThresholds(
        ndvi=NdviThresholds(excellent=0.7, good=0.55, moderate=0.35, critical=0.2),
        ndmi=NdmiThresholds(optimal=0.3, stress_threshold=0.18, critical_threshold=0.08),
    ),
    "sunflower": CropThresholds(
        ndvi=NdviThresholds(excellent=0.85, good=0.7, moderate=0.5, critical=0.35),
        ndmi=NdmiThresholds(optimal=0.45, stress_threshold=0.3, critical_threshold=0.2),
    ),
}


def get_crop_thresholds(crop_type: str) -> CropThresholds:
    """Thresholds for a crop; unknown crops use wheat."""
    return CROP_THRESHOLDS.get(crop_type, CROP_THRESHOLDS["wheat"])


def classify_water_stress_level(ndmi: Optional[float]) -> Optional[WaterStressLevel]:
    """
    Generic NDMI water-stress bands used in summaries.

    >= 0.4 none, >= 0.3 mild, >= 0.2 moderate, below that severe.
    """
    if ndmi is None:
        return None
    if ndmi >= 0.4:
        return "none"
    if ndmi >= 0.3:
        return "mild"
    if ndmi >= 0.2:
        return "moderate"
    return "severe"


class HealthStatus(BaseModel):
    level: Literal["excellent", "good", "moderate", "critical"]
    description: str
    recommendations: List[str]


class WaterStressAlert(BaseModel):
    level: Literal["none", "early", "moderate", "severe", "critical"]
    title: str
    description: str
    actions: List[str]
    urgency: int
    """1 (no action) to 5 (emergency)."""


class SeasonalContext(BaseModel):
    season: Literal["spring", "summer", "autumn", "winter"]
    month: int
    expected_phase: str
    optimal_ndvi: float
    optimal_ndmi: float


class IrrigationRecommendation(BaseModel):
    urgency: Literal["none", "low", "medium", "high", "immediate"]
    timing: str
    amount: str
    frequency: str
    reasoning: List[str]
    weather_considerations: List[str]


class TemporalAnalysis(BaseModel):
    trend_direction: Literal["improving", "stable", "declining"]
    velocity_level: Literal["slow", "moderate", "rapid"]
    seasonal_comparison: Literal["ahead", "normal", "behind"]
    projected_value_7d: float
    projected_value_14d: float
    confidence: int


def get_health_status(ndvi: float, crop_type: str) -> HealthStatus:
    """Crop-specific vegetation health band for an NDVI value."""
    thresholds = get_crop_thresholds(crop_type).ndvi

    if ndvi >= thresholds.excellent:
        return HealthStatus(
            level="excellent",
            description="Excellent vegetation",
            recommendations=["Continue the current programme", "Keep monitoring to hold the status"],
        )
    if ndvi >= thresholds.good:
        return HealthStatus(
            level="good",
            description="Vegetation in good health",
            recommendations=["Keep irrigation regular", "Check the less vigorous zones"],
        )
    if ndvi >= thresholds.moderate:
        return HealthStatus(
            level="moderate",
            description="Moderate vegetation",
            recommendations=["Increase irrigation frequency", "Check nutrition", "Monitor stress"],
        )
    return HealthStatus(
        level="critical",
        description="Vegetation under severe stress",
        recommendations=["Irrigate immediately", "Urgent field inspection", "Check the root system"],
    )


def get_water_stress_alert(ndmi: float, trend: Optional[float], crop_type: str) -> WaterStressAlert:
    """
    Water-stress alert for an NDMI value, with early warning on a falling trend.

    Args:
        ndmi: Current NDMI
        trend: 14-day NDMI change in percent, if known
        crop_type: Crop name

    Returns:
        The alert for the crop's NDMI band
    """
    thresholds = get_crop_thresholds(crop_type).ndmi

    if ndmi >= thresholds.optimal:
        if trend and trend < -10:
            return WaterStressAlert(
                level="early",
                title="Early warning",
                description="NDMI falling quickly, stress may be developing",
                actions=["Schedule preventive irrigation", "Monitor closely"],
                urgency=2,
            )
        return WaterStressAlert(
            level="none",
            title="Optimal water status",
            description="Moisture level adequate for the crop",
            actions=["Keep the current irrigation schedule"],
            urgency=1,
        )
    if ndmi >= thresholds.stress_threshold:
        return WaterStressAlert(
            level="moderate",
            title="Moderate water stress",
            description="First signs of water deficit",
            actions=["Increase irrigation frequency", "Check irrigation uniformity"],
            urgency=3,
        )
    if ndmi >= thresholds.critical_threshold:
        return WaterStressAlert(
            level="severe",
            title="Severe water stress",
            description="Significant water deficit",
            actions=["Irrigate immediately", "Reduce additional stress", "Continuous monitoring"],
            urgency=4,
        )
    return WaterStressAlert(
        level="critical",
        title="Water emergency",
        description="Critical water stress - risk of permanent damage",
        actions=["Urgent intervention", "Intensive irrigation", "Immediate field inspection"],
        urgency=5,
    )


def get_seasonal_context(crop_type: str, on: Optional[date] = None) -> SeasonalContext:
    """Expected phase and optimal index values for the season of a date."""
    month = (on or date.today()).month
    thresholds = get_crop_thresholds(crop_type)

    if 3 <= month <= 5:
        return SeasonalContext(
            season="spring", month=month, expected_phase="Active growth",
            optimal_ndvi=thresholds.ndvi.good, optimal_ndmi=thresholds.ndmi.optimal,
        )
    if 6 <= month <= 8:
        # More stress is expected in summer
        return SeasonalContext(
            season="summer", month=month, expected_phase="Peak development",
            optimal_ndvi=thresholds.ndvi.excellent, optimal_ndmi=thresholds.ndmi.stress_threshold,
        )
    if 9 <= month <= 11:
        return SeasonalContext(
            season="autumn", month=month, expected_phase="Ripening",
            optimal_ndvi=thresholds.ndvi.moderate, optimal_ndmi=thresholds.ndmi.optimal,
        )
    return SeasonalContext(
        season="winter", month=month, expected_phase="Dormancy",
        optimal_ndvi=thresholds.ndvi.moderate, optimal_ndmi=thresholds.ndmi.optimal,
    )


_IRRIGATION_BY_STRESS = {
    "none": ("none", "Next scheduled irrigation", "Normal (20-30mm)", "As scheduled",
             ["Optimal water level"]),
    "early": ("low", "Within 7-10 days", "Preventive (15-25mm)", "Bring forward slightly",
              ["NDMI trend falling", "Stress prevention"]),
    "moderate": ("medium", "Within 3-5 days", "Moderate (25-35mm)", "Increase by 20%",
                 ["Water stress detected", "Recovery needed"]),
    "severe": ("high", "Within 24-48 hours", "Abundant (35-50mm)", "Closely spaced irrigations",
               ["Severe stress", "Risk of damage"]),
    "critical": ("immediate", "Immediately", "Emergency (50+ mm)", "Multiple irrigations",
                 ["Water emergency", "Risk of heavy losses"]),
}


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def get_irrigation_recommendation(summary: EosSummary, crop_type: str) -> IrrigationRecommendation:
    """Irrigation advice from the water-stress alert and weather risks of a summary."""
    ndmi = summary.ndmi_data.current_value or 0
    water_stress = get_water_stress_alert(ndmi, summary.ndmi_data.trend_14_days, crop_type)
    seasonal = get_seasonal_context(crop_type, _parse_date(summary.meta.end_date))

    urgency, timing, amount, frequency, reasoning = _IRRIGATION_BY_STRESS[water_stress.level]
    weather_considerations = []

    deficit = summary.weather_risks.precipitation_deficit_mm or 0
    if deficit > 20:
        weather_considerations.append(f"Deficit of {deficit}mm in recent weeks")

    if summary.weather_risks.heat_stress_risk == "high":
        weather_considerations.append("High heat stress")
        timing = re.sub(r"\d+", lambda m: str(max(1, int(m.group()) - 1)), timing, count=1)

    if seasonal.season == "summer":
        weather_considerations.append("Summer season - higher water demand")

    return IrrigationRecommendation(
        urgency=urgency,
        timing=timing,
        amount=amount,
        frequency=frequency,
        reasoning=list(reasoning),
        weather_considerations=weather_considerations,
    )


def analyze_temporal_trends(
    time_series: List[VegetationPoint],
    indicator: Literal["NDVI", "NDMI"],
    crop_type: str,
) -> Optional[TemporalAnalysis]:
    """
    Trend, velocity and a linear 7/14-day projection of an index.

    The last five observations are compared with up to five earlier ones
    (the first observation when the series is too short to separate them).

    Returns:
        None when fewer than three observations are available
    """
    if not time_series or len(time_series) < 3:
        return None

    values = [getattr(p, indicator) for p in time_series if getattr(p, indicator) is not None]
    if len(values) < 3:
        return None
    recent = values[-5:]
    earlier = values[:min(5, len(values) - 5)] if len(values) > 5 else values[:1]

    recent_avg = sum(recent) / len(recent)
    earlier_avg = sum(earlier) / len(earlier)
    change = recent_avg - earlier_avg
    change_percent = abs(change / earlier_avg * 100) if earlier_avg else 0.0

    if change > 0.02:
        direction = "improving"
    elif change < -0.02:
        direction = "declining"
    else:
        direction = "stable"

    if change_percent > 15:
        velocity = "rapid"
    elif change_percent > 5:
        velocity = "moderate"
    else:
        velocity = "slow"

    # Recent and earlier windows are taken to be 14 days apart
    daily_change = change / 14
    projected_7d = max(0.0, min(1.0, recent_avg + daily_change * 7))
    projected_14d = max(0.0, min(1.0, recent_avg + daily_change * 14))

    return TemporalAnalysis(
        trend_direction=direction,
        velocity_level=velocity,
        seasonal_comparison="normal",
        projected_value_7d=round(projected_7d, 3),
        projected_value_14d=round(projected_14d, 3),
        confidence=min(95, 60 + len(values) * 2),
    )
