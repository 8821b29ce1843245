"""
Domain service: build field summaries from index statistics and weather.

Pure functions turning the per-index statistics of a run, the 30-day weather
history and the 7-day forecast into an ``EosSummary``.
"""
from datetime import date, timedelta
from typing import Any, Dict, List, Literal, Optional, Sequence

from eos_agritech.domain.models import (
    CloudFilters,
    DevelopmentRate,
    EosSummary,
    HeatStressRisk,
    NdmiData,
    NdviData,
    Phenology,
    SummaryMeta,
    UsedFilters,
    VegetationAnalysis,
    VegetationPoint,
    WeatherData,
    WeatherDay,
    WeatherRisks,
)
from eos_agritech.services.domain.crop_analysis import classify_water_stress_level

IndexKey = Literal["NDVI", "NDMI"]

SENSOR_LABEL = "Sentinel-2 L2A"
UNIFORMITY_SCORE = 0.75
NEAREST_WINDOW_DAYS = 7

EMPTY_RESULT_SUGGESTIONS = [
    "Try extending the analysis period (e.g., last 3-6 months)",
    "Use 'Retry with extended filters' to reduce cloud filtering",
    "Verify the field coordinates are correct",
    "Consider that some areas may have limited satellite coverage",
]

# NDVI expected at each stage; development is early/delayed beyond +/-12%
STAGE_NDVI_THRESHOLDS: Dict[str, float] = {
    "germination": 0.15,
    "tillering": 0.3,
    "jointing": 0.5,
    "heading": 0.65,
    "flowering": 0.75,
    "grain_filling": 0.6,
    "maturity": 0.35,
    "stable": 0.5,
    "unknown": 0.5,
}


def _to_date(value: str) -> date:
    return date.fromisoformat(value[:10])


def build_series(stats: Dict[str, Dict[str, float]]) -> List[VegetationPoint]:
    """
    Merge per-index {date: value} maps into a date-sorted series.

    Dates missing for an index get 0 for that index. ReCI is included only
    when it was requested.
    """
    dates = sorted({d for values in stats.values() for d in values})
    with_reci = "RECI" in stats
    return [
        VegetationPoint(
            date=d,
            NDVI=stats.get("NDVI", {}).get(d, 0.0),
            NDMI=stats.get("NDMI", {}).get(d, 0.0),
            ReCI=stats["RECI"].get(d, 0.0) if with_reci else None,
        )
        for d in dates
    ]


def nearest_value(series: Sequence[VegetationPoint], offset_days: int, key: IndexKey) -> Optional[float]:
    """
    Value of an index ``offset_days`` before the last observation.

    Uses the observation closest to the target date when one lies within
    seven days of it, otherwise interpolates linearly between the
    observations around the target.
    """
    if not series:
        return None
    target = _to_date(series[-1].date) - timedelta(days=offset_days)

    best = None
    for point in series:
        distance = abs((_to_date(point.date) - target).days)
        if distance <= NEAREST_WINDOW_DAYS and (best is None or distance < best[0]):
            best = (distance, getattr(point, key))
    if best is not None:
        return best[1]

    before = after = None
    for point in series:
        day = _to_date(point.date)
        if day <= target:
            before = point
        else:
            after = point
            break
    if before is None or after is None:
        return None

    t1, t2 = _to_date(before.date), _to_date(after.date)
    ratio = (target - t1).days / (t2 - t1).days
    v1, v2 = getattr(before, key), getattr(after, key)
    return v1 + (v2 - v1) * ratio


def pct_change(now: Optional[float], previous: Optional[float]) -> Optional[float]:
    """Percent change rounded to one decimal; None without a non-zero reference."""
    if now is None or previous is None or previous == 0:
        return None
    return round((now - previous) / abs(previous) * 100, 1)


def field_average(series: Sequence[VegetationPoint], window_days: int = 30) -> Optional[float]:
    """Mean NDVI over the last ``window_days``, or the whole series when the window has fewer than two points."""
    if not series:
        return None
    start = _to_date(series[-1].date) - timedelta(days=window_days)
    window = [p for p in series if _to_date(p.date) >= start]
    used = window if len(window) >= 2 else list(series)
    return round(sum(p.NDVI for p in used) / len(used), 2)


def days_between(start: Optional[str], end: str) -> Optional[int]:
    if not start:
        return None
    return max(0, (_to_date(end) - _to_date(start)).days)


def estimate_phenology_stage(
    ndvi: Optional[float],
    days_from_planting: Optional[int],
    slope: float,
    max_ndvi: float,
) -> str:
    """
    Crop stage from the latest NDVI, its last step and the days since planting.

    Rules are checked in order; the first match wins.
    """
    if ndvi is None:
        return "unknown"
    days = days_from_planting if days_from_planting is not None else 0

    if ndvi < 0.2 and days < 25:
        return "germination"
    if 0.2 <= ndvi < 0.45 or 25 <= days < 60:
        return "tillering"
    if 0.45 <= ndvi < 0.6 or 60 <= days < 90:
        return "jointing"
    if 0.6 <= ndvi < 0.7 and slope > 0:
        return "heading"
    if 0.7 <= ndvi <= 0.8 and abs(ndvi - max_ndvi) <= 0.05:
        return "flowering"
    if 0.55 <= ndvi < 0.7 and slope < 0:
        return "grain_filling"
    if ndvi < 0.4 and (days_from_planting if days_from_planting is not None else 999) > 120:
        return "maturity"
    return "stable"


def development_rate(stage: str, ndvi: Optional[float]) -> DevelopmentRate:
    threshold = STAGE_NDVI_THRESHOLDS.get(stage, 0.5)
    if ndvi is None:
        return "normal"
    if ndvi > threshold * 1.12:
        return "early"
    if ndvi < threshold * 0.88:
        return "delayed"
    return "normal"


def expected_harvest_days(crop_type: str) -> int:
    if crop_type == "wheat":
        return 200
    if crop_type == "wine":
        return 240
    return 300


def heat_threshold(crop_type: str) -> float:
    """Daily maximum (°C) above which a day counts as heat stress for a crop."""
    if crop_type == "wheat":
        return 30.0
    if crop_type == "wine":
        return 35.0
    return 36.0


def precipitation_target(month: int) -> float:
    """Empirical 30-day rainfall need: 40 mm in the cold months, 70 mm otherwise."""
    return 40.0 if month in (11, 12, 1, 2, 3) else 70.0


def _above(value: Optional[float], threshold: float) -> bool:
    return value is not None and value > threshold


def compute_weather_risks(
    history: Sequence[WeatherDay],
    forecast: Sequence[WeatherDay],
    crop_type: str,
    month: int,
    weather: Optional[WeatherData] = None,
) -> WeatherRisks:
    """
    Weather risks from the last 30 days of history and the 7-day forecast.

    Args:
        history: Daily history records
        forecast: Daily forecast records
        crop_type: Crop name, selects the heat threshold
        month: Current month, selects the rainfall target
        weather: Aggregated history; its water balance gives the cumulative
            deficit (evapotranspiration not covered by rainfall)

    Returns:
        Stress days, rainfall deficit, frost risk, heat risk and cumulative deficit
    """
    threshold = heat_threshold(crop_type)
    precipitation = sum(d.rainfall or 0.0 for d in history)
    stress_days = sum(1 for d in history if _above(d.temperature_max, threshold))

    frost = any(d.temperature_min is not None and d.temperature_min < 0 for d in forecast)
    hot_days = sum(1 for d in forecast if _above(d.temperature_max, threshold))
    if hot_days >= 4:
        heat_risk: HeatStressRisk = "high"
    elif hot_days >= 2:
        heat_risk = "medium"
    else:
        heat_risk = "low"

    return WeatherRisks(
        temperature_stress_days=stress_days,
        precipitation_deficit_mm=round(precipitation - precipitation_target(month), 1),
        frost_risk_forecast_7d=frost,
        heat_stress_risk=heat_risk,
        water_deficit_cumulative=round(max(0.0, -weather.water_balance), 1) if weather else None,
    )


def vegetation_analysis(series: Sequence[VegetationPoint]) -> VegetationAnalysis:
    """
    Growth stage and health status of a vegetation series.

    Stages: dormancy (no data or NDVI < 0.2), green-up (rising by more than
    0.02 above 0.3), peak (within 0.05 of the series maximum), senescence
    (falling by more than 0.02 and 0.1 below the maximum), otherwise stable.
    """
    ndvis = [p.NDVI for p in series]
    last = ndvis[-1] if ndvis else 0.0
    previous = ndvis[-2] if len(ndvis) > 1 else last
    slope = last - previous
    peak = max(ndvis) if ndvis else 0.0

    if not series or last < 0.2:
        stage = "dormancy"
    elif slope > 0.02 and last > 0.3:
        stage = "green-up"
    elif abs(last - peak) <= 0.05:
        stage = "peak"
    elif slope < -0.02 and last < peak - 0.1:
        stage = "senescence"
    else:
        stage = "stable"

    last_ndmi = series[-1].NDMI if series else 0.0
    health = "moderate_stress" if last_ndmi < 0.3 else "normal"
    return VegetationAnalysis(health_status=health, growth_stage=stage)


def used_filters(filters: CloudFilters, aoi_cover_share_min: Optional[float] = None,
                 sensors: Optional[List[str]] = None) -> UsedFilters:
    return UsedFilters(
        **filters.model_dump(),
        sensors=sensors,
        aoi_cover_share_min=aoi_cover_share_min,
    )


def build_summary(
    series: List[VegetationPoint],
    crop_type: str,
    start_date: str,
    end_date: str,
    filters: CloudFilters,
    fallback_used: bool = False,
    planting_date: Optional[str] = None,
    weather_risks: Optional[WeatherRisks] = None,
    weather: Optional[WeatherData] = None,
) -> EosSummary:
    """
    Assemble the field summary of one run.

    Args:
        series: Date-sorted NDVI/NDMI series
        crop_type: Crop name
        start_date: First date of the period
        end_date: Last date of the period
        filters: Cloud filters the series was fetched with
        fallback_used: Whether the tolerant filters were needed
        planting_date: Planting date, for days from planting
        weather_risks: Precomputed weather risks
        weather: Aggregated weather with its forecast

    Returns:
        The summary; an empty series yields a summary with suggestions
    """
    last = series[-1] if series else None
    ndvi_now = last.NDVI if last else None
    ndmi_now = last.NDMI if last else None

    days_from_planting = days_between(planting_date, end_date)
    slope = series[-1].NDVI - series[-2].NDVI if len(series) >= 2 else 0.0
    max_ndvi = max((p.NDVI for p in series), default=0.0)
    stage = estimate_phenology_stage(ndvi_now, days_from_planting, slope, max_ndvi)

    meta = SummaryMeta(
        start_date=start_date,
        end_date=end_date,
        sensor_used=SENSOR_LABEL,
        observation_count=len(series),
        fallback_used=fallback_used,
        used_filters=used_filters(filters),
    )
    if not series:
        meta.suggestions = list(EMPTY_RESULT_SUGGESTIONS)

    return EosSummary(
        ndvi_data=NdviData(
            current_value=ndvi_now,
            trend_30_days=pct_change(ndvi_now, nearest_value(series, 30, "NDVI")),
            field_average=field_average(series),
            uniformity_score=UNIFORMITY_SCORE,
        ),
        ndmi_data=NdmiData(
            current_value=ndmi_now,
            water_stress_level=classify_water_stress_level(ndmi_now),
            trend_14_days=pct_change(ndmi_now, nearest_value(series, 14, "NDMI")),
        ),
        phenology=Phenology(
            current_stage=stage,
            days_from_planting=days_from_planting,
            expected_harvest_days=expected_harvest_days(crop_type),
            development_rate=development_rate(stage, ndvi_now),
        ),
        weather_risks=weather_risks or WeatherRisks(),
        weather=weather,
        ndvi_series=series,
        meta=meta,
    )


def empty_summary(start_date: Optional[str], end_date: Optional[str], **meta: Any) -> EosSummary:
    """A displayable summary without observations."""
    return EosSummary(
        meta=SummaryMeta(
            start_date=start_date,
            end_date=end_date,
            observation_count=0,
            fallback_used=False,
            **meta,
        )
    )
