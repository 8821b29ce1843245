"""
Domain service: weather aggregation and crop weather-stress analysis.

Provides:
- Aggregation of daily weather history into a period summary
- Forecast day mapping with a stress probability
- Crop-specific heat/cold stress indices and stress alerts
- GDD-based growth progress and weather recommendations
"""
import math
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Literal, Optional, Sequence, Tuple

import numpy as np
from pydantic import BaseModel

from eos_agritech.domain.models import HistoricalComparison, WeatherData, WeatherDay, WeatherForecast

# Generic thresholds used by the proxy aggregation
GDD_BASE_TEMPERATURE = 5.0
HEAT_STRESS_TEMPERATURE = 32.0
COLD_STRESS_TEMPERATURE = 5.0
STRONG_WIND_SPEED = 15.0
EXCESS_PRECIPITATION_MM = 80.0
NORMAL_TEMPERATURE = 18.0
NORMAL_PRECIPITATION_MM = 45.0
DEFAULT_PRESSURE = 1013.0


@dataclass(frozen=True)
class CropWeatherThresholds:
    temperature_optimal_min: float
    temperature_optimal_max: float
    temperature_stress_cold: float
    temperature_stress_heat: float
    precipitation_min_monthly: float
    precipitation_max_daily: float
    humidity_optimal_range: Tuple[float, float]
    wind_damage_threshold: float
    gdd_base: float
    gdd_required_maturity: float


CROP_WEATHER_THRESHOLDS: Dict[str, CropWeatherThresholds] = {
    "wheat": CropWeatherThresholds(15, 25, 5, 32, 40, 30, (60, 75), 15, 5, 1800),
    "wine": CropWeatherThresholds(18, 28, 8, 35, 30, 25, (55, 70), 12, 10, 1400),
    "olive": CropWeatherThresholds(16, 30, 0, 38, 25, 40, (50, 65), 18, 7, 1200),
    "sunflower": CropWeatherThresholds(20, 30, 10, 35, 50, 35, (65, 80), 20, 8, 1500),
}

Severity = Literal["low", "medium", "high", "critical"]


class WeatherStressAlert(BaseModel):
    type: Literal["heat", "cold", "drought", "excess_water", "wind", "frost"]
    severity: Severity
    title: str
    description: str
    recommendations: List[str]
    economic_impact: Optional[float] = None
    """Estimated loss in EUR/ha."""
    duration_days: Optional[int] = None
    confidence: int


class GrowthProgress(BaseModel):
    progress_percentage: float
    expected_stage: str
    days_to_maturity: int
    optimal_timing: bool


def _column(days: Sequence[WeatherDay], key: str) -> np.ndarray:
    """Values of one field across days, NaN where the provider gave none."""
    return np.array(
        [np.nan if getattr(day, key) is None else getattr(day, key) for day in days],
        dtype=float,
    )


def _mean(values: np.ndarray) -> Optional[float]:
    valid = values[~np.isnan(values)]
    return float(valid.mean()) if valid.size else None


def _round(value: float, digits: int = 1) -> float:
    return round(float(value), digits)


def aggregate_weather(days: Sequence[WeatherDay]) -> Tuple[WeatherData, int]:
    """
    Aggregate daily weather history records.

    Temperatures count only for days with both minimum and maximum. GDD use a
    5 °C base; a stress day has a maximum above 32 °C or a minimum below 5 °C.
    Evapotranspiration is estimated as ``max(0, (avg - 5) * 0.5 * days)``.

    Args:
        days: Daily provider records

    Returns:
        Tuple of (weather without forecast, stress day count)
    """
    count = len(days)
    tmin = _column(days, "temperature_min")
    tmax = _column(days, "temperature_max")
    valid_temp = ~np.isnan(tmin) & ~np.isnan(tmax)
    tmin, tmax = tmin[valid_temp], tmax[valid_temp]
    tavg = (tmin + tmax) / 2

    temperature_avg = _round(tavg.mean()) if tavg.size else 0.0
    temperature_min = _round(tmin.min()) if tmin.size else 0.0
    temperature_max = _round(tmax.max()) if tmax.size else 0.0
    gdd = float(np.maximum(0, tavg - GDD_BASE_TEMPERATURE).sum())
    stress_days = int(np.sum((tmax > HEAT_STRESS_TEMPERATURE) | (tmin < COLD_STRESS_TEMPERATURE)))

    rain = _column(days, "rainfall")
    precipitation_total = _round(np.nansum(rain)) if count else 0.0

    humidity = _column(days, "humidity")
    humidity = humidity[~np.isnan(humidity)]
    wind = _column(days, "wind_speed")
    wind = wind[~np.isnan(wind)]

    def per_day(key: str, default: float = 0.0) -> float:
        # Days without a value count as the default
        column = _column(days, key)
        return _round(np.where(np.isnan(column), default, column).mean()) if count else default

    heat_stress_index = (
        min(100.0, (temperature_max - HEAT_STRESS_TEMPERATURE) * 10)
        if tmax.size and temperature_max > HEAT_STRESS_TEMPERATURE else 0.0
    )
    cold_stress_index = (
        min(100.0, (COLD_STRESS_TEMPERATURE - temperature_min) * 15)
        if tmin.size and temperature_min < COLD_STRESS_TEMPERATURE else 0.0
    )

    evapotranspiration = max(0.0, (temperature_avg - GDD_BASE_TEMPERATURE) * 0.5 * count)
    water_balance = _round(precipitation_total - evapotranspiration)
    wind_max = _round(wind.max()) if wind.size else 0.0

    alerts = []
    if heat_stress_index > 30:
        alerts.append("High heat stress detected")
    if cold_stress_index > 20:
        alerts.append("Risk of cold stress")
    if water_balance < -30:
        alerts.append("Significant water deficit")
    if wind_max > STRONG_WIND_SPEED:
        alerts.append("Strong winds may cause damage")
    if precipitation_total > EXCESS_PRECIPITATION_MM:
        alerts.append("Excessive precipitation - risk of waterlogging")

    weather = WeatherData(
        temperature_avg=temperature_avg,
        temperature_min=temperature_min,
        temperature_max=temperature_max,
        precipitation_total=precipitation_total,
        humidity_avg=_round(humidity.mean()) if humidity.size else 0.0,
        humidity_min=_round(humidity.min()) if humidity.size else 0.0,
        humidity_max=_round(humidity.max()) if humidity.size else 0.0,
        wind_speed_avg=_round(wind.mean()) if wind.size else 0.0,
        wind_speed_max=wind_max,
        solar_radiation=_round(_mean(_column(days, "solar_radiation")) or 0.0),
        sunshine_hours=per_day("sunshine_hours"),
        cloudiness=per_day("cloudiness"),
        pressure=per_day("pressure", DEFAULT_PRESSURE),
        growing_degree_days=_round(gdd),
        heat_stress_index=_round(heat_stress_index),
        cold_stress_index=_round(cold_stress_index),
        water_balance=water_balance,
        evapotranspiration=_round(evapotranspiration),
        alerts=alerts,
        historical_comparison=HistoricalComparison(
            temperature_vs_normal=_round(temperature_avg - NORMAL_TEMPERATURE),
            precipitation_vs_normal=_round(precipitation_total - NORMAL_PRECIPITATION_MM),
            stress_days_count=stress_days,
        ),
    )
    return weather, stress_days


def forecast_stress_probability(temperature_min: float, temperature_max: float, wind_speed: float) -> float:
    """50 for heat, 30 for cold and 20 for strong wind, capped at 100."""
    probability = 0
    if temperature_max > HEAT_STRESS_TEMPERATURE:
        probability += 50
    if temperature_min < COLD_STRESS_TEMPERATURE:
        probability += 30
    if wind_speed > STRONG_WIND_SPEED:
        probability += 20
    return float(min(100, max(0, probability)))


def map_forecast(days: Sequence[WeatherDay], limit: int = 7) -> List[WeatherForecast]:
    """Map provider forecast days to forecast entries; missing numbers become 0."""
    forecast = []
    for day in list(days)[:limit]:
        temperature_min = day.temperature_min or 0.0
        temperature_max = day.temperature_max or 0.0
        wind_speed = day.wind_speed or 0.0
        forecast.append(WeatherForecast(
            date=day.date or "",
            temperature_min=temperature_min,
            temperature_max=temperature_max,
            precipitation=day.rainfall or 0.0,
            humidity=day.humidity or 0.0,
            wind_speed=wind_speed,
            cloudiness=day.cloudiness or 0.0,
            stress_probability=forecast_stress_probability(temperature_min, temperature_max, wind_speed),
        ))
    return forecast


def get_weather_thresholds(crop_type: str) -> CropWeatherThresholds:
    return CROP_WEATHER_THRESHOLDS.get(crop_type, CROP_WEATHER_THRESHOLDS["wheat"])


def calculate_heat_stress_index(temperature_max: float, humidity: float, crop_type: str) -> float:
    """Crop heat stress 0-100; humid air above the optimal range weighs 1.3x."""
    thresholds = CROP_WEATHER_THRESHOLDS.get(crop_type)
    if thresholds is None:
        return 0.0
    temp_stress = max(0.0, temperature_max - thresholds.temperature_stress_heat)
    humidity_factor = 1.3 if humidity > thresholds.humidity_optimal_range[1] else 1.0
    return min(100.0, temp_stress * humidity_factor * 10)


def calculate_cold_stress_index(temperature_min: float, crop_type: str) -> float:
    thresholds = CROP_WEATHER_THRESHOLDS.get(crop_type)
    if thresholds is None:
        return 0.0
    cold_stress = max(0.0, thresholds.temperature_stress_cold - temperature_min)
    return min(100.0, cold_stress * 15)


def analyze_weather_stress(weather: WeatherData, crop_type: str) -> List[WeatherStressAlert]:
    """
    Weather stress alerts for a period.

    Heat fires above index 30, cold above 20, drought below a -30 mm water
    balance, excess water above three times the crop's daily maximum and wind
    above the crop's damage threshold.
    """
    alerts = []
    thresholds = get_weather_thresholds(crop_type)

    if weather.heat_stress_index > 30:
        severity = "critical" if weather.heat_stress_index > 70 else "high" if weather.heat_stress_index > 50 else "medium"
        alerts.append(WeatherStressAlert(
            type="heat",
            severity=severity,
            title="Heat stress detected",
            description=f"High temperatures ({weather.temperature_max}°C) are stressing the crop",
            recommendations=[
                "Increase irrigation frequency in the evening",
                "Consider temporary shading where possible",
                "Watch for leaf wilting",
                "Avoid treatments in the hottest hours",
            ],
            economic_impact=weather.heat_stress_index * 15,
            confidence=85,
        ))

    if weather.cold_stress_index > 20:
        severity = "critical" if weather.cold_stress_index > 60 else "high" if weather.cold_stress_index > 40 else "medium"
        alerts.append(WeatherStressAlert(
            type="cold",
            severity=severity,
            title="Cold stress",
            description=f"Low temperatures ({weather.temperature_min}°C) may damage the crop",
            recommendations=[
                "Deploy frost protection",
                "Consider preventive irrigation",
                "Follow the forecast for timely action",
                "Cover young plants temporarily",
            ],
            economic_impact=weather.cold_stress_index * 12,
            confidence=80,
        ))

    if weather.water_balance < -30:
        severity = "critical" if weather.water_balance < -60 else "high" if weather.water_balance < -45 else "medium"
        alerts.append(WeatherStressAlert(
            type="drought",
            severity=severity,
            title="Water deficit",
            description=f"Negative water balance ({weather.water_balance}mm) indicates a water shortage",
            recommendations=[
                "Plan immediate irrigation",
                "Improve irrigation system efficiency",
                "Consider mulching to reduce evaporation",
                "Monitor NDMI for early water stress",
            ],
            economic_impact=abs(weather.water_balance) * 8,
            confidence=90,
        ))

    if weather.precipitation_total > thresholds.precipitation_max_daily * 3:
        alerts.append(WeatherStressAlert(
            type="excess_water",
            severity="medium",
            title="Excess water",
            description=f"Excessive precipitation ({weather.precipitation_total}mm) may cause problems",
            recommendations=[
                "Check field drainage",
                "Watch for standing water",
                "Assess fungal disease risk",
                "Plan preventive crop protection",
            ],
            economic_impact=weather.precipitation_total * 2,
            confidence=75,
        ))

    if weather.wind_speed_max > thresholds.wind_damage_threshold:
        severity = "high" if weather.wind_speed_max > thresholds.wind_damage_threshold * 1.5 else "medium"
        alerts.append(WeatherStressAlert(
            type="wind",
            severity=severity,
            title="Wind stress",
            description=f"Strong winds ({weather.wind_speed_max}m/s) may damage plants",
            recommendations=[
                "Check plant stability",
                "Inspect support systems",
                "Assess mechanical leaf damage",
                "Postpone treatments while the wind persists",
            ],
            economic_impact=weather.wind_speed_max * 5,
            confidence=70,
        ))

    return alerts


def calculate_optimal_growth_progress(
    gdd_accumulated: float,
    crop_type: str,
    today: Optional[date] = None,
) -> GrowthProgress:
    """Growth progress towards maturity GDD and whether the season suits the crop."""
    thresholds = get_weather_thresholds(crop_type)
    progress = gdd_accumulated / thresholds.gdd_required_maturity * 100

    if progress > 80:
        stage = "Ripening"
    elif progress > 60:
        stage = "Grain filling"
    elif progress > 40:
        stage = "Flowering"
    elif progress > 20:
        stage = "Tillering"
    elif progress > 10:
        stage = "Emergence"
    else:
        stage = "Germination"

    remaining = max(0.0, thresholds.gdd_required_maturity - gdd_accumulated)
    month = (today or date.today()).month
    if crop_type == "wheat":
        # Autumn-sown wheat
        optimal_timing = month >= 10 or month <= 6
    else:
        optimal_timing = 3 <= month <= 9

    return GrowthProgress(
        progress_percentage=min(100.0, progress),
        expected_stage=stage,
        days_to_maturity=math.ceil(remaining / 15),
        optimal_timing=optimal_timing,
    )


def generate_weather_recommendations(
    weather: WeatherData,
    forecast: List[WeatherForecast],
    crop_type: str,
) -> List[str]:
    """Up to eight recommendations, critical alerts first."""
    recommendations = []

    critical = [a for a in analyze_weather_stress(weather, crop_type) if a.severity == "critical"]
    if critical:
        recommendations.append("URGENT ACTION REQUIRED:")
        for alert in critical:
            recommendations.extend(alert.recommendations[:2])

    if forecast:
        if any(f.stress_probability > 60 for f in forecast[:3]):
            recommendations.append("Critical days ahead - prepare:")
            recommendations.append("Check irrigation and protection systems")
            recommendations.append("Plan preventive actions")

        rainy_days = [f for f in forecast[:7] if f.precipitation > 5]
        if len(rainy_days) > 3:
            recommendations.append("Rainy period ahead:")
            recommendations.append("Postpone crop protection treatments")
            recommendations.append("Check field drainage")

    if -10 < weather.water_balance < 10:
        recommendations.append("Balanced water budget - fine tune:")
        recommendations.append("Keep the current irrigation schedule")
        recommendations.append("Follow the NDMI trend")

    return recommendations[:8]
