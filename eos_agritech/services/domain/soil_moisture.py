"""
Domain service: seasonal soil-moisture estimate and irrigation plan.

The EOS soil-moisture product is not wired up; the estimate is built from
seasonal base values with random variation. Pass a seeded generator for
reproducible output.
"""
from datetime import date, timedelta
from typing import Optional, Tuple

import numpy as np

from eos_agritech.domain.models import (
    IrrigationPlan,
    SoilMoistureData,
    SoilMoistureForecast,
    WaterStressLevel,
)

FIELD_CAPACITY = 45.0
WILTING_POINT = 15.0
EVAPOTRANSPIRATION_ACTUAL = 3.2
EVAPOTRANSPIRATION_POTENTIAL = 4.1


def seasonal_base_moisture(month: int) -> Tuple[float, float]:
    """(surface, root zone) moisture in percent for a month."""
    if 6 <= month <= 8:
        return 15.0, 25.0
    if month in (12, 1, 2):
        return 35.0, 45.0
    return 25.0, 35.0


def drought_stress_level(root_zone: float) -> WaterStressLevel:
    if root_zone < 20:
        return "severe"
    if root_zone < 25:
        return "moderate"
    if root_zone < 30:
        return "mild"
    return "none"


def irrigation_plan(root_zone: float) -> Optional[IrrigationPlan]:
    """Irrigation timing for a root-zone moisture; None when not needed."""
    if root_zone < 20:
        return IrrigationPlan(timing="immediate", volume_mm=25, priority="critical")
    if root_zone < 25:
        return IrrigationPlan(timing="within_3_days", volume_mm=20, priority="high")
    if root_zone < 30:
        return IrrigationPlan(timing="within_week", volume_mm=15, priority="medium")
    return None


def estimate_soil_moisture(
    today: Optional[date] = None,
    rng: Optional[np.random.Generator] = None,
) -> SoilMoistureData:
    """
    Estimate soil moisture for the current season.

    Args:
        today: Reference date (defaults to today)
        rng: Random generator for the variation (a fresh one when omitted)

    Returns:
        Soil moisture with a 7-day forecast and an irrigation plan
    """
    today = today or date.today()
    rng = rng or np.random.default_rng()

    surface, root = seasonal_base_moisture(today.month)
    surface += (rng.random() - 0.5) * 10
    root += (rng.random() - 0.5) * 15

    stress_probability = float(np.clip((40 - root) * 2, 0, 100))
    forecast = [
        SoilMoistureForecast(
            date=(today + timedelta(days=i)).isoformat(),
            surface_moisture=round(max(10.0, surface + (rng.random() - 0.5) * 5), 1),
            root_zone_moisture=round(max(15.0, root + (rng.random() - 0.5) * 8), 1),
            stress_probability=stress_probability,
            irrigation_need=root < 25,
        )
        for i in range(7)
    ]

    return SoilMoistureData(
        surface_moisture=round(surface, 1),
        root_zone_moisture=round(root, 1),
        soil_moisture_index=round((root - 30) / 10, 2),
        evapotranspiration_actual=EVAPOTRANSPIRATION_ACTUAL,
        evapotranspiration_potential=EVAPOTRANSPIRATION_POTENTIAL,
        water_deficit=round(max(0.0, (35 - root) * 0.1), 1),
        drought_stress_level=drought_stress_level(root),
        historical_percentile=float(np.clip(root * 2, 5, 95)),
        forecast_7d=forecast,
        field_capacity=FIELD_CAPACITY,
        wilting_point=WILTING_POINT,
        available_water_content=round((root - WILTING_POINT) / (FIELD_CAPACITY - WILTING_POINT) * 100, 1),
        irrigation_recommendation=irrigation_plan(root),
    )
