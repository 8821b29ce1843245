"""
Domain service: BBCH phenological staging from growing degree days.
"""
import math
from datetime import date, timedelta
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel

from eos_agritech.domain.models import VegetationPoint, WeatherData


class PhenologicalStage(BaseModel):
    bbch_code: int
    stage_name: str
    description: str
    expected_duration_days: int
    critical_factors: List[str]


class PhenologyAnalysis(BaseModel):
    current_stage: PhenologicalStage
    estimated_progress: int
    days_since_planting: int
    expected_days_to_next_stage: int
    gdd_accumulated: int
    gdd_required_next_stage: int
    confidence: Literal["high", "medium", "low"]
    alerts: List[str]
    recommendations: List[str]


def _stage(code: int, name: str, description: str, days: int, *factors: str) -> PhenologicalStage:
    return PhenologicalStage(
        bbch_code=code,
        stage_name=name,
        description=description,
        expected_duration_days=days,
        critical_factors=list(factors),
    )


CROP_PHENOLOGY: Dict[str, List[PhenologicalStage]] = {
    "wheat": [
        _stage(10, "Germination", "First leaves emerging", 14, "Soil moisture", "Temperature"),
        _stage(21, "Tillering", "Side shoots developing", 35, "Nitrogen", "Temperature"),
        _stage(31, "Stem elongation", "Stem lengthening", 21, "Water", "Nutrients"),
        _stage(51, "Heading", "Ear emergence", 14, "Water stress", "Fungi"),
        _stage(65, "Flowering", "Full anthesis", 10, "Temperature", "Humidity"),
        _stage(75, "Grain filling", "Milky grain", 21, "Water", "Temperature"),
        _stage(87, "Ripening", "Hard grain", 14, "Drought", "Disease"),
    ],
    "sunflower": [
        _stage(12, "Cotyledons", "First true leaves", 10, "Humidity", "Temperature"),
        _stage(16, "Leaf development", "6-8 true leaves", 25, "Nitrogen", "Water"),
        _stage(51, "Bud", "Inflorescence visible", 20, "Phosphorus", "Potassium"),
        _stage(61, "Flowering", "First ray florets open", 15, "Pollination", "Water"),
        _stage(69, "End of flowering", "Petals falling", 10, "Water stress"),
        _stage(75, "Seed filling", "Achenes filling", 30, "Water", "Potassium"),
        _stage(87, "Ripening", "Achenes ripe", 15, "Physiological drought"),
    ],
    "wine": [
        _stage(9, "Bud swell", "Bud break", 14, "Temperature", "Frost"),
        _stage(15, "Leaves unfolded", "3-4 leaves unfolded", 21, "Downy mildew", "Powdery mildew"),
        _stage(57, "Inflorescences separated", "Inflorescences fully separated", 14, "Botrytis", "Nutrition"),
        _stage(65, "Flowering", "50% of caps fallen", 10, "Fruit set", "Weather"),
        _stage(79, "Veraison", "Berries begin to colour", 21, "Water stress", "Ripening"),
        _stage(85, "Ripening", "Optimal sugar content", 14, "Quality", "Harvest"),
    ],
    "olive": [
        _stage(11, "Budburst", "Buds opening", 20, "Temperature", "Pruning"),
        _stage(15, "Young leaves", "Vegetative growth", 40, "Nitrogen", "Irrigation"),
        _stage(57, "Inflorescence development", "Inflorescences developed", 15, "Alternate bearing", "Nutrition"),
        _stage(65, "Flowering", "Anthesis", 10, "Pollination", "Wind"),
        _stage(71, "Fruit set", "Fruits set", 30, "Fruit drop", "Water"),
        _stage(81, "Pit hardening", "Stone hardening", 45, "Water stress", "Olive fly"),
        _stage(85, "Veraison", "Fruits begin to colour", 30, "Ripening", "Oil quality"),
    ],
}

# Cumulative GDD at which each stage starts
GDD_REQUIREMENTS: Dict[str, List[int]] = {
    "wheat": [150, 400, 800, 1200, 1400, 1800, 2200],
    "sunflower": [120, 350, 650, 950, 1100, 1500, 1800],
    "wine": [100, 300, 600, 900, 1400, 1800],
    "olive": [200, 500, 900, 1100, 1300, 1800, 2400],
}

DEFAULT_DAYS_SINCE_PLANTING = 90
FALLBACK_DAILY_GDD = 15


def base_temperature(crop_type: str) -> float:
    if crop_type == "wheat":
        return 0.0
    if crop_type == "wine":
        return 10.0
    return 5.0


def calculate_gdd(temp_min: float, temp_max: float, base_temp: float) -> float:
    """Growing degree days of one day."""
    return max(0.0, (temp_min + temp_max) / 2 - base_temp)


def analyze_phenology(
    time_series: List[VegetationPoint],
    crop_type: str,
    planting_date: Optional[str],
    weather: Optional[WeatherData] = None,
    today: Optional[date] = None,
) -> PhenologyAnalysis:
    """
    Estimate the BBCH stage of a crop from accumulated growing degree days.

    GDD are extrapolated from the period's mean temperatures over the days
    since planting, or 15 GDD per day without weather. A missing planting
    date is taken as 90 days ago.

    Args:
        time_series: Index series, used to validate the stage
        crop_type: Crop name (unknown crops use wheat)
        planting_date: Planting date (YYYY-MM-DD)
        weather: Aggregated weather for the period
        today: Reference date (defaults to today)

    Returns:
        The phenology analysis
    """
    today = today or date.today()
    stages = CROP_PHENOLOGY.get(crop_type, CROP_PHENOLOGY["wheat"])
    requirements = GDD_REQUIREMENTS.get(crop_type, GDD_REQUIREMENTS["wheat"])

    planted = date.fromisoformat(planting_date[:10]) if planting_date else None
    planted = planted or today - timedelta(days=DEFAULT_DAYS_SINCE_PLANTING)
    days_since_planting = (today - planted).days

    if weather and weather.temperature_min and weather.temperature_max:
        daily_gdd = calculate_gdd(weather.temperature_min, weather.temperature_max, base_temperature(crop_type))
        gdd = daily_gdd * days_since_planting
    else:
        gdd = float(days_since_planting * FALLBACK_DAILY_GDD)

    stage_index = 0
    for i, required in enumerate(requirements):
        if gdd >= required:
            stage_index = i
    stage_index = min(stage_index, len(stages) - 1)

    current_stage = stages[stage_index]
    is_last = stage_index >= len(requirements) - 1
    next_required = requirements[-1] if is_last else requirements[stage_index + 1]
    if is_last:
        progress = 100.0
    else:
        progress = (gdd - requirements[stage_index]) / (next_required - requirements[stage_index]) * 100

    recent = time_series[-5:]
    ndvi_increasing = len(recent) > 1 and recent[-1].NDVI > recent[0].NDVI

    if len(time_series) > 10 and weather and weather.temperature_avg:
        confidence = "high"
    elif len(time_series) < 5 or not planting_date:
        confidence = "low"
    else:
        confidence = "medium"

    alerts = []
    recommendations = []

    if stage_index >= 3 and not ndvi_increasing:
        alerts.append("NDVI falling during a critical stage")

    if days_since_planting > 120 and stage_index < 3:
        alerts.append("Delayed phenological development")
        recommendations.append("Check nutrition and irrigation")

    for factor in current_stage.critical_factors:
        if factor == "Nitrogen" and stage_index <= 2:
            recommendations.append("Monitor nitrogen levels for vegetative growth")
        elif factor == "Water" and stage_index >= 3:
            recommendations.append("Ensure adequate irrigation in the reproductive stage")

    days_to_next = math.ceil((next_required - gdd) / FALLBACK_DAILY_GDD)

    return PhenologyAnalysis(
        current_stage=current_stage,
        estimated_progress=round(max(0.0, min(100.0, progress))),
        days_since_planting=days_since_planting,
        expected_days_to_next_stage=max(0, days_to_next),
        gdd_accumulated=round(gdd),
        gdd_required_next_stage=next_required,
        confidence=confidence,
        alerts=alerts,
        recommendations=recommendations,
    )
