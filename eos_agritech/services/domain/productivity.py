"""
Domain service: crop productivity estimate.
"""
from typing import Dict

from eos_agritech.domain.models import ProductivityData

# Tonnes per hectare
CROP_YIELD_MULTIPLIERS: Dict[str, float] = {
    "wheat": 6.2,
    "wine": 8.5,
    "olive": 3.1,
}
PRICE_EUR_PER_TONNE = 250


def compute_productivity(crop_type: str) -> ProductivityData:
    """Expected yield and revenue per hectare; unknown crops use the wheat figure."""
    predicted = CROP_YIELD_MULTIPLIERS.get(crop_type, CROP_YIELD_MULTIPLIERS["wheat"])
    return ProductivityData(
        predicted_yield_ton_ha=round(predicted, 2),
        confidence_level=84,
        recommendations=[
            "Schedule irrigation within 10-15 days",
            "Monitor zones with NDVI < 0.65",
        ],
        expected_revenue_eur_ha=round(predicted * PRICE_EUR_PER_TONNE),
    )
