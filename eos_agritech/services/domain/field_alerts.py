"""
Domain service: prioritised field alerts with an economic estimate.

Combines water stress, growth anomalies against the seasonal NDVI
expectation and weather risks into one alert bundle.
"""
import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel

from eos_agritech.domain.models import EosSummary, VegetationPoint
from eos_agritech.services.domain.crop_analysis import get_water_stress_alert

AlertSeverity = Literal["low", "medium", "high", "critical"]

SEVERITY_WEIGHT: Dict[str, int] = {"low": 5, "medium": 15, "high": 25, "critical": 40}
SEVERITY_ORDER: Dict[str, int] = {"low": 1, "medium": 2, "high": 3, "critical": 4}

DEFAULT_MARKET_PRICE = 250.0
"""EUR per tonne."""
AVERAGE_YIELD_T_HA = 5.0

# Expected NDVI by crop and month
SEASONAL_NDVI: Dict[str, Dict[int, float]] = {
    "wheat": {1: 0.20, 2: 0.25, 3: 0.35, 4: 0.55, 5: 0.75, 6: 0.65,
              7: 0.45, 8: 0.25, 9: 0.15, 10: 0.35, 11: 0.25, 12: 0.20},
    "wine": {1: 0.15, 2: 0.20, 3: 0.25, 4: 0.45, 5: 0.65, 6: 0.75,
             7: 0.70, 8: 0.65, 9: 0.50, 10: 0.35, 11: 0.20, 12: 0.15},
    "olive": {1: 0.25, 2: 0.25, 3: 0.30, 4: 0.50, 5: 0.65, 6: 0.70,
              7: 0.65, 8: 0.60, 9: 0.55, 10: 0.45, 11: 0.35, 12: 0.30},
}


class AlertImpact(BaseModel):
    yield_loss_percent: float
    economic_loss_eur_ha: float
    time_sensitive: bool


class AlertRecommendation(BaseModel):
    action: str
    urgency_hours: int
    cost_eur_ha: float
    expected_roi: float


class AlertTriggers(BaseModel):
    threshold_value: float
    current_value: float
    trend_direction: Literal["stable", "improving", "worsening"]


class FieldAlert(BaseModel):
    id: str
    type: Literal["water_stress", "growth_anomaly", "weather_risk", "phenology_delay"]
    severity: AlertSeverity
    title: str
    description: str
    impact: AlertImpact
    recommendation: AlertRecommendation
    triggers: AlertTriggers
    created_at: str


class EconomicSummary(BaseModel):
    potential_loss: float = 0.0
    intervention_cost: float = 0.0
    net_benefit: float = 0.0


class AlertsBundle(BaseModel):
    critical_alerts: List[FieldAlert]
    total_risk_score: int
    immediate_actions: List[str]
    economic_summary: EconomicSummary


def expected_ndvi_for_season(crop_type: str, month: int) -> float:
    table = SEASONAL_NDVI.get(crop_type, SEASONAL_NDVI["wheat"])
    return table.get(month, 0.5)


def _loss_eur(yield_loss_percent: float, market_price: float) -> float:
    return yield_loss_percent * 0.01 * AVERAGE_YIELD_T_HA * market_price


def _alert_id(kind: str) -> str:
    return f"{kind}_{uuid.uuid4().hex[:8]}"


def prioritize_alerts(alerts: List[FieldAlert]) -> List[FieldAlert]:
    """Sort by severity, then economic loss, then urgency."""
    return sorted(
        alerts,
        key=lambda a: (
            -SEVERITY_ORDER[a.severity],
            -a.impact.economic_loss_eur_ha,
            a.recommendation.urgency_hours,
        ),
    )


def generate_field_alerts(
    summary: EosSummary,
    time_series: List[VegetationPoint],
    crop_type: str,
    market_price: float = DEFAULT_MARKET_PRICE,
    today: Optional[date] = None,
) -> AlertsBundle:
    """
    Build the alert bundle for a field.

    Args:
        summary: Field summary
        time_series: Index series
        crop_type: Crop name
        market_price: Crop price in EUR per tonne
        today: Reference date for the seasonal expectation

    Returns:
        Alerts sorted by severity, a 0-100 risk score, the actions due within
        48 hours and the economic totals
    """
    alerts: List[FieldAlert] = []
    created_at = datetime.now(timezone.utc).isoformat()
    month = (today or date.today()).month

    ndmi = summary.ndmi_data.current_value or 0.0
    if ndmi < 0.2:
        water = get_water_stress_alert(ndmi, None, crop_type)
        if water.urgency >= 3:
            loss_percent = water.urgency * 5
            alerts.append(FieldAlert(
                id=_alert_id("water"),
                type="water_stress",
                severity="critical" if water.urgency >= 4 else "high",
                title="Water stress detected",
                description=f"NDMI: {ndmi:.3f} - {water.description}",
                impact=AlertImpact(
                    yield_loss_percent=loss_percent,
                    economic_loss_eur_ha=_loss_eur(loss_percent, market_price),
                    time_sensitive=True,
                ),
                recommendation=AlertRecommendation(
                    action="Immediate irrigation 25-35mm",
                    urgency_hours=24 if water.urgency >= 4 else 48,
                    cost_eur_ha=45,
                    expected_roi=3.5,
                ),
                triggers=AlertTriggers(threshold_value=0.25, current_value=ndmi, trend_direction="worsening"),
                created_at=created_at,
            ))

    if len(time_series) >= 3:
        recent = [p.NDVI for p in time_series[-3:]]
        avg_recent = sum(recent) / len(recent)
        expected = expected_ndvi_for_season(crop_type, month)
        if avg_recent < expected * 0.8:
            shortfall = (expected - avg_recent) / expected
            alerts.append(FieldAlert(
                id=_alert_id("growth"),
                type="growth_anomaly",
                severity="high" if avg_recent < expected * 0.6 else "medium",
                title="Growth anomaly",
                description=f"Recent mean NDVI: {avg_recent:.3f} vs expected: {expected:.3f}",
                impact=AlertImpact(
                    yield_loss_percent=shortfall * 100,
                    economic_loss_eur_ha=shortfall * AVERAGE_YIELD_T_HA * market_price,
                    time_sensitive=True,
                ),
                recommendation=AlertRecommendation(
                    action="Field inspection and leaf analysis",
                    urgency_hours=72,
                    cost_eur_ha=35,
                    expected_roi=4.2,
                ),
                triggers=AlertTriggers(
                    threshold_value=expected * 0.8,
                    current_value=avg_recent,
                    trend_direction="worsening" if recent[2] < recent[0] else "stable",
                ),
                created_at=created_at,
            ))

    risks = summary.weather_risks
    stress_days = risks.temperature_stress_days or 0
    if risks.heat_stress_risk == "high" or stress_days > 3:
        alerts.append(FieldAlert(
            id=_alert_id("weather"),
            type="weather_risk",
            severity="high",
            title="Heat stress risk",
            description=f"High heat stress risk with {stress_days} critical days",
            impact=AlertImpact(
                yield_loss_percent=8,
                economic_loss_eur_ha=_loss_eur(8, market_price),
                time_sensitive=True,
            ),
            recommendation=AlertRecommendation(
                action="Preventive irrigation and shading",
                urgency_hours=48,
                cost_eur_ha=60,
                expected_roi=2.1,
            ),
            triggers=AlertTriggers(threshold_value=3, current_value=stress_days, trend_direction="worsening"),
            created_at=created_at,
        ))

    economic = EconomicSummary()
    for alert in alerts:
        economic.potential_loss += alert.impact.economic_loss_eur_ha
        economic.intervention_cost += alert.recommendation.cost_eur_ha
        economic.net_benefit += alert.impact.economic_loss_eur_ha - alert.recommendation.cost_eur_ha

    immediate_actions = []
    for alert in alerts:
        action = alert.recommendation.action
        if alert.recommendation.urgency_hours <= 48 and action not in immediate_actions:
            immediate_actions.append(action)

    return AlertsBundle(
        critical_alerts=prioritize_alerts(alerts),
        total_risk_score=min(100, sum(SEVERITY_WEIGHT[a.severity] for a in alerts)),
        immediate_actions=immediate_actions,
        economic_summary=economic,
    )
