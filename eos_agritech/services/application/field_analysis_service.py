"""
Application service: full field analysis.

Fetches the field summary and runs the derived metrics over it: health,
water stress, irrigation, trends, phenology, weather stress, field alerts
and productivity.
"""
import logging
from datetime import date, datetime, timezone
from typing import Callable, List, Literal, Optional

from pydantic import BaseModel

from eos_agritech.domain.models import (
    EosConfig,
    EosSummary,
    PolygonData,
    ProductivityData,
    SavedSummaryBundle,
)
from eos_agritech.domain.outcomes import SummaryOk, SummaryOutcome
from eos_agritech.infrastructure.session_store import SessionStore
from eos_agritech.services.application.summary_fetcher import SummaryFetcher
from eos_agritech.services.domain import crop_analysis, field_alerts, phenology, weather_analysis
from eos_agritech.services.domain.crop_analysis import (
    HealthStatus,
    IrrigationRecommendation,
    SeasonalContext,
    TemporalAnalysis,
    WaterStressAlert,
)
from eos_agritech.services.domain.field_alerts import AlertsBundle
from eos_agritech.services.domain.phenology import PhenologyAnalysis
from eos_agritech.services.domain.productivity import compute_productivity
from eos_agritech.services.domain.vegetation_health import (
    VegetationHealthAnalysis,
    analyze_vegetation_health,
)
from eos_agritech.services.domain.weather_analysis import GrowthProgress, WeatherStressAlert
from eos_agritech.utils.polygon_io import build_geometry

logger = logging.getLogger(__name__)

SummarySource = Literal["live", "demo", "saved"]


class FieldMetrics(BaseModel):
    """Derived metrics of a summary with observations."""
    health_status: HealthStatus
    water_stress_alert: WaterStressAlert
    seasonal_context: SeasonalContext
    irrigation: IrrigationRecommendation
    vegetation_health: VegetationHealthAnalysis
    ndvi_trend: Optional[TemporalAnalysis] = None
    ndmi_trend: Optional[TemporalAnalysis] = None
    phenology: PhenologyAnalysis
    weather_alerts: List[WeatherStressAlert] = []
    weather_recommendations: List[str] = []
    growth_progress: Optional[GrowthProgress] = None
    field_alerts: AlertsBundle
    productivity: ProductivityData


class FieldAnalysis(BaseModel):
    """Summary used for the analysis, where it came from and its metrics."""
    source: SummarySource
    outcome: SummaryOutcome
    summary: EosSummary
    metrics: Optional[FieldMetrics] = None


def compute_metrics(summary: EosSummary, crop_type: str, planting_date: Optional[str],
                    today: date) -> Optional[FieldMetrics]:
    """Run every derived-metric formula; None for a summary without observations."""
    series = summary.ndvi_series
    ndvi = summary.ndvi_data.current_value
    ndmi = summary.ndmi_data.current_value
    if not series or ndvi is None or ndmi is None:
        return None

    weather = summary.weather
    weather_alerts: List[WeatherStressAlert] = []
    weather_recommendations: List[str] = []
    if weather is not None:
        weather_alerts = weather_analysis.analyze_weather_stress(weather, crop_type)
        weather_recommendations = weather_analysis.generate_weather_recommendations(
            weather, weather.forecast or [], crop_type
        )

    pheno = phenology.analyze_phenology(series, crop_type, planting_date, weather, today)

    return FieldMetrics(
        health_status=crop_analysis.get_health_status(ndvi, crop_type),
        water_stress_alert=crop_analysis.get_water_stress_alert(
            ndmi, summary.ndmi_data.trend_14_days, crop_type
        ),
        seasonal_context=crop_analysis.get_seasonal_context(crop_type, today),
        irrigation=crop_analysis.get_irrigation_recommendation(summary, crop_type),
        vegetation_health=analyze_vegetation_health(summary, crop_type),
        ndvi_trend=crop_analysis.analyze_temporal_trends(series, "NDVI", crop_type),
        ndmi_trend=crop_analysis.analyze_temporal_trends(series, "NDMI", crop_type),
        phenology=pheno,
        weather_alerts=weather_alerts,
        weather_recommendations=weather_recommendations,
        growth_progress=weather_analysis.calculate_optimal_growth_progress(
            pheno.gdd_accumulated, crop_type, today
        ),
        field_alerts=field_alerts.generate_field_alerts(summary, series, crop_type, today=today),
        productivity=compute_productivity(crop_type),
    )


class FieldAnalysisService:
    """
    Application service for field analyses.

    Coordinates the summary fetcher, the session store and the domain
    formulas; no business logic lives here.
    """

    def __init__(
        self,
        fetcher: SummaryFetcher,
        store: Optional[SessionStore] = None,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize the service with dependencies.

        Args:
            fetcher: Summary fetcher with escalation
            store: Session store for the last good summary
            today: Returns today's date
        """
        self.fetcher = fetcher
        self.store = store
        self._today = today

    async def get_summary(self, polygon: PolygonData, config: EosConfig) -> SummaryOutcome:
        """
        Fetch the field summary.

        Raises:
            PolygonError: If the polygon cannot be turned into a geometry
        """
        build_geometry(polygon)
        return await self.fetcher.fetch(polygon, config)

    async def analyze(
        self,
        polygon: PolygonData,
        config: EosConfig,
        session_id: Optional[str] = None,
    ) -> FieldAnalysis:
        """
        Analyze a field.

        This method orchestrates:
        1. Fetching the summary with escalation
        2. Saving a good summary, or falling back to the saved one
        3. Running the derived metrics

        Args:
            polygon: Field boundary
            config: Crop, dates and filters
            session_id: Session whose last summary is saved and reused

        Returns:
            The analysis

        Raises:
            PolygonError: If the polygon is invalid
        """
        outcome = await self.get_summary(polygon, config)
        summary = outcome.summary
        source: SummarySource = "demo" if config.is_demo else "live"

        if isinstance(outcome, SummaryOk):
            if session_id and self.store and not config.is_demo:
                bundle = SavedSummaryBundle(
                    polygon=polygon,
                    user_config=config,
                    summary=summary,
                    exported_at=datetime.now(timezone.utc).isoformat(),
                )
                self.store.save_last_summary(session_id, bundle)
        elif session_id and self.store:
            saved = self.store.load_last_summary(session_id)
            if saved is not None:
                logger.info(f"Using saved summary from {saved.exported_at} for session {session_id}")
                summary = saved.summary
                source = "saved"

        metrics = compute_metrics(summary, config.crop_type, config.planting_date, self._today())
        return FieldAnalysis(source=source, outcome=outcome, summary=summary, metrics=metrics)
