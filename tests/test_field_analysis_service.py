"""
Unit tests for the field analysis service.

Tests cover:
- Derived metrics for summaries with and without observations
- Saving good summaries per session
- Falling back to the saved summary when a fetch yields nothing usable
- Polygon validation before any fetch
"""
import pytest
from unittest.mock import AsyncMock

from eos_agritech.domain.models import EosConfig, PolygonData, WeatherDay
from eos_agritech.domain.outcomes import ErrorKind, SummaryEmpty, SummaryFailed, SummaryOk
from eos_agritech.infrastructure.session_store import SessionKeys
from eos_agritech.services.application.field_analysis_service import (
    FieldAnalysisService,
    compute_metrics,
)
from eos_agritech.services.application.summary_fetcher import SummaryFetcher
from eos_agritech.services.domain.weather_analysis import aggregate_weather
from eos_agritech.utils.polygon_io import PolygonError


@pytest.fixture
def fetcher():
    return AsyncMock(spec=SummaryFetcher)


@pytest.fixture
def service(fetcher, session_store, today):
    return FieldAnalysisService(fetcher, session_store, today=lambda: today)


def failed(summary):
    return SummaryFailed(error_kind=ErrorKind.RATE_LIMITED, detail="EOS rate limit", summary=summary)


# ============================================================
# Metrics Tests
# ============================================================

class TestComputeMetrics:
    """Tests for the derived metrics."""

    def test_metrics_for_observed_field(self, sample_summary, today):
        metrics = compute_metrics(sample_summary, "wheat", "2023-11-01", today)

        assert metrics.health_status.level == "good"
        assert metrics.water_stress_alert.level == "moderate"
        assert metrics.seasonal_context.season == "spring"
        assert metrics.ndvi_trend.trend_direction == "improving"
        assert metrics.phenology.days_since_planting == 201
        assert metrics.vegetation_health.health_class == "good"
        assert metrics.productivity.predicted_yield_ton_ha == 6.2
        assert metrics.weather_alerts == []

    def test_weather_metrics(self, sample_summary, today):
        weather, _ = aggregate_weather([
            WeatherDay(temperature_min=20, temperature_max=40, rainfall=0) for _ in range(10)
        ])
        summary = sample_summary.model_copy(update={"weather": weather})

        metrics = compute_metrics(summary, "wheat", "2023-11-01", today)

        assert [a.type for a in metrics.weather_alerts] == ["heat", "drought"]
        assert metrics.weather_recommendations[0] == "URGENT ACTION REQUIRED:"
        assert metrics.growth_progress.progress_percentage == 100

    def test_no_metrics_without_observations(self, empty_summary, today):
        assert compute_metrics(empty_summary, "wheat", None, today) is None


# ============================================================
# Analysis Tests
# ============================================================

class TestAnalyze:
    """Tests for the analysis flow."""

    @pytest.mark.asyncio
    async def test_live_summary_is_saved(self, service, fetcher, session_store,
                                         sample_polygon, sample_config, sample_summary):
        fetcher.fetch.return_value = SummaryOk(summary=sample_summary)

        analysis = await service.analyze(sample_polygon, sample_config, session_id="s1")

        assert analysis.source == "live"
        assert analysis.metrics is not None
        saved = session_store.load_last_summary("s1")
        assert saved.summary.meta.observation_count == 11
        assert saved.user_config.crop_type == "wheat"

    @pytest.mark.asyncio
    async def test_failed_fetch_uses_saved_summary(self, service, fetcher, sample_polygon,
                                                   sample_config, sample_summary, empty_summary):
        fetcher.fetch.return_value = SummaryOk(summary=sample_summary)
        await service.analyze(sample_polygon, sample_config, session_id="s1")
        fetcher.fetch.return_value = failed(empty_summary)

        analysis = await service.analyze(sample_polygon, sample_config, session_id="s1")

        assert analysis.source == "saved"
        assert analysis.outcome.kind == "error"
        assert analysis.summary.meta.observation_count == 11
        assert analysis.metrics is not None

    @pytest.mark.asyncio
    async def test_empty_fetch_uses_saved_summary(self, service, fetcher, sample_polygon,
                                                  sample_config, sample_summary, empty_summary):
        fetcher.fetch.return_value = SummaryOk(summary=sample_summary)
        await service.analyze(sample_polygon, sample_config, session_id="s1")
        fetcher.fetch.return_value = SummaryEmpty(summary=empty_summary)

        analysis = await service.analyze(sample_polygon, sample_config, session_id="s1")

        assert analysis.source == "saved"
        assert analysis.outcome.kind == "empty"

    @pytest.mark.asyncio
    async def test_failed_fetch_without_saved_summary(self, service, fetcher, sample_polygon,
                                                      sample_config, empty_summary):
        fetcher.fetch.return_value = failed(empty_summary)

        analysis = await service.analyze(sample_polygon, sample_config, session_id="s1")

        assert analysis.source == "live"
        assert analysis.metrics is None
        assert analysis.summary.meta.observation_count == 0

    @pytest.mark.asyncio
    async def test_demo_summary_is_not_saved(self, service, fetcher, session_store,
                                             sample_polygon, sample_summary):
        fetcher.fetch.return_value = SummaryOk(summary=sample_summary)

        analysis = await service.analyze(sample_polygon, EosConfig(api_key="demo"), session_id="s1")

        assert analysis.source == "demo"
        assert session_store.get("s1", SessionKeys.LAST_SUMMARY) is None

    @pytest.mark.asyncio
    async def test_without_session(self, fetcher, sample_polygon, sample_config, sample_summary, today):
        service = FieldAnalysisService(fetcher, today=lambda: today)
        fetcher.fetch.return_value = SummaryOk(summary=sample_summary)

        analysis = await service.analyze(sample_polygon, sample_config)

        assert analysis.source == "live"

    @pytest.mark.asyncio
    async def test_invalid_polygon_is_rejected_before_fetching(self, service, fetcher, sample_config):
        with pytest.raises(PolygonError):
            await service.analyze(PolygonData(), sample_config)

        fetcher.fetch.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_get_summary_returns_the_outcome(self, service, fetcher, sample_polygon,
                                                   sample_config, empty_summary):
        fetcher.fetch.return_value = SummaryEmpty(summary=empty_summary)

        outcome = await service.get_summary(sample_polygon, sample_config)

        assert outcome.kind == "empty"
        fetcher.fetch.assert_awaited_once_with(sample_polygon, sample_config)
