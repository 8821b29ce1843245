"""
Shared pytest fixtures for all tests.

This module provides common fixtures including:
- Sample field polygons and configs
- Sample index statistics and summaries
- Test settings and a recording sleep
- FastAPI test client with services on app.state
"""
import pytest
from datetime import date, timedelta
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from eos_agritech.config import Settings
from eos_agritech.domain.models import CloudFilters, EosConfig, PolygonData
from eos_agritech.infrastructure.session_store import SessionStore
from eos_agritech.main import app, limiter
from eos_agritech.services.application.eos_proxy_service import EosProxyService
from eos_agritech.services.application.field_analysis_service import FieldAnalysisService
from eos_agritech.services.domain import summary_builder


TODAY = date(2024, 5, 20)


# ============================================================
# Sample Data Fixtures
# ============================================================

@pytest.fixture
def today() -> date:
    """Fixed reference date (spring, for the Italian season profiles)."""
    return TODAY


@pytest.fixture
def sample_ring() -> list[list[float]]:
    """A ~18 ha rectangle near Rome, closed, [lon, lat]."""
    return [
        [12.4900, 41.8900],
        [12.4950, 41.8900],
        [12.4950, 41.8940],
        [12.4900, 41.8940],
        [12.4900, 41.8900],
    ]


@pytest.fixture
def sample_polygon(sample_ring) -> PolygonData:
    """Drawn polygon in Italy."""
    return PolygonData(coordinates=sample_ring, source="drawn", area_ha=18.4)


@pytest.fixture
def french_polygon() -> PolygonData:
    """Drawn polygon outside Italy (Beauce, France)."""
    return PolygonData(
        coordinates=[
            [1.50, 48.30],
            [1.51, 48.30],
            [1.51, 48.31],
            [1.50, 48.31],
            [1.50, 48.30],
        ],
        source="drawn",
    )


@pytest.fixture
def sample_config() -> EosConfig:
    """Live wheat config with a planting date."""
    return EosConfig(crop_type="wheat", api_key="live-key", planting_date="2023-11-01")


def make_stats(ndvi: list[float], ndmi: list[float], start: date = TODAY - timedelta(days=50),
               step_days: int = 5) -> dict:
    """Per-index {date: value} maps for evenly spaced observations."""
    dates = [(start + timedelta(days=i * step_days)).isoformat() for i in range(len(ndvi))]
    return {
        "NDVI": dict(zip(dates, ndvi)),
        "NDMI": dict(zip(dates, ndmi)),
    }


@pytest.fixture
def stats_factory():
    """Builder for per-index statistics maps."""
    return make_stats


@pytest.fixture
def sample_stats() -> dict:
    """Eleven observations of a healthy, greening wheat field."""
    return make_stats(
        ndvi=[0.42, 0.45, 0.49, 0.53, 0.56, 0.60, 0.63, 0.66, 0.69, 0.71, 0.73],
        ndmi=[0.30, 0.31, 0.33, 0.34, 0.35, 0.36, 0.36, 0.37, 0.38, 0.38, 0.39],
    )


@pytest.fixture
def sample_filters() -> CloudFilters:
    return CloudFilters(max_cloud_cover_in_aoi=50, exclude_cover_pixels=False, cloud_masking_level=1)


@pytest.fixture
def sample_summary(sample_stats, sample_filters):
    """Summary with observations, as the proxy would return it."""
    series = summary_builder.build_series(sample_stats)
    return summary_builder.build_summary(
        series,
        crop_type="wheat",
        start_date="2023-11-01",
        end_date=TODAY.isoformat(),
        filters=sample_filters,
        planting_date="2023-11-01",
    )


@pytest.fixture
def empty_summary(sample_filters):
    """Summary without observations."""
    return summary_builder.build_summary(
        [],
        crop_type="wheat",
        start_date="2024-03-21",
        end_date=TODAY.isoformat(),
        filters=sample_filters,
    )


# ============================================================
# Settings and Timing Fixtures
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings independent of the environment."""
    return Settings(
        _env_file=None,
        eos_data_api_key="test-key",
        eos_statistics_bearer="",
        eos_proxy_url=None,
        summary_max_attempts=4,
        summary_error_pause=2.0,
        summary_max_rate_limit_retries=4,
        summary_deadline_seconds=None,
    )


@pytest.fixture
def no_sleep() -> AsyncMock:
    """Sleep double that records the requested delays."""
    return AsyncMock(return_value=None)


# ============================================================
# FastAPI Test Client Fixtures
# ============================================================

@pytest.fixture
def session_store():
    """In-memory session store."""
    store = SessionStore(":memory:")
    yield store
    store.close()


@pytest.fixture
def mock_proxy_service() -> AsyncMock:
    return AsyncMock(spec=EosProxyService)


@pytest.fixture
def mock_analysis_service() -> AsyncMock:
    return AsyncMock(spec=FieldAnalysisService)


@pytest.fixture
def test_client(mock_proxy_service, mock_analysis_service, session_store) -> TestClient:
    """
    Synchronous test client for FastAPI.

    The lifespan does not run; the services it would build are placed on
    ``app.state`` directly.
    """
    app.state.proxy_service = mock_proxy_service
    app.state.field_analysis_service = mock_analysis_service
    app.state.session_store = session_store
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.reset()
