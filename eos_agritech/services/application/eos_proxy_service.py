"""
Application service: the eos-proxy actions.

Validates proxy requests, resolves dates and cloud filters, runs the EOS
statistics and weather calls, and hands the raw data to the domain services.
"""
import asyncio
import logging
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from pydantic import BaseModel

from eos_agritech.domain.models import (
    CloudFilters,
    EosProxyRequest,
    EosSummary,
    SoilMoistureResult,
    VegetationData,
    VegetationMeta,
    VegetationResult,
    WeatherDay,
    WeatherMeta,
    WeatherResult,
)
from eos_agritech.infrastructure.api_constants import APIConstants, ErrorCodes
from eos_agritech.infrastructure.eos_api_client import (
    EosApiClient,
    EosApiError,
    MissingCredentialsError,
    StatisticsMap,
)
from eos_agritech.services.domain import summary_builder
from eos_agritech.services.domain.parameter_profiles import escalate_filters
from eos_agritech.services.domain.soil_moisture import estimate_soil_moisture
from eos_agritech.services.domain.weather_analysis import aggregate_weather, map_forecast
from eos_agritech.utils.polygon_io import PolygonError, build_geometry

logger = logging.getLogger(__name__)

SUMMARY_INDICES = ["NDVI", "NDMI"]
VEGETATION_INDICES = ["NDVI", "NDMI", "RECI"]
ACTIONS = ("vegetation", "weather", "summary", "soil_moisture")

DEFAULT_EXCLUDE_COVER_PIXELS = True
DEFAULT_CLOUD_MASKING_LEVEL = 1


def resolve_filters(request: EosProxyRequest, default_max_cloud_cover: int = 90) -> CloudFilters:
    """
    Cloud filters of a request with the proxy defaults.

    Cloud cover is clamped to 0-100 (default 90), cloudy pixels are excluded
    unless the request says otherwise and the masking level defaults to 1.
    """
    if request.max_cloud_cover_in_aoi is None:
        max_cloud = default_max_cloud_cover
    else:
        max_cloud = int(max(0, min(100, request.max_cloud_cover_in_aoi)))

    exclude = request.exclude_cover_pixels
    masking = request.cloud_masking_level
    return CloudFilters(
        max_cloud_cover_in_aoi=max_cloud,
        exclude_cover_pixels=DEFAULT_EXCLUDE_COVER_PIXELS if exclude is None else exclude,
        cloud_masking_level=masking if masking in (0, 1, 2) else DEFAULT_CLOUD_MASKING_LEVEL,
    )


def _has_observations(stats: StatisticsMap) -> bool:
    return any(values for values in stats.values())


class EosProxyService:
    """
    Server side of the summary fetch: one request, one result.

    Statistics tasks for the requested indices run concurrently. An empty
    result is retried once with tolerant filters when ``auto_fallback`` is
    enabled (the default).
    """

    def __init__(
        self,
        api_client: EosApiClient,
        fallback_filters: Optional[CloudFilters] = None,
        default_max_cloud_cover: int = 90,
        clock: Callable[[], date] = date.today,
        rng: Optional[np.random.Generator] = None,
    ):
        """
        Initialize the service with dependencies.

        Args:
            api_client: EOS API client
            fallback_filters: Tolerant filters for the empty-result retry
            default_max_cloud_cover: Cloud cover used when a request sets none
            clock: Returns today's date
            rng: Random generator for the soil-moisture estimate
        """
        self.api_client = api_client
        self.fallback_filters = fallback_filters or CloudFilters(
            max_cloud_cover_in_aoi=90,
            exclude_cover_pixels=False,
            cloud_masking_level=0,
        )
        self.default_max_cloud_cover = default_max_cloud_cover
        self.clock = clock
        self.rng = rng

    async def handle(self, request: EosProxyRequest) -> BaseModel:
        """
        Dispatch a proxy request to its action.

        Raises:
            EosApiError: For invalid requests (400), missing credentials (500)
                and provider failures
        """
        if not request.action:
            raise EosApiError("Missing 'action'", status_code=400, error_code=ErrorCodes.MISSING_ACTION)

        if request.polygon is None or (not request.polygon.geojson and not request.polygon.coordinates):
            raise EosApiError("Invalid polygon", status_code=400, error_code=ErrorCodes.INVALID_POLYGON)

        if request.action not in ACTIONS:
            raise EosApiError(
                "Unsupported action",
                status_code=400,
                error_code=ErrorCodes.UNSUPPORTED_ACTION,
            )

        if not self.api_client.has_credentials:
            raise MissingCredentialsError()

        handler = getattr(self, request.action)
        return await handler(request)

    def _geometry(self, request: EosProxyRequest) -> Dict[str, Any]:
        try:
            return build_geometry(request.polygon)
        except PolygonError as e:
            raise EosApiError(str(e), status_code=400, error_code=ErrorCodes.INVALID_POLYGON)

    async def _fetch_indices(
        self,
        indices: List[str],
        geometry: Dict[str, Any],
        start_date: str,
        end_date: str,
        filters: CloudFilters,
        aoi_cover_share_min: Optional[float] = None,
    ) -> StatisticsMap:
        """
        Run one statistics task per index concurrently and merge the results.

        When one index fails the tasks of the other indices are cancelled and
        awaited before the error is raised, so no poller outlives the request.
        """
        tasks = [
            asyncio.ensure_future(self.api_client.fetch_statistics(
                [index], geometry, start_date, end_date, filters, aoi_cover_share_min
            ))
            for index in indices
        ]
        try:
            results = await asyncio.gather(*tasks)
        except Exception:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        merged: StatisticsMap = {}
        for stats in results:
            merged.update(stats)
        return merged

    async def _fetch_with_fallback(
        self,
        request: EosProxyRequest,
        indices: List[str],
        geometry: Dict[str, Any],
        start_date: str,
        end_date: str,
        aoi_cover_share_min: Optional[float] = None,
    ):
        """
        Fetch statistics, retrying once with tolerant filters when empty.

        Returns:
            Tuple of (statistics, filters used, whether the fallback was used)
        """
        filters = resolve_filters(request, self.default_max_cloud_cover)
        stats = await self._fetch_indices(indices, geometry, start_date, end_date, filters, aoi_cover_share_min)

        auto_fallback = True if request.auto_fallback is None else request.auto_fallback
        if _has_observations(stats) or not auto_fallback:
            return stats, filters, False

        tolerant = escalate_filters(filters, self.fallback_filters)
        logger.warning(
            f"No observations for {indices} between {start_date} and {end_date}, "
            f"retrying with tolerant filters {tolerant.model_dump()}"
        )
        stats = await self._fetch_indices(indices, geometry, start_date, end_date, tolerant, aoi_cover_share_min)
        return stats, tolerant, True

    async def _optional_weather(self, fetch) -> List[WeatherDay]:
        """Weather that only refines a result: provider failures are logged and yield no records."""
        try:
            return await fetch
        except MissingCredentialsError:
            raise
        except EosApiError as e:
            logger.warning(f"Weather data unavailable: {e.message}")
            return []

    async def vegetation(self, request: EosProxyRequest) -> VegetationResult:
        """NDVI, NDMI and ReCI series with growth stage and health status."""
        geometry = self._geometry(request)
        today = self.clock()
        start = request.start_date or (today - timedelta(days=60)).isoformat()
        end = request.end_date or today.isoformat()

        stats, filters, fallback_used = await self._fetch_with_fallback(
            request, VEGETATION_INDICES, geometry, start, end, APIConstants.AOI_COVER_SHARE_MIN
        )
        series = summary_builder.build_series(stats)

        vegetation = VegetationData(
            field_id="LIVE_FIELD",
            satellite="Sentinel-2",
            time_series=series,
            analysis=summary_builder.vegetation_analysis(series),
        )
        meta = VegetationMeta(
            mode="live",
            start_date=start,
            end_date=end,
            reason=None if series else "no_observations",
            observation_count=len(series),
            fallback_used=fallback_used,
            used_filters=summary_builder.used_filters(
                filters, APIConstants.AOI_COVER_SHARE_MIN, APIConstants.SENSORS
            ),
            optimization_used=True,
            indices_requested=VEGETATION_INDICES,
        )
        logger.info(f"Vegetation: {len(series)} observations, fallback_used={fallback_used}")
        return VegetationResult(vegetation=vegetation, meta=meta)

    async def weather(self, request: EosProxyRequest) -> WeatherResult:
        """Aggregated weather history for the period plus a 7-day forecast."""
        geometry = self._geometry(request)
        today = self.clock()
        start = request.start_date or (today - timedelta(days=30)).isoformat()
        end = request.end_date or today.isoformat()

        history = await self.api_client.get_weather_history(geometry, start, end)
        forecast = await self._optional_weather(self.api_client.get_weather_forecast(geometry, days=7))

        weather, _ = aggregate_weather(history)
        weather.forecast = map_forecast(forecast)
        return WeatherResult(weather=weather, meta=WeatherMeta(start_date=start, end_date=end))

    async def summary(self, request: EosProxyRequest) -> EosSummary:
        """Field summary: index trends, phenology, weather risks and aggregated weather."""
        geometry = self._geometry(request)
        today = self.clock()
        start = request.planting_date or request.start_date or (today - timedelta(days=60)).isoformat()
        end = request.end_date or today.isoformat()

        stats, filters, fallback_used = await self._fetch_with_fallback(
            request, SUMMARY_INDICES, geometry, start, end
        )
        series = summary_builder.build_series(stats)

        history, forecast = await asyncio.gather(
            self._optional_weather(self.api_client.get_weather_history(
                geometry, (today - timedelta(days=30)).isoformat(), today.isoformat()
            )),
            self._optional_weather(self.api_client.get_weather_forecast(geometry, days=7)),
        )
        weather = None
        if history:
            weather, _ = aggregate_weather(history)
            weather.forecast = map_forecast(forecast)
        risks = summary_builder.compute_weather_risks(
            history, forecast, request.crop_type, today.month, weather
        )

        summary = summary_builder.build_summary(
            series,
            crop_type=request.crop_type,
            start_date=start,
            end_date=end,
            filters=filters,
            fallback_used=fallback_used,
            planting_date=request.planting_date,
            weather_risks=risks,
            weather=weather,
        )
        if not series:
            logger.warning(
                f"No observations for the field between {start} and {end} "
                f"(area {request.polygon.area_ha or 'unknown'} ha)"
            )
        logger.info(f"Summary: {len(series)} observations, fallback_used={fallback_used}")
        return summary

    async def soil_moisture(self, request: EosProxyRequest) -> SoilMoistureResult:
        """Seasonal soil-moisture estimate."""
        return SoilMoistureResult(soil_moisture=estimate_soil_moisture(self.clock(), self.rng))
