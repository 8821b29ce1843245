"""
Unit tests for the EOS API client.

Tests cover:
- Statistics task creation and polling
- Rate-limit backoff while polling
- Retry logic on 5xx errors, no retry on 4xx errors
- Missing credentials
- Weather endpoints
"""
import json

import pytest
import httpx
import respx
from unittest.mock import AsyncMock

from eos_agritech.domain.models import CloudFilters, WeatherDay
from eos_agritech.infrastructure.api_constants import ErrorCodes
from eos_agritech.infrastructure.eos_api_client import (
    EosApiClient,
    EosApiError,
    MissingCredentialsError,
    RateLimitError,
    StatisticsRow,
    TaskTimeoutError,
    parse_records,
    parse_statistics_result,
)

BASE_URL = "https://eos.test"
GEOMETRY = {
    "type": "Polygon",
    "coordinates": [[[12.49, 41.89], [12.495, 41.89], [12.495, 41.894], [12.49, 41.89]]],
}
FILTERS = CloudFilters(max_cloud_cover_in_aoi=90, exclude_cover_pixels=True, cloud_masking_level=1)


@pytest.fixture
def sleep():
    return AsyncMock(return_value=None)


@pytest.fixture
def client(sleep):
    return EosApiClient(api_key="secret", base_url=BASE_URL, max_polls=3, sleep=sleep)


# ============================================================
# Result Parsing Tests
# ============================================================

class TestParseStatisticsResult:
    """Tests for grouping task result rows."""

    def test_groups_rows_by_index(self):
        rows = [
            StatisticsRow(date="2024-05-01", bm_type="NDVI", average=0.61),
            StatisticsRow(date="2024-05-01", bm_type="NDMI", average=0.33),
            StatisticsRow(date="2024-05-06", bm_type="NDVI", average=0.64),
        ]

        stats = parse_statistics_result(rows, ["NDVI", "NDMI"])

        assert stats == {
            "NDVI": {"2024-05-01": 0.61, "2024-05-06": 0.64},
            "NDMI": {"2024-05-01": 0.33},
        }

    def test_rows_without_index_use_single_request_index(self):
        rows = [StatisticsRow(date="2024-05-01", average=0.5)]

        assert parse_statistics_result(rows, ["NDMI"]) == {"NDMI": {"2024-05-01": 0.5}}

    def test_invalid_records_are_dropped(self):
        rows = parse_records(StatisticsRow, [
            {"bm_type": "NDVI", "average": 0.5},
            {"date": "", "average": 0.5},
            {"date": "2024-05-01", "bm_type": "NDVI", "average": None},
            "garbage",
            {"date": "2024-05-06", "bm_type": "NDVI", "average": "0.64"},
        ])

        assert rows == [StatisticsRow(date="2024-05-06", bm_type="NDVI", average=0.64)]
        assert parse_statistics_result(rows, ["NDVI"]) == {"NDVI": {"2024-05-06": 0.64}}


# ============================================================
# Statistics Task Tests
# ============================================================

class TestStatisticsTasks:
    """Tests for the create/poll cycle."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_create_task_sends_filters_and_key(self, client):
        """The create call carries the task type, sensors and filters."""
        route = respx.post(f"{BASE_URL}/api/gdw/api").mock(
            return_value=httpx.Response(200, json={"task_id": "t-1"})
        )

        task_id = await client.create_statistics_task(
            ["NDVI"], GEOMETRY, "2024-03-01", "2024-05-01", FILTERS, aoi_cover_share_min=0.1
        )

        assert task_id == "t-1"
        request = route.calls.last.request
        assert request.url.params["api_key"] == "secret"
        body = json.loads(request.content)
        assert body["type"] == "mt_stats"
        params = body["params"]
        assert params["bm_type"] == ["NDVI"]
        assert params["sensors"] == ["sentinel2l2a"]
        assert params["max_cloud_cover_in_aoi"] == 90
        assert params["exclude_cover_pixels"] is True
        assert params["cloud_masking_level"] == 1
        assert params["aoi_cover_share_min"] == 0.1
        assert params["reference"].startswith("eos-agritech-")
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_create_task_without_task_id(self, client):
        respx.post(f"{BASE_URL}/api/gdw/api").mock(return_value=httpx.Response(200, json={}))

        with pytest.raises(EosApiError) as exc_info:
            await client.create_statistics_task(["NDVI"], GEOMETRY, "2024-03-01", "2024-05-01", FILTERS)

        assert exc_info.value.error_code == ErrorCodes.NO_TASK_ID
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_polls_until_result(self, client, sleep):
        """Unfinished polls wait 6s, then 6.5s."""
        respx.get(f"{BASE_URL}/api/gdw/api/t-1").mock(side_effect=[
            httpx.Response(200, json={"status": "running"}),
            httpx.Response(200, json={"status": "running"}),
            httpx.Response(200, json={"result": [{"date": "2024-05-01", "average": 0.7}]}),
        ])

        stats = await client.wait_for_statistics("t-1", ["NDVI"])

        assert stats == {"NDVI": {"2024-05-01": 0.7}}
        assert [c.args[0] for c in sleep.await_args_list] == [6.0, 6.5]
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_poll_rate_limit_honours_retry_after(self, client, sleep):
        respx.get(f"{BASE_URL}/api/gdw/api/t-1").mock(side_effect=[
            httpx.Response(429, headers={"Retry-After": "45"}, text="Too Many Requests"),
            httpx.Response(200, json={"result": []}),
        ])

        stats = await client.wait_for_statistics("t-1", ["NDVI"])

        assert stats == {"NDVI": {}}
        # Retry-After is capped at 30 seconds
        assert sleep.await_args_list[0].args[0] == 30.0
        await client.close()

    def test_rate_limit_delay_without_header(self):
        """7s plus 2.5s per poll, capped at 20s."""
        assert EosApiClient.rate_limit_delay(1, None) == 9.5
        assert EosApiClient.rate_limit_delay(6, None) == 20.0

    def test_poll_delay_is_capped(self, client):
        assert client.poll_delay(1) == 6.0
        assert client.poll_delay(10) == 8.0

    @pytest.mark.asyncio
    @respx.mock
    async def test_poll_timeout(self, client):
        respx.get(f"{BASE_URL}/api/gdw/api/t-1").mock(
            return_value=httpx.Response(200, json={"status": "running"})
        )

        with pytest.raises(TaskTimeoutError) as exc_info:
            await client.wait_for_statistics("t-1", ["NDVI"])

        assert exc_info.value.error_code == ErrorCodes.TASK_TIMEOUT
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_statistics(self, client):
        respx.post(f"{BASE_URL}/api/gdw/api").mock(
            return_value=httpx.Response(200, json={"task_id": "t-9"})
        )
        respx.get(f"{BASE_URL}/api/gdw/api/t-9").mock(
            return_value=httpx.Response(200, json={"result": [
                {"date": "2024-05-01", "bm_type": "NDMI", "average": 0.31},
            ]})
        )

        stats = await client.fetch_statistics(["NDMI"], GEOMETRY, "2024-03-01", "2024-05-01", FILTERS)

        assert stats == {"NDMI": {"2024-05-01": 0.31}}
        await client.close()


# ============================================================
# Error Handling Tests
# ============================================================

class TestErrorHandling:
    """Tests for error mapping and retries."""

    @pytest.mark.asyncio
    async def test_missing_key_raises_before_request(self, sleep):
        client = EosApiClient(api_key="", base_url=BASE_URL, sleep=sleep)

        with pytest.raises(MissingCredentialsError) as exc_info:
            await client.create_statistics_task(["NDVI"], GEOMETRY, "2024-03-01", "2024-05-01", FILTERS)

        assert exc_info.value.error_code == ErrorCodes.MISSING_API_KEY
        assert client.has_credentials is False
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_429_raises_rate_limit(self, client):
        respx.post(f"{BASE_URL}/api/gdw/api").mock(
            return_value=httpx.Response(429, headers={"Retry-After": "12"}, text="Too Many Requests")
        )

        with pytest.raises(RateLimitError) as exc_info:
            await client.create_statistics_task(["NDVI"], GEOMETRY, "2024-03-01", "2024-05-01", FILTERS)

        assert exc_info.value.status_code == 429
        assert exc_info.value.retry_after == 12.0
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_limit_message_raises_rate_limit(self, client):
        respx.post(f"{BASE_URL}/api/gdw/api").mock(
            return_value=httpx.Response(403, text="Request limit exceeded")
        )

        with pytest.raises(RateLimitError):
            await client.create_statistics_task(["NDVI"], GEOMETRY, "2024-03-01", "2024-05-01", FILTERS)
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_4xx_error_no_retry(self, client):
        """4xx errors should not trigger retry."""
        route = respx.post(f"{BASE_URL}/api/gdw/api").mock(
            return_value=httpx.Response(400, text="Bad geometry")
        )

        with pytest.raises(EosApiError) as exc_info:
            await client.create_statistics_task(["NDVI"], GEOMETRY, "2024-03-01", "2024-05-01", FILTERS)

        assert route.call_count == 1
        assert exc_info.value.error_code == ErrorCodes.EOS_CREATE_FAILED
        assert exc_info.value.provider_status == 400
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_5xx_error_triggers_retry(self, client):
        """5xx errors should trigger retry."""
        route = respx.get(f"{BASE_URL}/api/gdw/api/t-1").mock(side_effect=[
            httpx.Response(500, text="Internal Server Error"),
            httpx.Response(200, json={"result": []}),
        ])

        result = await client.get_task_result("t-1")

        assert result == []
        assert route.call_count == 2
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_task_result_keeps_only_valid_rows(self, client):
        respx.get(f"{BASE_URL}/api/gdw/api/t-1").mock(return_value=httpx.Response(200, json={"result": [
            {"date": "2024-05-01", "average": None},
            "garbage",
            {"average": 0.5},
            {"date": "2024-05-06", "average": "0.64"},
        ]}))

        rows = await client.get_task_result("t-1")

        assert rows == [StatisticsRow(date="2024-05-06", average=0.64)]
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_unexpected_status_payload(self, client):
        respx.get(f"{BASE_URL}/api/gdw/api/t-1").mock(return_value=httpx.Response(200, json=[1, 2]))

        with pytest.raises(EosApiError) as exc_info:
            await client.get_task_result("t-1")

        assert exc_info.value.error_code == ErrorCodes.INVALID_RESPONSE
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_numeric_task_id(self, client):
        respx.post(f"{BASE_URL}/api/gdw/api").mock(return_value=httpx.Response(200, json={"task_id": 42}))

        task_id = await client.create_statistics_task(["NDVI"], GEOMETRY, "2024-03-01", "2024-05-01", FILTERS)

        assert task_id == "42"
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_body(self, client):
        respx.get(f"{BASE_URL}/api/gdw/api/t-1").mock(return_value=httpx.Response(200, text="<html>"))

        with pytest.raises(EosApiError) as exc_info:
            await client.get_task_result("t-1")

        assert exc_info.value.error_code == ErrorCodes.INVALID_RESPONSE
        await client.close()

    def test_error_payload(self):
        error = RateLimitError("slow down", retry_after=5.0)

        assert error.to_payload() == {
            "error": "slow down",
            "error_code": "RATE_LIMITED",
            "provider_status": 429,
            "retry_after": 5.0,
        }


# ============================================================
# Weather Tests
# ============================================================

class TestWeather:
    """Tests for the weather endpoints."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_history_returns_weather_days(self, client):
        route = respx.post(f"{BASE_URL}/api/cz/backend/forecast-history/").mock(
            return_value=httpx.Response(200, json=[
                {"date": "2024-05-01", "temperature_max": 24, "rainfall": "1.5", "source": "model"},
                {"date": "2024-05-02", "temperature_max": "n/a"},
            ])
        )

        days = await client.get_weather_history(GEOMETRY, "2024-04-20", "2024-05-20")

        assert days == [WeatherDay(date="2024-05-01", temperature_max=24, rainfall=1.5)]
        assert days[0].temperature_min is None
        body = json.loads(route.calls.last.request.content)
        assert body["start_date"] == "2024-04-20"
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_forecast_limited_to_days(self, client):
        respx.post(f"{BASE_URL}/api/cz/backend/forecast/").mock(
            return_value=httpx.Response(200, json=[{"date": f"2024-05-{d:02d}"} for d in range(1, 11)])
        )

        days = await client.get_weather_forecast(GEOMETRY, days=7)

        assert len(days) == 7
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_weather_error_code(self, client):
        respx.post(f"{BASE_URL}/api/cz/backend/forecast/").mock(
            return_value=httpx.Response(404, text="not found")
        )

        with pytest.raises(EosApiError) as exc_info:
            await client.get_weather_forecast(GEOMETRY)

        assert exc_info.value.error_code == ErrorCodes.WEATHER_API_ERROR
        await client.close()

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_list_weather_body(self, client):
        respx.post(f"{BASE_URL}/api/cz/backend/forecast/").mock(
            return_value=httpx.Response(200, json={"detail": "no data"})
        )

        assert await client.get_weather_forecast(GEOMETRY) == []
        await client.close()


# ============================================================
# Async Context Manager Tests
# ============================================================

class TestAsyncContextManager:
    """Tests for async context manager functionality."""

    @pytest.mark.asyncio
    async def test_context_manager_exit_closes_client(self):
        """__aexit__ should close the HTTP client."""
        client = EosApiClient(api_key="secret", base_url=BASE_URL)
        client.close = AsyncMock()

        async with client as ctx_client:
            assert ctx_client is client

        client.close.assert_called_once()
