"""
Infrastructure layer: EOS API client with retry and task polling.

Transport failures and 5xx responses are retried with exponential backoff.
Rate limits (429) are raised as ``RateLimitError`` so that the callers'
state machines decide how to back off.
"""
import asyncio
import logging
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Type, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from eos_agritech.config import Settings, settings
from eos_agritech.domain.models import CloudFilters, WeatherDay
from eos_agritech.infrastructure.api_constants import (
    APIConstants,
    EosAPIEndpoints,
    ErrorCodes,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
StatisticsMap = Dict[str, Dict[str, float]]
"""Index name -> {date -> average value}."""

ModelT = TypeVar("ModelT", bound=BaseModel)


# Pydantic models for API responses
class TaskCreatedResponse(BaseModel):
    """Response of the statistics task create call."""
    model_config = ConfigDict(coerce_numbers_to_str=True)

    task_id: Optional[str] = None


class StatisticsRow(BaseModel):
    """One date of a finished statistics task."""
    date: str = Field(min_length=1)
    average: float
    bm_type: Optional[str] = Field(default=None, description="Index name; absent for single-index tasks")


class TaskStatusResponse(BaseModel):
    """Status of a statistics task; ``result`` is set once the task finished."""
    status: Optional[str] = None
    result: Optional[List[Any]] = Field(
        default=None,
        description="Result rows, validated one by one into StatisticsRow",
    )


def parse_records(model: Type[ModelT], records: Sequence[Any]) -> List[ModelT]:
    """
    Validate provider records one by one.

    Records that do not fit the model (missing dates, non-numeric values,
    non-object entries) are dropped so that one bad day does not discard a
    whole series.
    """
    parsed: List[ModelT] = []
    for record in records:
        try:
            parsed.append(model.model_validate(record))
        except ValidationError as e:
            logger.debug(f"Dropping {model.__name__} record: {e.error_count()} validation error(s)")
    return parsed


class EosApiError(Exception):
    """Error raised for failed EOS API calls."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = ErrorCodes.EOS_STATUS_FAILED,
        provider_status: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.provider_status = provider_status
        self.retry_after = retry_after

    def to_payload(self) -> Dict[str, Any]:
        """Error body returned by the proxy endpoint."""
        return {
            "error": self.message,
            "error_code": self.error_code,
            "provider_status": self.provider_status,
            "retry_after": self.retry_after,
        }


class RateLimitError(EosApiError):
    """The provider answered 429 or reported a usage limit."""

    def __init__(self, message: str, retry_after: Optional[float] = None, provider_status: int = 429):
        super().__init__(
            message,
            status_code=429,
            error_code=ErrorCodes.RATE_LIMITED,
            provider_status=provider_status,
            retry_after=retry_after,
        )


class MissingCredentialsError(EosApiError):
    """No EOS API key is configured."""

    def __init__(self, message: str = "Missing EOS API key. Please set EOS_DATA_API_KEY."):
        super().__init__(message, status_code=500, error_code=ErrorCodes.MISSING_API_KEY)


class TaskTimeoutError(EosApiError):
    """A statistics task did not finish within the polling budget."""

    def __init__(self, message: str = "Statistics task timed out after maximum attempts"):
        super().__init__(message, status_code=504, error_code=ErrorCodes.TASK_TIMEOUT)


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def parse_statistics_result(rows: Sequence[StatisticsRow], indices: List[str]) -> StatisticsMap:
    """
    Group statistics rows by index and date.

    Rows without ``bm_type`` are attributed to the single requested index.

    Args:
        rows: Validated rows of a finished task
        indices: Indices the task was created with

    Returns:
        Mapping of index name to {date: average}
    """
    stats: StatisticsMap = {index: {} for index in indices}
    default_index = indices[0] if len(indices) == 1 else None

    for row in rows:
        index = row.bm_type or default_index
        if index is None:
            continue
        stats.setdefault(index, {})[row.date] = row.average

    return stats


class EosApiClient:
    """
    Client for the EOS statistics and weather API.

    Implements retry logic with exponential backoff for transport errors
    and the create/poll cycle of asynchronous statistics tasks.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = settings.eos_api_base_url,
        poll_min_interval: float = settings.status_poll_min_interval,
        poll_max_interval: float = settings.status_poll_max_interval,
        max_polls: int = settings.status_poll_max_attempts,
        sleep: Sleep = asyncio.sleep,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the API client.

        Args:
            api_key: EOS API key, sent as the ``api_key`` query parameter
            base_url: EOS API base URL
            poll_min_interval: Delay after the first unfinished status poll
            poll_max_interval: Upper bound for the delay between polls
            max_polls: Status polls allowed per task
            sleep: Coroutine used for waiting (injectable for tests)
            client: Pre-built HTTP client (a new one is created when omitted)
        """
        self.api_key = api_key
        self.base_url = base_url
        self.poll_min_interval = poll_min_interval
        self.poll_max_interval = poll_max_interval
        self.max_polls = max_polls
        self._sleep = sleep
        self.client = client or httpx.AsyncClient(
            base_url=self.base_url,
            headers={"accept": APIConstants.CONTENT_TYPE_JSON},
            timeout=APIConstants.DEFAULT_TIMEOUT,
        )

    @classmethod
    def from_settings(cls, config: Settings, **kwargs) -> "EosApiClient":
        """Build a client from application settings."""
        return cls(
            api_key=config.eos_api_key,
            base_url=config.eos_api_base_url,
            poll_min_interval=config.status_poll_min_interval,
            poll_max_interval=config.status_poll_max_interval,
            max_polls=config.status_poll_max_attempts,
            **kwargs,
        )

    async def __aenter__(self) -> "EosApiClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)

    def _require_key(self) -> Dict[str, str]:
        if not self.api_key:
            raise MissingCredentialsError()
        return {"api_key": self.api_key}

    @retry(
        stop=stop_after_attempt(settings.max_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_backoff_multiplier,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.RequestError)),
        reraise=True,
    )
    async def _send(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """Send a request, raising on 5xx so that it is retried."""
        response = await self.client.request(method, endpoint, **kwargs)
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        error_code: str = ErrorCodes.EOS_STATUS_FAILED,
        **kwargs,
    ) -> Any:
        """
        Make an HTTP request with retry logic.

        Args:
            method: HTTP method (GET, POST, etc.)
            endpoint: API endpoint path
            error_code: Code attached to errors from this call
            **kwargs: Additional arguments for the request

        Returns:
            Decoded JSON body

        Raises:
            RateLimitError: On 429 or a "limit" error body
            EosApiError: If the request fails after retries
        """
        try:
            response = await self._send(method, endpoint, **kwargs)
        except httpx.HTTPStatusError as e:
            raise EosApiError(
                f"EOS request failed: {e.response.status_code} - {e.response.text}",
                error_code=error_code,
                provider_status=e.response.status_code,
            )
        except httpx.RequestError as e:
            raise EosApiError(f"EOS request error: {str(e)}", error_code=error_code)

        if response.is_error:
            body = response.text
            if response.status_code == 429 or "limit" in body.lower():
                raise RateLimitError(
                    f"EOS rate limit: {response.status_code} {body}",
                    retry_after=_parse_retry_after(response),
                    provider_status=response.status_code,
                )
            raise EosApiError(
                f"EOS request failed: {response.status_code} - {body}",
                error_code=error_code,
                provider_status=response.status_code,
            )

        try:
            return response.json()
        except ValueError:
            raise EosApiError(
                "EOS returned a non-JSON body",
                error_code=ErrorCodes.INVALID_RESPONSE,
                provider_status=response.status_code,
            )

    async def create_statistics_task(
        self,
        indices: List[str],
        geometry: Dict[str, Any],
        start_date: str,
        end_date: str,
        filters: CloudFilters,
        aoi_cover_share_min: Optional[float] = None,
    ) -> str:
        """
        Create an asynchronous multi-temporal statistics task.

        Args:
            indices: Index names, e.g. ["NDVI", "NDMI"]
            geometry: GeoJSON Polygon geometry
            start_date: First date (YYYY-MM-DD)
            end_date: Last date (YYYY-MM-DD)
            filters: Cloud filters for scene selection
            aoi_cover_share_min: Minimum share of the field a scene must cover

        Returns:
            The task identifier

        Raises:
            EosApiError: If the task cannot be created
        """
        params: Dict[str, Any] = {
            "bm_type": indices,
            "date_start": start_date,
            "date_end": end_date,
            "geometry": geometry,
            "reference": f"eos-agritech-{uuid.uuid4().hex[:12]}-{'-'.join(indices).lower()}",
            "sensors": APIConstants.SENSORS,
            **filters.model_dump(),
        }
        if aoi_cover_share_min is not None:
            params["aoi_cover_share_min"] = aoi_cover_share_min

        logger.debug(f"Creating statistics task for {indices} with filters {filters.model_dump()}")
        data = await self._make_request(
            "POST",
            EosAPIEndpoints.STATISTICS_TASKS,
            error_code=ErrorCodes.EOS_CREATE_FAILED,
            params=self._require_key(),
            json={"type": APIConstants.TASK_TYPE, "params": params},
        )

        try:
            task_id = TaskCreatedResponse.model_validate(data).task_id
        except ValidationError:
            task_id = None
        if not task_id:
            raise EosApiError(
                "No task_id from statistics create",
                error_code=ErrorCodes.NO_TASK_ID,
                provider_status=200,
            )
        return task_id

    async def get_task_result(self, task_id: str) -> Optional[List[StatisticsRow]]:
        """
        Fetch the status of a statistics task.

        Returns:
            The valid ``result`` rows when the task is finished, None while it runs

        Raises:
            EosApiError: If the status payload is not a task status object
        """
        data = await self._make_request(
            "GET",
            EosAPIEndpoints.get_task_status(task_id),
            params=self._require_key(),
        )
        try:
            status = TaskStatusResponse.model_validate(data)
        except ValidationError:
            raise EosApiError(
                f"Unexpected status payload for task {task_id}",
                error_code=ErrorCodes.INVALID_RESPONSE,
                provider_status=200,
            )
        if status.result is None:
            return None
        return parse_records(StatisticsRow, status.result)

    def poll_delay(self, poll: int) -> float:
        """Delay after an unfinished poll; grows by half a second per poll."""
        return min(self.poll_max_interval, self.poll_min_interval + (poll - 1) * 0.5)

    @staticmethod
    def rate_limit_delay(poll: int, retry_after: Optional[float]) -> float:
        """Delay after a rate-limited poll, honouring Retry-After when given."""
        if retry_after:
            return min(APIConstants.RETRY_AFTER_CAP, retry_after)
        return min(
            APIConstants.POLL_RATE_LIMIT_CAP,
            APIConstants.POLL_RATE_LIMIT_BASE + poll * APIConstants.POLL_RATE_LIMIT_STEP,
        )

    async def wait_for_statistics(self, task_id: str, indices: List[str]) -> StatisticsMap:
        """
        Poll a statistics task until it finishes.

        Raises:
            TaskTimeoutError: If the task is still running after ``max_polls`` polls
            EosApiError: On non rate-limit status failures
        """
        for poll in range(1, self.max_polls + 1):
            try:
                result = await self.get_task_result(task_id)
            except RateLimitError as e:
                delay = self.rate_limit_delay(poll, e.retry_after)
                logger.warning(
                    f"Rate limited on status check for task {task_id} "
                    f"(poll {poll}/{self.max_polls}), backing off {delay:.1f}s"
                )
                await self._sleep(delay)
                continue

            if result is not None:
                stats = parse_statistics_result(result, indices)
                logger.info(
                    f"Task {task_id} finished after {poll} polls: "
                    + ", ".join(f"{k}={len(v)}" for k, v in stats.items())
                )
                return stats

            await self._sleep(self.poll_delay(poll))

        raise TaskTimeoutError()

    async def fetch_statistics(
        self,
        indices: List[str],
        geometry: Dict[str, Any],
        start_date: str,
        end_date: str,
        filters: CloudFilters,
        aoi_cover_share_min: Optional[float] = None,
    ) -> StatisticsMap:
        """Create a statistics task and wait for its result."""
        task_id = await self.create_statistics_task(
            indices, geometry, start_date, end_date, filters, aoi_cover_share_min
        )
        return await self.wait_for_statistics(task_id, indices)

    async def get_weather_history(
        self,
        geometry: Dict[str, Any],
        start_date: str,
        end_date: str,
    ) -> List[WeatherDay]:
        """
        Fetch daily weather records for a period.

        Returns:
            Validated daily records (empty when the provider returns no list)
        """
        data = await self._make_request(
            "POST",
            EosAPIEndpoints.WEATHER_HISTORY,
            error_code=ErrorCodes.WEATHER_API_ERROR,
            params=self._require_key(),
            json={"geometry": geometry, "start_date": start_date, "end_date": end_date},
        )
        return parse_records(WeatherDay, data) if isinstance(data, list) else []

    async def get_weather_forecast(self, geometry: Dict[str, Any], days: int = 7) -> List[WeatherDay]:
        """Fetch the daily forecast for the next ``days`` days."""
        data = await self._make_request(
            "POST",
            EosAPIEndpoints.WEATHER_FORECAST,
            error_code=ErrorCodes.WEATHER_API_ERROR,
            params=self._require_key(),
            json={"geometry": geometry, "days": days},
        )
        return parse_records(WeatherDay, data)[:days] if isinstance(data, list) else []
