"""
Application service: the summary fetcher.

Runs up to four summary attempts against the eos-proxy, widening the cloud
filters whenever an attempt returns no observations or fails. Rate limits
back off and repeat the same attempt. The run state is an immutable value
moved along by the pure transition functions below.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Awaitable, Callable, Optional, Protocol, Tuple

from eos_agritech.config import Settings
from eos_agritech.domain.models import (
    CloudFilters,
    EosConfig,
    EosProxyRequest,
    EosSummary,
    PolygonData,
)
from eos_agritech.domain.outcomes import (
    ErrorKind,
    SummaryEmpty,
    SummaryFailed,
    SummaryOk,
    SummaryOutcome,
)
from eos_agritech.infrastructure.api_constants import ErrorCodes
from eos_agritech.infrastructure.eos_api_client import (
    EosApiError,
    MissingCredentialsError,
    RateLimitError,
)
from eos_agritech.services.domain import demo_data, summary_builder
from eos_agritech.services.domain.parameter_profiles import (
    EOS_PARAMETER_PROFILES,
    apply_optimal_parameters,
    escalate_filters,
    filters_from_config,
    profile_for_attempt,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class SummaryTransport(Protocol):
    """Anything able to answer a ``summary`` proxy request."""

    async def fetch_summary(self, request: EosProxyRequest) -> EosSummary:
        ...


@dataclass(frozen=True)
class FetchState:
    """Where a fetch run stands."""
    attempt: int
    filters: CloudFilters
    rate_limit_hits: int = 0
    attempt_rate_limit_hits: int = 0
    deadline: Optional[float] = None
    last_error: Optional[ErrorKind] = None
    last_detail: str = ""


def initial_state(filters: CloudFilters, deadline: Optional[float] = None) -> FetchState:
    return FetchState(attempt=1, filters=filters, deadline=deadline)


def rate_limit_backoff(hit: int) -> float:
    """Backoff in seconds for the k-th rate-limit hit of a run: 3, 8, then 5 * k."""
    if hit <= 1:
        return 3.0
    if hit == 2:
        return 8.0
    return 5.0 * hit


def next_filters(state: FetchState) -> CloudFilters:
    """Filters for the attempt after ``state``; never narrower than the current ones."""
    profile = profile_for_attempt(state.attempt + 1)
    if profile is None:
        return state.filters
    return escalate_filters(state.filters, EOS_PARAMETER_PROFILES[profile])


def on_rate_limited(state: FetchState) -> Tuple[FetchState, float]:
    """Stay on the same attempt and count the hit; returns the new state and the backoff."""
    hits = state.rate_limit_hits + 1
    new_state = replace(
        state,
        rate_limit_hits=hits,
        attempt_rate_limit_hits=state.attempt_rate_limit_hits + 1,
        last_error=ErrorKind.RATE_LIMITED,
    )
    return new_state, rate_limit_backoff(hits)


def _advance(state: FetchState, **changes) -> FetchState:
    return replace(
        state,
        attempt=state.attempt + 1,
        filters=next_filters(state),
        attempt_rate_limit_hits=0,
        **changes,
    )


def on_error(state: FetchState, kind: ErrorKind, detail: str) -> FetchState:
    """Move to the next escalation level after a failed attempt."""
    return _advance(state, last_error=kind, last_detail=detail)


def on_empty(state: FetchState) -> FetchState:
    """Move to the next escalation level after an attempt without observations."""
    return _advance(state, last_error=None, last_detail="")


def is_rate_limit(error: EosApiError) -> bool:
    return (
        isinstance(error, RateLimitError)
        or error.status_code == 429
        or "limit" in error.message.lower()
    )


def classify_error(error: EosApiError) -> ErrorKind:
    if isinstance(error, MissingCredentialsError):
        return ErrorKind.CONFIGURATION
    if error.error_code == ErrorCodes.INVALID_RESPONSE:
        return ErrorKind.INVALID_RESPONSE
    if error.error_code == ErrorCodes.TASK_TIMEOUT:
        return ErrorKind.TIMEOUT
    if is_rate_limit(error):
        return ErrorKind.RATE_LIMITED
    return ErrorKind.PROVIDER


def resolve_dates(config: EosConfig, today: date) -> Tuple[str, str]:
    """Planting date, else configured start, else 60 days back; end defaults to today."""
    start = config.planting_date or config.start_date or (today - timedelta(days=60)).isoformat()
    end = config.end_date or today.isoformat()
    return start, end


class SummaryFetcher:
    """
    Fetch a field summary with cloud-filter escalation.

    Every run ends in a tagged outcome carrying a displayable summary:
    ``SummaryOk`` on the first attempt with observations, ``SummaryEmpty``
    when all attempts answered without data and ``SummaryFailed`` otherwise.
    """

    def __init__(
        self,
        transport: SummaryTransport,
        config: Settings,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = date.today,
    ):
        """
        Initialize the fetcher with dependencies.

        Args:
            transport: Proxy used to run each attempt
            config: Application settings (attempts, pauses, deadline)
            sleep: Coroutine used for waiting (injectable for tests)
            clock: Monotonic clock checked against the deadline
            today: Returns today's date
        """
        self.transport = transport
        self.max_attempts = config.summary_max_attempts
        self.error_pause = config.summary_error_pause
        self.max_rate_limit_retries = config.summary_max_rate_limit_retries
        self.deadline_seconds = config.summary_deadline_seconds
        self._sleep = sleep
        self._clock = clock
        self._today = today

    async def fetch(self, polygon: PolygonData, config: EosConfig) -> SummaryOutcome:
        """
        Run the escalation loop for one field.

        This method orchestrates:
        1. Demo short-circuit for the ``demo`` key
        2. Optimised filters for attempt 1
        3. Attempts with rate-limit backoff and escalation
        4. Give-up summary after the last attempt

        Args:
            polygon: Field boundary
            config: Crop, dates and optional filter overrides

        Returns:
            Tagged fetch outcome
        """
        today = self._today()
        start, end = resolve_dates(config, today)

        if config.is_demo:
            logger.info("Demo key in use, serving the demo summary")
            summary = demo_data.demo_summary(start, end, config.planting_date)
            return SummaryOk(summary=summary)

        optimised = apply_optimal_parameters(config, polygon, today)
        deadline = None
        if self.deadline_seconds is not None:
            deadline = self._clock() + self.deadline_seconds
        state = initial_state(filters_from_config(optimised), deadline)

        while state.attempt <= self.max_attempts:
            if self._past_deadline(state):
                return self._timed_out(state, start, end)

            request = self._request(polygon, optimised, state.filters, start, end)
            profile = profile_for_attempt(state.attempt)
            logger.info(
                f"Summary attempt {state.attempt}/{self.max_attempts} "
                f"(profile {profile or 'optimised'}, filters {state.filters.model_dump()})"
            )

            try:
                summary = await self.transport.fetch_summary(request)
            except MissingCredentialsError as e:
                logger.error(f"Summary fetch not configured: {e.message}")
                return SummaryFailed(
                    error_kind=ErrorKind.CONFIGURATION,
                    detail=e.message,
                    summary=summary_builder.empty_summary(start, end),
                )
            except EosApiError as e:
                if is_rate_limit(e) and state.attempt_rate_limit_hits < self.max_rate_limit_retries:
                    state, delay = on_rate_limited(state)
                    logger.warning(
                        f"Rate limited on attempt {state.attempt}, "
                        f"backing off {delay}s (hit {state.rate_limit_hits})"
                    )
                    if not await self._pause(state, delay):
                        return self._timed_out(state, start, end)
                    continue

                kind = classify_error(e)
                logger.warning(f"Summary attempt {state.attempt} failed ({kind.value}): {e.message}")
                has_next = state.attempt < self.max_attempts
                state = on_error(state, kind, e.message)
                if has_next and not await self._pause(state, self.error_pause):
                    return self._timed_out(state, start, end)
                continue

            if summary.observation_count > 0:
                self._stamp_success(summary, state.attempt)
                logger.info(
                    f"Summary attempt {state.attempt} returned "
                    f"{summary.observation_count} observations"
                )
                return SummaryOk(summary=summary)

            logger.warning(f"Summary attempt {state.attempt} returned no observations")
            state = on_empty(state)

        return self._give_up(state, start, end)

    def _request(
        self,
        polygon: PolygonData,
        config: EosConfig,
        filters: CloudFilters,
        start: str,
        end: str,
    ) -> EosProxyRequest:
        return EosProxyRequest(
            action="summary",
            polygon=polygon,
            start_date=start,
            end_date=end,
            planting_date=config.planting_date,
            crop_type=config.crop_type,
            max_cloud_cover_in_aoi=filters.max_cloud_cover_in_aoi,
            exclude_cover_pixels=filters.exclude_cover_pixels,
            cloud_masking_level=filters.cloud_masking_level,
            auto_fallback=config.auto_fallback,
        )

    def _past_deadline(self, state: FetchState) -> bool:
        return state.deadline is not None and self._clock() >= state.deadline

    async def _pause(self, state: FetchState, seconds: float) -> bool:
        """Sleep unless the pause would run past the deadline."""
        if state.deadline is not None and self._clock() + seconds >= state.deadline:
            return False
        await self._sleep(seconds)
        return True

    @staticmethod
    def _stamp_success(summary: EosSummary, attempt: int):
        summary.meta.optimization_used = True
        summary.meta.attempt_number = attempt
        if attempt > 1:
            summary.meta.escalation_used = True
            summary.meta.escalation_level = profile_for_attempt(attempt)

    def _timed_out(self, state: FetchState, start: str, end: str) -> SummaryFailed:
        logger.warning(f"Summary fetch ran out of time on attempt {state.attempt}")
        return SummaryFailed(
            error_kind=ErrorKind.TIMEOUT,
            detail="Summary fetch deadline exceeded",
            summary=summary_builder.empty_summary(
                start,
                end,
                optimization_used=True,
                suggestions=list(summary_builder.EMPTY_RESULT_SUGGESTIONS),
            ),
        )

    def _give_up(self, state: FetchState, start: str, end: str) -> SummaryOutcome:
        summary = summary_builder.empty_summary(
            start,
            end,
            optimization_used=True,
            all_attempts_failed=True,
            suggestions=list(summary_builder.EMPTY_RESULT_SUGGESTIONS),
        )
        logger.warning(f"All {self.max_attempts} summary attempts returned no usable data")
        if state.last_error is None:
            return SummaryEmpty(summary=summary)
        return SummaryFailed(error_kind=state.last_error, detail=state.last_detail, summary=summary)
