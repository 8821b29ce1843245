"""
Infrastructure layer: transports that answer eos-proxy requests.

``RemoteProxyClient`` posts to a deployed eos-proxy endpoint over HTTP;
``InProcessProxy`` calls the proxy service directly. Both raise the
``EosApiError`` hierarchy so the summary fetcher treats them alike.
"""
import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from eos_agritech.config import settings
from eos_agritech.domain.models import EosProxyRequest, EosSummary
from eos_agritech.infrastructure.api_constants import APIConstants, ErrorCodes
from eos_agritech.infrastructure.eos_api_client import (
    EosApiError,
    MissingCredentialsError,
    RateLimitError,
)

logger = logging.getLogger(__name__)


def error_from_response(response: httpx.Response) -> EosApiError:
    """Map an error response of the proxy back onto the client errors."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = body.get("error") or response.text or f"Proxy error {response.status_code}"
    error_code = body.get("error_code") or ErrorCodes.EOS_STATUS_FAILED
    provider_status = body.get("provider_status")

    if error_code == ErrorCodes.MISSING_API_KEY:
        return MissingCredentialsError(message)

    if response.status_code == 429 or error_code == ErrorCodes.RATE_LIMITED:
        retry_after = body.get("retry_after") or response.headers.get("Retry-After")
        try:
            retry_after = float(retry_after) if retry_after is not None else None
        except (TypeError, ValueError):
            retry_after = None
        return RateLimitError(message, retry_after=retry_after, provider_status=provider_status or 429)

    return EosApiError(
        message,
        status_code=response.status_code,
        error_code=error_code,
        provider_status=provider_status,
    )


class RemoteProxyClient:
    """Client for a remote eos-proxy endpoint."""

    def __init__(self, url: str, client: Optional[httpx.AsyncClient] = None):
        """
        Initialize the proxy client.

        Args:
            url: Full URL of the eos-proxy endpoint
            client: Pre-built HTTP client (a new one is created when omitted)
        """
        self.url = url
        self.client = client or httpx.AsyncClient(
            headers={"Content-Type": APIConstants.CONTENT_TYPE_JSON},
            timeout=APIConstants.PROXY_TIMEOUT,
        )

    async def close(self):
        await self.client.aclose()

    @retry(
        stop=stop_after_attempt(settings.max_retry_attempts),
        wait=wait_exponential(
            multiplier=settings.retry_backoff_multiplier,
            min=settings.retry_min_wait,
            max=settings.retry_max_wait,
        ),
        retry=retry_if_exception_type(httpx.RequestError),
        reraise=True,
    )
    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        return await self.client.post(self.url, json=payload)

    async def call(self, request: EosProxyRequest) -> Dict[str, Any]:
        """
        Send a proxy request.

        Raises:
            RateLimitError: When the proxy reports a rate limit
            MissingCredentialsError: When the proxy has no EOS key
            EosApiError: For any other failure
        """
        try:
            response = await self._post(request.model_dump(exclude_none=True))
        except httpx.RequestError as e:
            raise EosApiError(f"Proxy request error: {str(e)}")

        if response.is_error:
            raise error_from_response(response)

        try:
            data = response.json()
        except ValueError:
            raise EosApiError("Proxy returned a non-JSON body", error_code=ErrorCodes.INVALID_RESPONSE)
        if not isinstance(data, dict):
            raise EosApiError("Proxy returned an unexpected body", error_code=ErrorCodes.INVALID_RESPONSE)
        return data

    async def fetch_summary(self, request: EosProxyRequest) -> EosSummary:
        data = await self.call(request)
        try:
            return EosSummary.model_validate(data)
        except ValidationError as e:
            logger.error(f"Invalid summary payload from proxy: {e}")
            raise EosApiError("Invalid summary payload", error_code=ErrorCodes.INVALID_RESPONSE)


class InProcessProxy:
    """Answers summary requests with the local proxy service."""

    def __init__(self, service):
        """
        Args:
            service: An ``EosProxyService``
        """
        self.service = service

    async def fetch_summary(self, request: EosProxyRequest) -> EosSummary:
        return await self.service.handle(request)
