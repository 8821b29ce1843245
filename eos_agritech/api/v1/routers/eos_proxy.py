"""
API router for the eos-proxy endpoint.
"""
from fastapi import APIRouter

from eos_agritech.api.dependencies import EosProxyServiceDep
from eos_agritech.api.v1.models.responses import ErrorResponse
from eos_agritech.domain.models import EosProxyRequest


router = APIRouter(
    tags=["eos-proxy"],
)


@router.post(
    "/eos-proxy",
    response_model=None,
    summary="Proxy an EOS data request",
    description="""
    Run one EOS data action for a field polygon.

    Actions:
    - **summary**: NDVI/NDMI trends, phenology and weather risks
    - **vegetation**: NDVI, NDMI and ReCI series with growth stage
    - **weather**: aggregated weather history and a 7-day forecast
    - **soil_moisture**: seasonal soil-moisture estimate

    Statistics tasks for each index run concurrently. When no observations
    are found and `auto_fallback` is not disabled, the request is repeated
    once with tolerant cloud filters and `meta.fallback_used` is set.
    """,
    responses={
        400: {
            "model": ErrorResponse,
            "description": "Missing action, unsupported action or invalid polygon",
        },
        429: {
            "model": ErrorResponse,
            "description": "EOS rate limit; see the Retry-After header",
        },
        500: {
            "model": ErrorResponse,
            "description": "Missing EOS API key or provider failure",
        },
    }
)
async def eos_proxy(
    body: EosProxyRequest,
    proxy_service: EosProxyServiceDep,
):
    """
    Dispatch an eos-proxy request.

    Errors are raised as ``EosApiError`` and rendered by the error middleware
    as ``{error, error_code, provider_status, retry_after}``.
    """
    return await proxy_service.handle(body)
