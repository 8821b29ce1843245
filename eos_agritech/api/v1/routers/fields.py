"""
API router for field endpoints.
"""
from fastapi import APIRouter, HTTPException

from eos_agritech.api.dependencies import FieldAnalysisServiceDep
from eos_agritech.api.v1.models.requests import FieldRequest, PolygonImportRequest
from eos_agritech.api.v1.models.responses import PolygonImportResponse
from eos_agritech.domain.outcomes import ErrorKind, SummaryFailed, SummaryOutcome
from eos_agritech.services.application.field_analysis_service import FieldAnalysis
from eos_agritech.utils.polygon_io import PolygonError, import_polygon_file


router = APIRouter(
    prefix="/fields",
    tags=["fields"],
)


def _raise_if_unconfigured(outcome):
    """Missing EOS credentials block every live request."""
    if isinstance(outcome, SummaryFailed) and outcome.error_kind == ErrorKind.CONFIGURATION:
        raise HTTPException(status_code=503, detail=outcome.detail)


@router.post(
    "/summary",
    response_model=SummaryOutcome,
    summary="Fetch a field summary",
    description="""
    Fetch the NDVI/NDMI summary of a field.

    Up to four attempts are made. The first uses cloud filters optimised for
    the field's location and season; empty or failed attempts widen the
    filters (`permissive`, then `very_permissive`). Rate limits back off and
    repeat the same attempt.

    The result is tagged by `kind`:
    - **ok**: observations found; `meta.attempt_number` and escalation details
    - **empty**: no attempt returned observations; suggestions are included
    - **error**: the run stopped on an error (`error_kind`)
    """,
    responses={
        400: {"description": "Invalid polygon"},
        503: {"description": "EOS credentials are not configured"},
    }
)
async def get_field_summary(
    body: FieldRequest,
    analysis_service: FieldAnalysisServiceDep,
):
    """
    Fetch the summary of a field.

    Raises:
        HTTPException: 400 for an invalid polygon, 503 when unconfigured
    """
    try:
        outcome = await analysis_service.get_summary(body.polygon, body.config)
    except PolygonError as e:
        raise HTTPException(status_code=400, detail=str(e))

    _raise_if_unconfigured(outcome)
    return outcome


@router.post(
    "/analysis",
    response_model=FieldAnalysis,
    summary="Analyze a field",
    description="""
    Fetch the field summary and compute the derived metrics: health status,
    water-stress alert, irrigation advice, NDVI/NDMI trends, BBCH phenology,
    weather stress, field alerts and productivity.

    With a `session_id`, a good summary is saved and reused (`source: saved`)
    when a later fetch yields no observations.
    """,
    responses={
        400: {"description": "Invalid polygon"},
        503: {"description": "EOS credentials are not configured"},
    }
)
async def analyze_field(
    body: FieldRequest,
    analysis_service: FieldAnalysisServiceDep,
) -> FieldAnalysis:
    """
    Run the full analysis of a field.

    Raises:
        HTTPException: 400 for an invalid polygon, 503 when unconfigured
    """
    try:
        analysis = await analysis_service.analyze(body.polygon, body.config, body.session_id)
    except PolygonError as e:
        raise HTTPException(status_code=400, detail=str(e))

    _raise_if_unconfigured(analysis.outcome)
    return analysis


@router.post(
    "/import",
    response_model=PolygonImportResponse,
    summary="Import polygons from a KML or GeoJSON file",
    responses={
        400: {"description": "Unsupported format or no polygon in the file"},
    }
)
async def import_polygons(body: PolygonImportRequest) -> PolygonImportResponse:
    """
    Parse an uploaded file into polygon options, largest first.

    Raises:
        HTTPException: 400 when the file cannot be parsed
    """
    try:
        options = import_polygon_file(body.filename, body.content)
    except PolygonError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return PolygonImportResponse(
        filename=body.filename,
        polygon_count=len(options),
        options=options,
    )
