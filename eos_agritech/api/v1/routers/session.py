"""
API router for session values.

Replaces the browser local-storage keys ``eos_polygon``, ``eos_user_config``,
``eos_last_summary`` and ``eos_api_key``.
"""
from typing import Annotated, Any

from fastapi import APIRouter, Body, HTTPException, Path
from pydantic import ValidationError

from eos_agritech.api.dependencies import SessionStoreDep
from eos_agritech.api.v1.models.responses import SessionValueResponse
from eos_agritech.domain.models import EosConfig, PolygonData, SavedSummaryBundle
from eos_agritech.infrastructure.session_store import SessionKeys


router = APIRouter(
    prefix="/session",
    tags=["session"],
)

SessionIdPath = Annotated[str, Path(description="Client session identifier")]
KeyPath = Annotated[str, Path(description="One of eos_polygon, eos_user_config, eos_last_summary, eos_api_key")]

_VALUE_MODELS = {
    SessionKeys.POLYGON: PolygonData,
    SessionKeys.USER_CONFIG: EosConfig,
}


def _check_key(key: str):
    if key not in SessionKeys.ALL:
        raise HTTPException(status_code=400, detail=f"Unknown session key '{key}'")


@router.get(
    "/{session_id}/{key}",
    response_model=SessionValueResponse,
    summary="Read a session value",
    responses={
        400: {"description": "Unknown key"},
        404: {"description": "No value stored"},
    }
)
async def get_session_value(
    session_id: SessionIdPath,
    key: KeyPath,
    store: SessionStoreDep,
) -> SessionValueResponse:
    """Read a stored value; invalid saved summaries are discarded."""
    _check_key(key)
    if key == SessionKeys.LAST_SUMMARY:
        bundle = store.load_last_summary(session_id)
        value = bundle.model_dump(mode="json") if bundle else None
    else:
        value = store.get(session_id, key)

    if value is None:
        raise HTTPException(status_code=404, detail=f"No '{key}' stored for session '{session_id}'")
    return SessionValueResponse(session_id=session_id, key=key, value=value)


@router.put(
    "/{session_id}/{key}",
    response_model=SessionValueResponse,
    summary="Store a session value",
    responses={
        400: {"description": "Unknown key"},
        422: {"description": "Value does not match the key's schema"},
    }
)
async def put_session_value(
    session_id: SessionIdPath,
    key: KeyPath,
    store: SessionStoreDep,
    value: Annotated[Any, Body()],
) -> SessionValueResponse:
    """
    Store a value.

    Polygons and configs are validated; a summary bundle is kept only when it
    has observations and was fetched without fallback.
    """
    _check_key(key)
    try:
        if key == SessionKeys.LAST_SUMMARY:
            bundle = SavedSummaryBundle.model_validate(value)
            stored = store.save_last_summary(session_id, bundle)
            return SessionValueResponse(
                session_id=session_id,
                key=key,
                value=bundle.model_dump(mode="json"),
                stored=stored,
            )
        if key in _VALUE_MODELS:
            value = _VALUE_MODELS[key].model_validate(value).model_dump(mode="json", by_alias=True)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    store.set(session_id, key, value)
    return SessionValueResponse(session_id=session_id, key=key, value=value)


@router.delete(
    "/{session_id}/{key}",
    status_code=204,
    summary="Delete a session value",
    responses={
        400: {"description": "Unknown key"},
        404: {"description": "No value stored"},
    }
)
async def delete_session_value(
    session_id: SessionIdPath,
    key: KeyPath,
    store: SessionStoreDep,
):
    _check_key(key)
    if not store.delete(session_id, key):
        raise HTTPException(status_code=404, detail=f"No '{key}' stored for session '{session_id}'")
