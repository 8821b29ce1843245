"""
Dependency injection for FastAPI.

Long-lived clients are built in the application lifespan and kept on
``app.state``; the factories below hand them to the routes.
"""
from typing import Annotated
from fastapi import Depends, Request

from eos_agritech.infrastructure.session_store import SessionStore
from eos_agritech.services.application.eos_proxy_service import EosProxyService
from eos_agritech.services.application.field_analysis_service import FieldAnalysisService


def get_eos_proxy_service(request: Request) -> EosProxyService:
    """
    Dependency factory for EosProxyService.

    Returns:
        The proxy service created at startup
    """
    return request.app.state.proxy_service


def get_session_store(request: Request) -> SessionStore:
    """
    Dependency factory for SessionStore.

    Returns:
        The session store opened at startup
    """
    return request.app.state.session_store


def get_field_analysis_service(request: Request) -> FieldAnalysisService:
    """
    Dependency factory for FieldAnalysisService.

    Returns:
        The field analysis service created at startup
    """
    return request.app.state.field_analysis_service


# Type aliases for cleaner route signatures
EosProxyServiceDep = Annotated[EosProxyService, Depends(get_eos_proxy_service)]
SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
FieldAnalysisServiceDep = Annotated[FieldAnalysisService, Depends(get_field_analysis_service)]
