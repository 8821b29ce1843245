"""
Global error handling middleware.
"""
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from typing import Callable

from eos_agritech.infrastructure.eos_api_client import EosApiError


logger = logging.getLogger(__name__)


def eos_error_response(error: EosApiError) -> JSONResponse:
    """JSON body ``{error, error_code, provider_status, retry_after}`` for an EOS error."""
    headers = {}
    if error.status_code == 429 and error.retry_after:
        headers["Retry-After"] = str(int(error.retry_after))
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_payload(),
        headers=headers,
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Catches unhandled exceptions and returns consistent error responses.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        """
        Process the request and handle any exceptions.

        Args:
            request: The incoming request
            call_next: The next middleware or route handler

        Returns:
            Response object
        """
        try:
            response = await call_next(request)
            return response

        except EosApiError as e:
            log = logger.warning if e.status_code < 500 else logger.error
            log(
                f"EOS API error ({e.error_code}): {e.message}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": e.status_code,
                }
            )
            return eos_error_response(e)

        except ValueError as e:
            # Includes malformed polygons
            logger.warning(
                f"Validation error: {str(e)}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "error": "Invalid request",
                    "detail": str(e),
                }
            )

        except Exception as e:
            logger.exception(
                f"Unhandled exception: {str(e)}",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                }
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "Internal server error",
                    "detail": "An unexpected error occurred",
                }
            )
