"""
Global Error Handler Middleware.

Catches all unhandled exceptions and returns structured JSON responses.
NEVER leaks stack traces or internal details to clients.
Every error gets a unique error_id for correlation with server logs.

Known FloodCastError subclasses are mapped to 4xx responses by
floodcast_error_handler; everything else falls through to the middleware.
"""

import traceback
import uuid

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from floodcast.config import settings
from floodcast.exceptions import ErrorCode, FloodCastError

logger = structlog.get_logger(__name__)

_STATUS_BY_CODE = {
    ErrorCode.CONFIGURATION_ERROR: 400,
    ErrorCode.LOCATION_NOT_MONITORED: 404,
    ErrorCode.PREDICTION_UNAVAILABLE: 502,
    ErrorCode.NOTIFICATION_SUBMIT_FAILED: 502,
}


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Outermost middleware — catches everything.

    Returns structured error responses:
    {
      "error": "human-readable message",
      "error_id": "uuid for log correlation",
      "status": 500
    }
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except Exception as exc:
            error_id = str(uuid.uuid4())

            logger.error(
                "unhandled_exception",
                error_id=error_id,
                path=request.url.path,
                method=request.method,
                error=str(exc),
                traceback=traceback.format_exc(),
            )

            status_code = getattr(exc, "status_code", 500)
            body: dict = {
                "error": "An internal error occurred. Please try again later.",
                "error_id": error_id,
                "status": status_code,
            }
            if settings.debug:
                body["debug_hint"] = type(exc).__name__

            return JSONResponse(status_code=status_code, content=body)


async def floodcast_error_handler(request: Request, exc: FloodCastError) -> JSONResponse:
    """Map domain errors to client errors with the same envelope."""
    error_id = str(uuid.uuid4())
    status_code = _STATUS_BY_CODE.get(exc.error_code, 500)
    logger.warning(
        "request_failed",
        error_id=error_id,
        path=request.url.path,
        method=request.method,
        status=status_code,
        **exc.to_dict(),
    )
    body = {
        "error": exc.message,
        "error_code": exc.error_code.value,
        "error_id": error_id,
        "status": status_code,
    }
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=status_code, content=body)
