"""
Exception-to-HTTP mapping.

Only SessionNotFoundError (404) and ValidationError (400) are expected to
reach the HTTP boundary. Budget and generation failures are recovered inside
the assessment service, so if one shows up here it is reported as a 500
without its message.
"""

from typing import Dict, Type

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

import structlog

from src.core.exceptions import (
    AssessmentSystemError,
    ConfigurationError,
    SessionNotFoundError,
    ValidationError,
)

log = structlog.get_logger(__name__)

CLIENT_ERRORS: Dict[Type[AssessmentSystemError], int] = {
    SessionNotFoundError: status.HTTP_404_NOT_FOUND,
    ValidationError: status.HTTP_400_BAD_REQUEST,
}

GENERIC_MESSAGE = "An unexpected error occurred"


def error_response(status_code: int, error_type: str, message: str) -> JSONResponse:
    """Body shape shared by every error: {"error": {"type", "message"}}."""
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message}},
    )


def _client_status(exc: AssessmentSystemError):
    for exc_type, code in CLIENT_ERRORS.items():
        if isinstance(exc, exc_type):
            return code
    return None


def setup_exception_handlers(app: FastAPI):
    """Register the handlers on the application."""

    @app.exception_handler(AssessmentSystemError)
    async def handle_assessment_error(request: Request, exc: AssessmentSystemError):
        error_type = type(exc).__name__
        ctx = log.bind(path=request.url.path, method=request.method, error_type=error_type)

        status_code = _client_status(exc)
        if status_code is None:
            ctx.error("unrecovered_error", message=exc.message)
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR, "InternalServerError", GENERIC_MESSAGE
            )

        ctx.warning("request_error", message=exc.message, status_code=status_code)
        return error_response(status_code, error_type, exc.message)

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        log.error("configuration_error", path=request.url.path, message=exc.message)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "ConfigurationError",
            "Server configuration error",
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        log.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error_type=type(exc).__name__,
            message=str(exc),
            exc_info=exc,
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "InternalServerError", GENERIC_MESSAGE
        )
