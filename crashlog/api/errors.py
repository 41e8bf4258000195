"""
Domain error → HTTP status mapping for the API.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from crashlog.core.errors import (
    CrashlogError,
    MalformedTableError,
    OccurrenceTruncatedError,
    SequenceContentionError,
)

logger = logging.getLogger(__name__)


def _status_for(exc: CrashlogError) -> int:
    if isinstance(exc, LookupError):
        return 404
    if isinstance(exc, OccurrenceTruncatedError):
        return 409
    if isinstance(exc, MalformedTableError):
        return 422
    if isinstance(exc, SequenceContentionError):
        return 503
    return 400


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CrashlogError)
    async def crashlog_error_handler(request: Request, exc: CrashlogError):
        status = _status_for(exc)
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, status, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})
