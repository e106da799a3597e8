"""
Global Exception Handling

Provides the service exception hierarchy and the FastAPI handlers that turn
it into structured JSON error responses.
"""

import traceback
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bgbatch.core.logging import get_logger, job_id_var

logger = get_logger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================

class BgBatchException(Exception):
    """Base exception for the batch service."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        job_id: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.job_id = job_id or job_id_var.get()
        self.stage = stage
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BgBatchException):
    """Raised when an upload batch is rejected before staging."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=400, **kwargs)


class PayloadTooLargeError(BgBatchException):
    """Raised when a single uploaded file exceeds the size limit."""

    def __init__(self, message: str, limit_bytes: int, **kwargs):
        super().__init__(message, code=413, **kwargs)
        self.details["limit_bytes"] = limit_bytes


class StagingError(BgBatchException):
    """Raised when job directories or staged files cannot be written."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, code=500, stage="staging", **kwargs)


class ProcessorError(BgBatchException):
    """Raised when the external processor fails to launch, exits non-zero or times out."""

    def __init__(
        self,
        message: str,
        exit_code: Optional[int] = None,
        stderr: Optional[str] = None,
        **kwargs
    ):
        super().__init__(message, code=500, stage="invocation", **kwargs)
        self.exit_code = exit_code
        self.details["exit_code"] = exit_code
        if stderr:
            self.details["stderr"] = stderr


class CapacityExceededError(BgBatchException):
    """Raised when the processor pool has no free slot and its wait queue is full."""

    def __init__(self, running: int, waiting: int, **kwargs):
        super().__init__(
            "Processor capacity exhausted, retry later",
            code=503,
            stage="admission",
            **kwargs
        )
        self.details["running"] = running
        self.details["waiting"] = waiting


# =============================================================================
# Exception Handlers
# =============================================================================

def _error_body(
    message: str,
    code: int,
    job_id: Optional[str] = None,
    stage: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "error": message,
        "job_id": job_id,
        "code": code,
        "stage": stage,
        "details": details or {},
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    }


def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(BgBatchException)
    async def bgbatch_exception_handler(request: Request, exc: BgBatchException):
        job_id = exc.job_id or job_id_var.get()

        log = logger.warning if exc.code < 500 else logger.error
        log(
            "request_failed",
            error=exc.message,
            code=exc.code,
            stage=exc.stage,
            details=exc.details,
            path=str(request.url.path)
        )

        return JSONResponse(
            status_code=exc.code,
            content=_error_body(exc.message, exc.code, job_id, exc.stage, exc.details)
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        job_id = job_id_var.get()

        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
            traceback=traceback.format_exc()
        )

        return JSONResponse(
            status_code=500,
            content=_error_body("Internal server error", 500, job_id)
        )
