"""
Global Exception Handling

Error taxonomy for the ad generation pipeline and structured error
responses for the HTTP surface.
"""

import traceback
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from adgen.core.logging import get_logger, run_id_var

logger = get_logger(__name__)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# Custom Exceptions
# =============================================================================

class AdGenBaseException(Exception):
    """Base exception for the ad generation pipeline."""

    def __init__(
        self,
        message: str,
        code: int = 500,
        run_id: Optional[str] = None,
        stage: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.run_id = run_id or run_id_var.get()
        self.stage = stage
        self.details = details or {}
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class ValidationError(AdGenBaseException):
    """Raised when caller input is rejected before a run starts."""

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, code=400, **kwargs)
        if field:
            self.details["field"] = field


class InsufficientPointsError(AdGenBaseException):
    """Raised when the point balance cannot cover the model price."""

    def __init__(self, required: int, balance: Optional[int] = None, message: Optional[str] = None, **kwargs):
        super().__init__(
            message or f"Not enough points: {required} required, {balance} available",
            code=402,
            **kwargs
        )
        self.required = required
        self.balance = balance
        self.details["required"] = required
        self.details["balance"] = balance


class ExternalAPIError(AdGenBaseException):
    """Raised when a backend API call fails."""

    service = "backend"

    def __init__(self, message: str, http_status: Optional[int] = None, service: Optional[str] = None, **kwargs):
        super().__init__(message, code=502, **kwargs)
        self.http_status = http_status
        self.details["service"] = service or self.service
        self.details["http_status"] = http_status


class LedgerError(ExternalAPIError):
    """Point balance lookup or deduction failed."""

    service = "points"


class UploadError(ExternalAPIError):
    """Product image upload failed."""

    service = "files"


class JobRequestError(ExternalAPIError):
    """Submitting a job or fetching its status failed."""

    service = "jobs"


class ModelDetailError(ExternalAPIError):
    """Model detail lookup failed."""

    service = "models"


class PipelineStageError(AdGenBaseException):
    """Raised when a pipeline stage fails."""

    def __init__(self, message: str, stage: Optional[str] = None, code: int = 500, **kwargs):
        super().__init__(message, code=code, stage=stage, **kwargs)


class JobFailedError(PipelineStageError):
    """The backend reported a job as FAILED."""

    def __init__(self, job_id: str, error_message: Optional[str] = None, **kwargs):
        super().__init__(
            error_message or f"Job {job_id} failed",
            **kwargs
        )
        self.job_id = job_id
        self.details["job_id"] = job_id


class PollTimeoutError(PipelineStageError):
    """A job did not reach a terminal state within the attempt ceiling."""

    def __init__(self, job_id: str, attempts: int, **kwargs):
        super().__init__(
            f"Job {job_id} did not finish after {attempts} status checks",
            code=504,
            **kwargs
        )
        self.job_id = job_id
        self.attempts = attempts
        self.details["job_id"] = job_id
        self.details["attempts"] = attempts


class ModelAssetNotFoundError(PipelineStageError):
    """No backend file could be resolved for the selected model."""

    def __init__(self, model_id: str, **kwargs):
        super().__init__(
            f"No file found for model {model_id}",
            code=404,
            **kwargs
        )
        self.model_id = model_id
        self.details["model_id"] = model_id


class ComposeError(PipelineStageError):
    """The compose call returned a failure or an unusable result."""


class PipelineAlreadyRunningError(AdGenBaseException):
    """A session tried to start a run while another one is in flight."""

    def __init__(self, message: str = "A generation is already in progress for this session", **kwargs):
        super().__init__(message, code=409, **kwargs)


# =============================================================================
# Exception Handlers
# =============================================================================

def error_payload(exc: AdGenBaseException) -> Dict[str, Any]:
    """Structured JSON body for a pipeline error."""
    return {
        "error": exc.message,
        "error_kind": exc.kind,
        "run_id": exc.run_id,
        "code": exc.code,
        "stage": exc.stage,
        "details": exc.details,
        "timestamp": _utc_timestamp()
    }


def register_exception_handlers(app: FastAPI):
    """Register custom exception handlers with FastAPI app."""

    @app.exception_handler(AdGenBaseException)
    async def adgen_exception_handler(request: Request, exc: AdGenBaseException):
        logger.error(
            "adgen_exception",
            error=exc.message,
            error_kind=exc.kind,
            code=exc.code,
            stage=exc.stage,
            details=exc.details
        )

        return JSONResponse(
            status_code=exc.code,
            content=error_payload(exc)
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
            traceback=traceback.format_exc()
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "run_id": run_id_var.get(),
                "code": 500,
                "timestamp": _utc_timestamp()
            }
        )
