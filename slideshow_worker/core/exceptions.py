"""
Custom exception handlers and error types
"""

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging
import traceback
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


class SlideshowError(Exception):
    """Base exception for slideshow worker errors"""

    def __init__(self, message: str, error_code: Optional[str] = None):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class ValidationError(SlideshowError):
    """Exception raised when a slideshow request is malformed

    Raised before any task record, storage or process interaction exists.
    """

    def __init__(self, message: str, validation_errors: Optional[list] = None):
        super().__init__(message, "VALIDATION_ERROR")
        self.validation_errors = validation_errors or []


class ConflictError(SlideshowError):
    """Exception raised when a task id is already registered"""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message, "CONFLICT")
        self.task_id = task_id


class TaskStateError(ConflictError):
    """Exception raised when a transition would leave a terminal state"""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message, task_id)
        self.error_code = "INVALID_TRANSITION"


class NotFoundError(SlideshowError):
    """Exception raised when a task id is unknown"""

    def __init__(self, message: str, task_id: Optional[str] = None):
        super().__init__(message, "NOT_FOUND")
        self.task_id = task_id


class ProcessError(SlideshowError):
    """
    Exception raised when the external transcoder fails.

    Covers both spawn failures (no exit code) and non-zero exits, in which case
    the accumulated error-channel output is attached.
    """

    def __init__(
        self,
        message: str,
        command: Optional[Sequence[str]] = None,
        returncode: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message, "PROCESS_ERROR")
        self.command = list(command) if command else None
        self.returncode = returncode
        self.stderr = stderr

    def __str__(self):
        """Format the error message with available details."""
        parts = [self.message]
        if self.returncode is not None:
            parts.append(f"Exit code: {self.returncode}")
        if self.stderr:
            stderr = str(self.stderr).strip()
            if len(stderr) > 500:  # Keep the tail, it holds the actual failure
                stderr = "... [truncated] " + stderr[-500:]
            parts.append(f"Error output: {stderr}")
        return "\n".join(parts)


class ProcessCancelledError(ProcessError):
    """Exception raised when a running transcode is cancelled by its caller"""

    def __init__(self, message: str = "Transcoder process cancelled", **kwargs):
        super().__init__(message, **kwargs)
        self.error_code = "CANCELLED"


class StreamError(SlideshowError):
    """Exception raised when a source asset stream cannot be read"""

    def __init__(self, message: str, source_name: Optional[str] = None):
        super().__init__(message, "STREAM_ERROR")
        self.source_name = source_name


class StorageError(SlideshowError):
    """Exception raised when writing to object storage fails"""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, "STORAGE_ERROR")
        self.key = key


class JobError(SlideshowError):
    """Exception raised when a job finishes without the expected artifact"""

    def __init__(self, message: str, stage_errors: Optional[List[str]] = None):
        super().__init__(message, "JOB_ERROR")
        self.stage_errors = stage_errors or []


def _error_body(error: str, details, error_code: Optional[str] = None) -> dict:
    body = {"error": error, "details": details}
    if error_code:
        body["error_code"] = error_code
    return {"detail": body}


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic request validation errors"""
    logger.warning("Validation error: %s", exc.errors())
    return JSONResponse(
        status_code=400,
        content={
            "detail": {
                "error": "Validation error",
                "details": "Invalid request data",
                "errors": jsonable_errors(exc.errors()),
            }
        },
    )


def jsonable_errors(errors: list) -> list:
    """Strip non-serializable context (e.g. raised exceptions) from pydantic errors."""
    cleaned = []
    for err in errors:
        item = {k: v for k, v in err.items() if k not in ("ctx", "input", "url")}
        if "ctx" in err:
            item["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        cleaned.append(item)
    return cleaned


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format"""
    logger.warning("HTTP exception: %s - %s", exc.status_code, exc.detail)

    # Ensure detail is in our standard format
    if isinstance(exc.detail, dict):
        detail = exc.detail
    else:
        detail = {"error": "HTTP Error", "details": str(exc.detail)}

    return JSONResponse(
        status_code=exc.status_code, content={"detail": detail}, headers=exc.headers
    )


async def slideshow_exception_handler(request: Request, exc: SlideshowError):
    """Map the domain error taxonomy onto HTTP status codes"""
    if isinstance(exc, ValidationError):
        status_code, error = 400, "Validation error"
    elif isinstance(exc, ConflictError):
        status_code, error = 409, "Conflict"
    elif isinstance(exc, NotFoundError):
        status_code, error = 404, "Not found"
    else:
        status_code, error = 500, "Slideshow processing failed"

    if status_code >= 500:
        logger.error("Slideshow error: %s", exc)
    else:
        logger.warning("Slideshow error (%d): %s", status_code, exc.message)

    body = _error_body(error, exc.message, exc.error_code)
    if isinstance(exc, ValidationError) and exc.validation_errors:
        body["detail"]["errors"] = exc.validation_errors
    return JSONResponse(status_code=status_code, content=body)


async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors"""
    logger.error("Unexpected error: %s: %s", type(exc).__name__, str(exc))
    logger.error("Traceback: %s", traceback.format_exc())

    return JSONResponse(
        status_code=500,
        content=_error_body("Internal server error", "An unexpected error occurred"),
    )
