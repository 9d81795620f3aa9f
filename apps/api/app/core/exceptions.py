"""Export error taxonomy and its HTTP mapping."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class ExportError(Exception):
    """Base class for export errors."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ExportError):
    """Raised when an export request references an unknown ticket."""

    status_code = 404


class NotFoundError(ExportError):
    """Raised when a job or its artifact cannot be found."""

    status_code = 404


class ConflictError(ExportError):
    """Raised when a download is attempted before the job completed."""

    status_code = 409


class ExpiredError(ExportError):
    """Raised when a download is attempted after the retention window."""

    status_code = 410


class ProcessingError(ExportError):
    """Raised inside the worker; only ever recorded on the job."""

    status_code = 500


async def export_error_handler(request: Request, exc: ExportError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_exception_handlers(app: FastAPI) -> None:
    """Map export errors onto JSON error responses."""
    app.add_exception_handler(ExportError, export_error_handler)
