"""Observability and tracing utilities."""

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from functools import wraps
from typing import Any, Callable, Iterator, TypeVar

from fastapi import Request, Response

# Context variables for request and job tracking
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")
job_id_var: ContextVar[str] = ContextVar("job_id", default="")

# Logger
logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s %(job_id)s] %(message)s"


class ContextFilter(logging.Filter):
    """Attach request and job identifiers to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        if not hasattr(record, "trace_id"):
            record.trace_id = trace_id_var.get()
        if not hasattr(record, "job_id"):
            record.job_id = job_id_var.get()
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the API and worker processes."""
    root = logging.getLogger()
    if not any(isinstance(f, ContextFilter) for h in root.handlers for f in h.filters):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(ContextFilter())
        root.addHandler(handler)
    root.setLevel(level.upper())


def get_request_id() -> str:
    """Get current request ID."""
    return request_id_var.get()


def get_trace_id() -> str:
    """Get current trace ID."""
    return trace_id_var.get()


def set_request_context(request_id: str, trace_id: str | None = None) -> None:
    """Set request context variables."""
    request_id_var.set(request_id)
    trace_id_var.set(trace_id or request_id)


@contextmanager
def job_context(job_id: str) -> Iterator[None]:
    """Tag log records emitted while processing a job."""
    token = job_id_var.set(job_id)
    try:
        yield
    finally:
        job_id_var.reset(token)


async def request_middleware(request: Request, call_next: Callable) -> Response:
    """Request middleware for observability."""
    request_id = str(uuid.uuid4())
    trace_id = request.headers.get("x-trace-id", request_id)

    set_request_context(request_id, trace_id)
    request.state.request_id = request_id
    request.state.trace_id = trace_id

    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time

    response.headers["x-request-id"] = request_id
    response.headers["x-trace-id"] = trace_id
    response.headers["x-process-time"] = str(process_time)

    logger.info(
        "Request processed",
        extra={
            "request_id": request_id,
            "trace_id": trace_id,
            "method": request.method,
            "url": str(request.url),
            "status_code": response.status_code,
            "process_time": process_time,
        },
    )

    return response


def _trace_extra(function_name: str, **fields: Any) -> dict[str, Any]:
    return {
        "request_id": get_request_id(),
        "trace_id": get_trace_id(),
        "job_id": job_id_var.get(),
        "function": function_name,
        **fields,
    }


def trace_function(name: str | None = None) -> Callable[[F], F]:
    """Decorator to trace function execution."""
    def decorator(func: F) -> F:
        function_name = name or f"{func.__module__}.{func.__name__}"

        def _started() -> float:
            logger.info(f"Starting {function_name}", extra=_trace_extra(function_name))
            return time.time()

        def _completed(start_time: float) -> None:
            logger.info(
                f"Completed {function_name}",
                extra=_trace_extra(
                    function_name, duration=time.time() - start_time, status="success"
                ),
            )

        def _failed(start_time: float, error: Exception) -> None:
            logger.error(
                f"Failed {function_name}",
                extra=_trace_extra(
                    function_name,
                    duration=time.time() - start_time,
                    status="error",
                    error=str(error),
                ),
                exc_info=True,
            )

        @wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = _started()
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _failed(start_time, e)
                raise
            _completed(start_time)
            return result

        @wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            start_time = _started()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _failed(start_time, e)
                raise
            _completed(start_time)
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    return decorator
