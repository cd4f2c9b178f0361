import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from chat_viewer.metrics import record_http_request


# Request id of the request being served, stamped onto every log line
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

request_logger = logging.getLogger("chat_viewer.requests")

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


class RequestJsonFormatter(jsonlogger.JsonFormatter):
    """JSON log lines with an ISO-8601 UTC `ts`, `level` and the current request id."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        log_record.setdefault(
            'ts', datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')
        )
        log_record['level'] = record.levelname

        request_id = request_id_ctx.get()
        if request_id and 'request_id' not in log_record:
            log_record['request_id'] = request_id


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Send all application and uvicorn logs to stdout as JSON lines.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(RequestJsonFormatter('%(ts)s %(level)s %(name)s %(message)s'))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False

    # RequestLoggingMiddleware writes the access log
    logging.getLogger("uvicorn.access").disabled = True

    return root


def _level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs one "Request completed" line per request and records HTTP metrics.

    Each request gets a fresh id, returned in the X-Request-ID header and
    attached to every log line written while it is served. The line carries
    method, path, status and latency_ms, plus whatever the route added with
    log_request_data() (chat_id, message_id, result).
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            latency_seconds = time.perf_counter() - started
            response.headers["X-Request-ID"] = request_id

            if request.url.path != "/metrics":
                record_http_request(
                    method=request.method,
                    path=request.url.path,
                    status=response.status_code,
                    latency_seconds=latency_seconds
                )

            log_data = {
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round(latency_seconds * 1000, 2),
                **getattr(request.state, "route_log_data", {}),
            }
            request_logger.log(_level_for_status(response.status_code), "Request completed", extra=log_data)

            return response
        finally:
            request_id_ctx.reset(token)


def log_request_data(request: Request, **fields) -> None:
    """
    Add route-specific keys to the request's completion log line.
    Fields whose value is None are dropped.
    """
    route_data = getattr(request.state, "route_log_data", {})
    route_data.update({key: value for key, value in fields.items() if value is not None})
    request.state.route_log_data = route_data
