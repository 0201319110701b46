import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from app.metrics import record_http_request
from app.utils import format_ts, utc_now


SERVICE_NAME = "portfolio-backend"

request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    return request_id_ctx.get()


class PortfolioJsonFormatter(jsonlogger.JsonFormatter):
    """
    One JSON object per line: ts, level, service, logger name, message,
    the current request_id and any `extra` keys.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("ts"):
            log_record["ts"] = format_ts(utc_now())
        log_record["level"] = record.levelname
        log_record["service"] = SERVICE_NAME

        req_id = request_id_ctx.get()
        if req_id and "request_id" not in log_record:
            log_record["request_id"] = req_id


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Route all application and uvicorn logging through one JSON stdout handler.

    uvicorn's access log is switched off; RequestLoggingMiddleware writes
    the per-request line instead.
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(PortfolioJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in ("uvicorn", "uvicorn.error"):
        server_logger = logging.getLogger(name)
        server_logger.handlers = [handler]
        server_logger.propagate = False

    logging.getLogger("uvicorn.access").disabled = True
    return root


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests in structured JSON format.

    Log keys:
    - ts, level: from the formatter
    - request_id: unique per request, echoed as X-Request-ID
    - method, path, status, latency_ms

    Routes may attach extra keys (action, contact_id, admin) with
    log_request_data().
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        # Set request_id in context for all loggers to use
        token = request_id_ctx.set(request_id)

        start_time = time.time()

        try:
            response = await call_next(request)

            response.headers["X-Request-ID"] = request_id

            latency_seconds = time.time() - start_time
            latency_ms = round(latency_seconds * 1000, 2)

            # Label by route template so ids in paths don't explode cardinality
            route = request.scope.get("route")
            metrics_path = getattr(route, "path", None) or request.url.path
            if request.url.path != "/metrics":
                record_http_request(
                    method=request.method,
                    path=metrics_path,
                    status=response.status_code,
                    latency_seconds=latency_seconds
                )

            log_data = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": latency_ms,
            }

            if hasattr(request.state, "extra_log_data"):
                log_data.update(request.state.extra_log_data)

            logger = logging.getLogger("app.requests")

            if response.status_code >= 500:
                logger.error("Request completed", extra=log_data)
            elif response.status_code >= 400:
                logger.warning("Request completed", extra=log_data)
            else:
                logger.info("Request completed", extra=log_data)

            return response
        finally:
            request_id_ctx.reset(token)


def log_request_data(request: Request, **fields) -> None:
    """
    Attach route-specific logging data to the request state.
    This data will be included in the request log by the middleware.

    Args:
        request: FastAPI request object
        **fields: Extra keys, e.g. action="delete", contact_id=3, admin="alice"
    """
    extra = getattr(request.state, "extra_log_data", {})
    extra.update({k: v for k, v in fields.items() if v is not None})
    request.state.extra_log_data = extra
