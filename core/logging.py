"""Centralized logging setup and request-scoped log context."""

import logging
import sys
import time
import uuid
from contextvars import ContextVar
from logging.handlers import WatchedFileHandler
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

import config

logger = logging.getLogger(__name__)

# Shared with utils/logging_helpers.py
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_FORMAT = "[%(asctime)s.%(msecs)03d] [%(levelname)-5s] [%(name)-20s] %(message)s"


def _handler_exists(
    root: logging.Logger, handler_type: type, *, filename: Optional[str] = None
) -> bool:
    for handler in root.handlers:
        if isinstance(handler, handler_type):
            if filename is None:
                return True
            if getattr(handler, "baseFilename", None) == filename:
                return True
    return False


def configure_logging(*, environment: str, log_level: str) -> int:
    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    if not _handler_exists(root, logging.StreamHandler):
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root.addHandler(handler)

    app_log_path = (config.APP_LOG_PATH or "").strip()
    if app_log_path:
        try:
            if not _handler_exists(root, WatchedFileHandler, filename=app_log_path):
                file_handler = WatchedFileHandler(app_log_path)
                file_handler.setLevel(level)
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)
        except OSError as exc:
            root.warning(
                "Failed to configure APP_LOG_PATH logging for %s: %s",
                app_log_path,
                exc,
            )

    for name in ("urllib3", "httpx", "httpcore", "apscheduler"):
        logging.getLogger(name).setLevel(logging.WARNING)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers.clear()
        uv_logger.propagate = True
        uv_logger.setLevel(level)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    if environment != "production":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    return level


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tags every request with a short id and logs request/response lines."""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())[:8]
        token = request_id_var.set(request_id)
        request.state.request_id = request_id
        start_time = time.time()

        query_str = f"?{request.url.query}" if request.query_params else ""
        client_ip = request.client.host if request.client else "unknown"
        logger.info(
            f"REQUEST | id={request_id} | method={request.method} | "
            f"path={request.url.path}{query_str} | ip={client_ip}"
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.error(
                f"ERROR | id={request_id} | method={request.method} | path={request.url.path} | "
                f"error={type(e).__name__}: {str(e)} | time={process_time:.3f}s",
                exc_info=True,
            )
            raise
        finally:
            request_id_var.reset(token)

        process_time = time.time() - start_time
        logger.info(
            f"RESPONSE | id={request_id} | method={request.method} | path={request.url.path} | "
            f"status={response.status_code} | time={process_time:.3f}s"
        )
        response.headers["X-Request-ID"] = request_id
        return response
