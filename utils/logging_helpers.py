"""
Logging helper utilities for consistent, structured logging across the application.

Messages are suffixed with ``id=<request_id>`` and any key=value context, e.g.
``Unread increment failed | id=3f2a9c1d | user_id=42 | step=unread | chat_id=7``.
"""

import logging
from typing import Optional

from core.logging import request_id_var


def get_request_id() -> str:
    """Get the current request ID from context."""
    try:
        return request_id_var.get("")
    except LookupError:
        return ""


def _format(message: str, user_id: Optional[int], **kwargs) -> str:
    context_parts = []
    request_id = get_request_id()
    if request_id:
        context_parts.append(f"id={request_id}")
    if user_id:
        context_parts.append(f"user_id={user_id}")

    for key, value in kwargs.items():
        if value is not None:
            context_parts.append(f"{key}={value}")

    context_str = " | ".join(context_parts)
    return f"{message} | {context_str}" if context_str else message


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    user_id: Optional[int] = None,
    exc_info: bool = False,
    **kwargs,
):
    logger.log(level, _format(message, user_id, **kwargs), exc_info=exc_info)


def log_info(
    logger: logging.Logger, message: str, user_id: Optional[int] = None, **kwargs
):
    """Log info message with context."""
    log_with_context(logger, logging.INFO, message, user_id, **kwargs)


def log_warning(
    logger: logging.Logger, message: str, user_id: Optional[int] = None, **kwargs
):
    """Log warning message with context."""
    log_with_context(logger, logging.WARNING, message, user_id, **kwargs)


def log_error(
    logger: logging.Logger,
    message: str,
    user_id: Optional[int] = None,
    exc_info: bool = False,
    **kwargs,
):
    """Log error message with context."""
    log_with_context(logger, logging.ERROR, message, user_id, exc_info=exc_info, **kwargs)
