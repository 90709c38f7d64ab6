"""
Message sanitization to prevent XSS in chat content.
"""

import logging
from typing import Optional

import bleach

import config

logger = logging.getLogger(__name__)


def sanitize_message(message: Optional[str], *, max_length: Optional[int] = None) -> str:
    """
    Strip HTML tags and control characters from a user message.

    Returns an empty string for empty input, so callers can treat a message
    made only of markup or whitespace as missing content.
    """
    if not message:
        return ""

    cleaned = message.strip()

    if config.MESSAGE_SANITIZE_ENABLED:
        try:
            # tags=[] allows no HTML; strip=True drops tags instead of escaping them
            cleaned = bleach.clean(cleaned, tags=[], strip=True)
            cleaned = "".join(
                char for char in cleaned if char.isprintable() or char in ("\n", "\r", "\t")
            ).strip()
        except Exception as e:
            logger.error(f"Error sanitizing message: {e}")
            cleaned = message.strip()

    if max_length is not None and len(cleaned) > max_length:
        cleaned = cleaned[:max_length]
    return cleaned


def truncate_preview(text: str, limit: int = 100) -> str:
    """Shorten text for notification bodies."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."
