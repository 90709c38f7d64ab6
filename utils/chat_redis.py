import asyncio
import json
import logging
from typing import Any, Dict, Optional

import redis.asyncio as redis

import config

logger = logging.getLogger(__name__)

CHAT_EVENT_QUEUE_KEY = "chat:event_queue"

_redis_client: Optional[redis.Redis] = None
_redis_lock = asyncio.Lock()


async def get_chat_redis() -> Optional[redis.Redis]:
    """Create or return cached Redis connection for chat features."""
    global _redis_client

    if _redis_client:
        return _redis_client

    async with _redis_lock:
        if _redis_client:
            return _redis_client
        try:
            _redis_client = redis.from_url(
                config.REDIS_URL, decode_responses=True, socket_connect_timeout=2
            )
            logger.info("Chat Redis client initialized")
        except Exception as exc:
            logger.error(f"Failed to initialize chat Redis client: {exc}")
            _redis_client = None
    return _redis_client


async def enqueue_chat_event(event_type: str, payload: Dict[str, Any]) -> bool:
    """
    Push chat event payload onto Redis queue so a worker can process it.
    Returns False if queueing failed.
    """
    client = await get_chat_redis()
    if not client:
        return False

    try:
        entry = json.dumps({"type": event_type, "payload": payload})
        await client.rpush(CHAT_EVENT_QUEUE_KEY, entry)
        return True
    except Exception as exc:
        logger.error(f"Failed to enqueue chat event {event_type}: {exc}")
        return False

