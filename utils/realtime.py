"""Realtime fan-out over Redis pub/sub.

The socket gateway subscribes to ``realtime:*`` and forwards each
``{"event", "data"}`` envelope to the clients joined to that channel.
"""

import json
import logging
from typing import Any, Dict

import config
from utils.chat_redis import get_chat_redis

logger = logging.getLogger(__name__)


def chat_channel(chat_id: int) -> str:
    return f"chat:{chat_id}"


def user_channel(account_id: int) -> str:
    return f"user:{account_id}"


async def publish_event_async(channel: str, event: str, data: Dict[str, Any]) -> bool:
    """Publish one event. Failures are logged, never raised."""
    if not config.REALTIME_ENABLED:
        logger.debug(f"Realtime disabled, {event} not published to {channel}")
        return False

    client = await get_chat_redis()
    if not client:
        return False

    try:
        envelope = json.dumps({"event": event, "data": data}, default=str)
        await client.publish(f"{config.REALTIME_CHANNEL_PREFIX}:{channel}", envelope)
        return True
    except Exception as e:
        logger.error(f"Failed to publish {event} to channel {channel}: {e}")
        return False
