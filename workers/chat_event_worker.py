"""
Chat event worker.

Drains ``chat:event_queue`` and runs each event through the same handlers the
API falls back to in-process. Run with ``python -m workers.chat_event_worker``.
"""
import asyncio
import json
import logging
import signal

import config
from app.db import AsyncSessionLocal
from app.services.notification_service import EVENT_HANDLERS, run_event
from core.logging import configure_logging
from utils.chat_redis import CHAT_EVENT_QUEUE_KEY, get_chat_redis

logger = logging.getLogger("chat_event_worker")


async def process_raw_event(raw_event: str, session_factory=AsyncSessionLocal) -> bool:
    try:
        event_data = json.loads(raw_event)
    except json.JSONDecodeError:
        logger.warning("Discarded malformed chat event: %s", raw_event)
        return False

    event_type = event_data.get("type")
    if event_type not in EVENT_HANDLERS:
        logger.warning("No handler for chat event type '%s'", event_type)
        return False

    return await run_event(event_type, event_data.get("payload") or {}, session_factory)


async def worker_loop(stop_event: asyncio.Event):
    redis = await get_chat_redis()
    if not redis:
        raise RuntimeError("Unable to initialize Redis client for chat worker")

    logger.info("Chat event worker started. Listening for events...")
    while not stop_event.is_set():
        try:
            item = await redis.blpop(CHAT_EVENT_QUEUE_KEY, timeout=5)
            if not item:
                continue
            _, raw_event = item
            await process_raw_event(raw_event)
        except asyncio.CancelledError:
            break
        except Exception as exc:
            logger.exception("Error processing chat event: %s", exc)
            await asyncio.sleep(1)

    logger.info("Chat event worker shutting down")


def main():
    configure_logging(environment=config.ENVIRONMENT, log_level=config.LOG_LEVEL)
    stop_event = asyncio.Event()

    def _handle_signal(signum, frame):
        logger.info("Received signal %s, stopping worker...", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    asyncio.run(worker_loop(stop_event))


if __name__ == "__main__":
    main()
