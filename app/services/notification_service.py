"""
Notification fan-out for chat events.

Nothing here runs on the request path. ``dispatch_events`` registers one FastAPI
background task per request; after the response is sent that task pushes each
event onto the Redis-backed chat event queue (drained by
``workers/chat_event_worker.py``) and runs the handler in place when the queue is
unavailable. Every handler logs its own failures with the event type, chat and
account ids, and never raises to its caller.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import async_sessionmaker

import config
from app.models.chat import MessageType
from utils.chat_redis import enqueue_chat_event
from utils.logging_helpers import log_error, log_warning
from utils.message_sanitizer import truncate_preview
from utils.onesignal_client import get_player_ids, is_account_active, send_push_notification_async
from utils.realtime import chat_channel, publish_event_async, user_channel

logger = logging.getLogger(__name__)

EVENT_MESSAGE_SENT = "message_sent"
EVENT_BALANCE_UPDATE = "balance_update"
EVENT_LEVEL_UP = "intimacy_levelup"
EVENT_LOW_BALANCE = "low_balance"

REALTIME_NEW_MESSAGE = "message:new"
REALTIME_MESSAGE_NOTIFICATION = "message:notification"
REALTIME_BALANCE_UPDATE = "balance:update"
REALTIME_LEVEL_UP = "intimacy:levelup"

Handler = Callable[[Dict[str, Any], async_sessionmaker], Awaitable[None]]


def build_push_content(sender_name: Optional[str], message: Dict[str, Any]):
    """Title and body of the new-message push, by message type."""
    name = sender_name or "Someone"
    message_type = message.get("message_type")

    if message_type == MessageType.IMAGE.value:
        return f"📸 {name}", "Sent you a photo"

    if message_type == MessageType.GIFT.value:
        gifts = message.get("gifts") or []
        gift_names = ", ".join(g.get("name", "") for g in gifts) or "a gift"
        total = sum(g.get("cost", 0) for g in gifts)
        body = f"Sent you {gift_names}"
        if total:
            body += f" (+{total} coins)"
        return f"🎁 {name}", body

    return f"💬 {name}", truncate_preview(message.get("content") or "Sent you a message")


async def notify_new_message(
    session_factory: async_sessionmaker,
    receiver_id: int,
    sender_summary: Dict[str, Any],
    message: Dict[str, Any],
) -> bool:
    async with session_factory() as db:
        if await is_account_active(db, receiver_id):
            logger.debug(f"Receiver {receiver_id} is active, skipping push")
            return False
        player_ids = await get_player_ids(db, receiver_id)

    if not player_ids:
        return False

    heading, content = build_push_content(sender_summary.get("display_name"), message)
    return await send_push_notification_async(
        player_ids,
        heading,
        content,
        data={
            "type": "new_message",
            "chat_id": message.get("chat_id"),
            "message_id": message.get("id"),
            "sender_id": sender_summary.get("account_id"),
            "message_type": message.get("message_type"),
        },
    )


async def notify_low_balance(
    session_factory: async_sessionmaker, account_id: int, balance: int
) -> bool:
    async with session_factory() as db:
        player_ids = await get_player_ids(db, account_id)

    if not player_ids:
        return False

    return await send_push_notification_async(
        player_ids,
        "⚠️ Low Balance Warning",
        f"You have {balance} coins left. Top up to keep chatting!",
        data={"type": "low_balance", "balance": balance},
    )


async def handle_message_sent(payload: Dict[str, Any], session_factory: async_sessionmaker) -> None:
    message = payload["message"]
    chat_id = message["chat_id"]
    receiver_id = message["receiver_id"]
    sender = payload.get("sender") or {}

    await publish_event_async(chat_channel(chat_id), REALTIME_NEW_MESSAGE, message)
    await publish_event_async(
        user_channel(receiver_id),
        REALTIME_MESSAGE_NOTIFICATION,
        {
            "chat_id": chat_id,
            "message_id": message.get("id"),
            "sender": sender,
            "message_type": message.get("message_type"),
            "unread_count": payload.get("receiver_unread_count"),
        },
    )
    await notify_new_message(session_factory, receiver_id, sender, message)


async def handle_balance_update(payload: Dict[str, Any], session_factory: async_sessionmaker) -> None:
    await publish_event_async(
        user_channel(payload["account_id"]),
        REALTIME_BALANCE_UPDATE,
        {"balance": payload["balance"], "reason": payload.get("reason")},
    )


async def handle_level_up(payload: Dict[str, Any], session_factory: async_sessionmaker) -> None:
    await publish_event_async(
        chat_channel(payload["chat_id"]),
        REALTIME_LEVEL_UP,
        {"chat_id": payload["chat_id"], "level_info": payload["level_info"]},
    )


async def handle_low_balance(payload: Dict[str, Any], session_factory: async_sessionmaker) -> None:
    await notify_low_balance(session_factory, payload["account_id"], payload["balance"])


EVENT_HANDLERS: Dict[str, Handler] = {
    EVENT_MESSAGE_SENT: handle_message_sent,
    EVENT_BALANCE_UPDATE: handle_balance_update,
    EVENT_LEVEL_UP: handle_level_up,
    EVENT_LOW_BALANCE: handle_low_balance,
}


async def run_event(
    event_type: str, payload: Dict[str, Any], session_factory: async_sessionmaker
) -> bool:
    """Run one event's handler, logging instead of raising."""
    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        log_warning(logger, "No handler for chat event", event_type=event_type)
        return False
    try:
        await handler(payload, session_factory)
        return True
    except Exception as exc:
        log_error(
            logger,
            "Chat event handler failed",
            step="notify",
            event_type=event_type,
            chat_id=payload.get("chat_id") or (payload.get("message") or {}).get("chat_id"),
            account_id=payload.get("account_id"),
            error=str(exc),
        )
        return False


async def deliver_event(
    event_type: str, payload: Dict[str, Any], session_factory: async_sessionmaker
) -> str:
    """Queue an event for the worker, or run its handler here if queueing fails."""
    if config.CHAT_EVENT_QUEUE_ENABLED and await enqueue_chat_event(event_type, payload):
        return "queued"
    await run_event(event_type, payload, session_factory)
    return "inline"


async def deliver_events(events: List[tuple], session_factory: async_sessionmaker) -> None:
    for event_type, payload in events:
        try:
            await deliver_event(event_type, payload, session_factory)
        except Exception as exc:
            log_error(logger, "Chat event dispatch failed", event_type=event_type, error=str(exc))


def dispatch_events(
    background_tasks: BackgroundTasks,
    events: List[tuple],
    *,
    session_factory: async_sessionmaker,
) -> None:
    """Hand the events to a single task that runs after the response is sent."""
    if events:
        background_tasks.add_task(deliver_events, list(events), session_factory)


def dispatch_event(
    background_tasks: BackgroundTasks,
    event_type: str,
    payload: Dict[str, Any],
    *,
    session_factory: async_sessionmaker,
) -> None:
    dispatch_events(background_tasks, [(event_type, payload)], session_factory=session_factory)
