"""
Event dispatch, handler isolation and the queue worker.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi import BackgroundTasks

import config
from app.services import notification_service
from workers import chat_event_worker


def test_push_content_by_message_type():
    assert notification_service.build_push_content("Asha", {"message_type": "text", "content": "hello"}) == (
        "💬 Asha",
        "hello",
    )
    assert notification_service.build_push_content(None, {"message_type": "image"}) == (
        "📸 Someone",
        "Sent you a photo",
    )
    heading, body = notification_service.build_push_content(
        "Ravi",
        {"message_type": "gift", "gifts": [{"name": "Rose", "cost": 30}, {"name": "Teddy Bear", "cost": 70}]},
    )
    assert heading == "🎁 Ravi"
    assert body == "Sent you Rose, Teddy Bear (+100 coins)"


def test_long_text_push_is_truncated():
    _, body = notification_service.build_push_content("A", {"message_type": "text", "content": "x" * 300})

    assert len(body) == 100
    assert body.endswith("...")


@pytest.mark.asyncio
async def test_dispatch_defers_queueing_until_after_response(monkeypatch, async_session_maker):
    enqueue = AsyncMock(return_value=True)
    monkeypatch.setattr(config, "CHAT_EVENT_QUEUE_ENABLED", True)
    monkeypatch.setattr(notification_service, "enqueue_chat_event", enqueue)
    tasks = BackgroundTasks()

    notification_service.dispatch_events(
        tasks,
        [
            (notification_service.EVENT_BALANCE_UPDATE, {"account_id": 1, "balance": 5}),
            (notification_service.EVENT_LOW_BALANCE, {"account_id": 1, "balance": 5}),
        ],
        session_factory=async_session_maker,
    )

    assert len(tasks.tasks) == 1
    enqueue.assert_not_awaited()

    await tasks()

    assert [c.args[0] for c in enqueue.await_args_list] == ["balance_update", "low_balance"]


@pytest.mark.asyncio
async def test_slow_queue_does_not_block_dispatch(monkeypatch, async_session_maker):
    async def slow_enqueue(event_type, payload):
        await asyncio.sleep(5)
        return True

    monkeypatch.setattr(config, "CHAT_EVENT_QUEUE_ENABLED", True)
    monkeypatch.setattr(notification_service, "enqueue_chat_event", slow_enqueue)
    tasks = BackgroundTasks()

    notification_service.dispatch_event(
        tasks, notification_service.EVENT_BALANCE_UPDATE, {"account_id": 1, "balance": 5},
        session_factory=async_session_maker,
    )

    assert len(tasks.tasks) == 1


@pytest.mark.asyncio
async def test_deliver_prefers_queue(monkeypatch, async_session_maker):
    enqueue = AsyncMock(return_value=True)
    run = AsyncMock(return_value=True)
    monkeypatch.setattr(config, "CHAT_EVENT_QUEUE_ENABLED", True)
    monkeypatch.setattr(notification_service, "enqueue_chat_event", enqueue)
    monkeypatch.setattr(notification_service, "run_event", run)

    mode = await notification_service.deliver_event(
        notification_service.EVENT_BALANCE_UPDATE, {"account_id": 1, "balance": 5}, async_session_maker
    )

    assert mode == "queued"
    enqueue.assert_awaited_once()
    run.assert_not_awaited()


@pytest.mark.asyncio
async def test_deliver_runs_handler_when_queue_fails(monkeypatch, async_session_maker):
    run = AsyncMock(return_value=True)
    monkeypatch.setattr(config, "CHAT_EVENT_QUEUE_ENABLED", True)
    monkeypatch.setattr(notification_service, "enqueue_chat_event", AsyncMock(return_value=False))
    monkeypatch.setattr(notification_service, "run_event", run)

    mode = await notification_service.deliver_event(
        notification_service.EVENT_BALANCE_UPDATE, {"account_id": 1, "balance": 5}, async_session_maker
    )

    assert mode == "inline"
    run.assert_awaited_once_with(
        "balance_update", {"account_id": 1, "balance": 5}, async_session_maker
    )


@pytest.mark.asyncio
async def test_one_failed_delivery_does_not_stop_the_rest(monkeypatch, async_session_maker, caplog):
    enqueue = AsyncMock(side_effect=[RuntimeError("redis gone"), True])
    monkeypatch.setattr(config, "CHAT_EVENT_QUEUE_ENABLED", True)
    monkeypatch.setattr(notification_service, "enqueue_chat_event", enqueue)

    await notification_service.deliver_events(
        [
            (notification_service.EVENT_BALANCE_UPDATE, {"account_id": 1, "balance": 5}),
            (notification_service.EVENT_LOW_BALANCE, {"account_id": 1, "balance": 5}),
        ],
        async_session_maker,
    )

    assert enqueue.await_count == 2
    assert "redis gone" in caplog.text


@pytest.mark.asyncio
async def test_handler_failure_is_logged_not_raised(monkeypatch, async_session_maker, caplog):
    async def broken_handler(payload, session_factory):
        raise RuntimeError("push provider down")

    monkeypatch.setitem(notification_service.EVENT_HANDLERS, "balance_update", broken_handler)

    ok = await notification_service.run_event(
        "balance_update", {"account_id": 7, "balance": 1}, async_session_maker
    )

    assert ok is False
    assert "step=notify" in caplog.text
    assert "push provider down" in caplog.text


@pytest.mark.asyncio
async def test_unknown_event_type_is_ignored(async_session_maker):
    assert await notification_service.run_event("nope", {}, async_session_maker) is False


@pytest.mark.asyncio
async def test_balance_update_publishes_to_user_channel(monkeypatch, async_session_maker):
    publish = AsyncMock(return_value=True)
    monkeypatch.setattr(notification_service, "publish_event_async", publish)

    await notification_service.run_event(
        "balance_update", {"account_id": 7, "balance": 130, "reason": "daily_reward"}, async_session_maker
    )

    publish.assert_awaited_once_with(
        "user:7", "balance:update", {"balance": 130, "reason": "daily_reward"}
    )


@pytest.mark.asyncio
async def test_message_sent_skips_push_without_devices(seed, monkeypatch, async_session_maker):
    female = await seed.account(role="female")
    publish = AsyncMock(return_value=True)
    push = AsyncMock(return_value=True)
    monkeypatch.setattr(notification_service, "publish_event_async", publish)
    monkeypatch.setattr(notification_service, "send_push_notification_async", push)

    await notification_service.run_event(
        "message_sent",
        {
            "message": {"id": 1, "chat_id": 3, "receiver_id": female, "message_type": "text", "content": "hi"},
            "sender": {"account_id": 2, "display_name": "Ravi"},
            "receiver_unread_count": 1,
        },
        async_session_maker,
    )

    assert [c.args[1] for c in publish.await_args_list] == ["message:new", "message:notification"]
    push.assert_not_awaited()


@pytest.mark.asyncio
async def test_worker_discards_malformed_events(async_session_maker):
    assert await chat_event_worker.process_raw_event("not json", async_session_maker) is False
    assert await chat_event_worker.process_raw_event('{"type": "nope"}', async_session_maker) is False


@pytest.mark.asyncio
async def test_worker_runs_known_events(monkeypatch, async_session_maker):
    publish = AsyncMock(return_value=True)
    monkeypatch.setattr(notification_service, "publish_event_async", publish)

    ok = await chat_event_worker.process_raw_event(
        '{"type": "intimacy_levelup", "payload": {"chat_id": 4, "level_info": {"level": 2}}}',
        async_session_maker,
    )

    assert ok is True
    publish.assert_awaited_once_with("chat:4", "intimacy:levelup", {"chat_id": 4, "level_info": {"level": 2}})
