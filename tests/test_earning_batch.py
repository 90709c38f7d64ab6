"""
Earning batcher: buffered receiver credits, flush and retry.
"""
import pytest

from app.services.earning_batch_service import FLUSH_JOB_ID, EarningBatchService
from core.ports.earnings import EarningRecord


class _UnavailableSessionFactory:
    def __call__(self):
        return self

    async def __aenter__(self):
        raise RuntimeError("database unavailable")

    async def __aexit__(self, *exc_info):
        return False


def _record(amount, kind="message_earned", **kwargs):
    return EarningRecord(amount=amount, kind=kind, **kwargs)


@pytest.mark.asyncio
async def test_add_earning_only_buffers(seed, earnings):
    female = await seed.account(role="female", balance=0)

    earnings.add_earning(female, _record(50))
    earnings.add_earning(female, _record(30, kind="gift_received"))

    assert earnings.pending_total(female) == 80
    assert earnings.pending_accounts == 1
    assert await seed.balance(female) == 0


@pytest.mark.asyncio
async def test_non_positive_earnings_are_ignored(earnings):
    earnings.add_earning(1, _record(0))
    earnings.add_earning(1, _record(-5))

    assert earnings.pending_total(1) == 0
    assert earnings.pending_accounts == 0


@pytest.mark.asyncio
async def test_flush_credits_balance_and_writes_ledger_rows(seed, earnings):
    female = await seed.account(role="female", balance=10)
    male = await seed.account(role="male")

    earnings.add_earning(female, _record(50, related_account_id=male, related_chat_id=3))
    earnings.add_earning(female, _record(100, kind="gift_received", related_account_id=male))

    credited = await earnings.flush()

    assert credited == 2
    assert await seed.balance(female) == 160
    assert earnings.pending_total(female) == 0
    rows = await seed.transactions(female)
    assert [(r.kind, r.direction, r.amount_coins, r.balance_after) for r in rows] == [
        ("message_earned", "credit", 50, 60),
        ("gift_received", "credit", 100, 160),
    ]
    assert rows[0].related_account_id == male
    assert rows[0].related_chat_id == 3


@pytest.mark.asyncio
async def test_flush_with_empty_buffer_is_noop(earnings):
    assert await earnings.flush() == 0


@pytest.mark.asyncio
async def test_failed_flush_requeues_entries(seed, async_session_maker):
    female = await seed.account(role="female", balance=0)
    batcher = EarningBatchService(_UnavailableSessionFactory())
    batcher.add_earning(female, _record(50))

    assert await batcher.flush() == 0
    assert batcher.pending_total(female) == 50

    # Entries queued while the database was down stay behind the requeued ones
    batcher.add_earning(female, _record(20))
    batcher._session_factory = async_session_maker

    assert await batcher.flush() == 2
    assert await seed.balance(female) == 70
    assert [r.amount_coins for r in await seed.transactions(female)] == [50, 20]


@pytest.mark.asyncio
async def test_missing_account_is_dropped(seed, earnings):
    female = await seed.account(role="female", balance=0)
    earnings.add_earning(999, _record(50))
    earnings.add_earning(female, _record(25))

    assert await earnings.flush() == 1
    assert await seed.balance(female) == 25
    assert earnings.pending_accounts == 0


@pytest.mark.asyncio
async def test_scheduler_lifecycle_flushes_on_shutdown(seed, async_session_maker):
    female = await seed.account(role="female", balance=0)
    batcher = EarningBatchService(async_session_maker, flush_interval_seconds=3600)

    batcher.start()
    assert batcher._scheduler.get_job(FLUSH_JOB_ID) is not None

    batcher.add_earning(female, _record(40))
    await batcher.shutdown()

    assert await seed.balance(female) == 40
    assert batcher._scheduler is None
