"""
Ledger primitive: conditional debit under concurrency, increments and audit rows.
"""
import asyncio

import pytest
from sqlalchemy import select

from app.models.wallet import CoinTransaction
from app.services import ledger_service
from core.errors import InsufficientFundsError, NotFoundError


@pytest.mark.asyncio
async def test_try_debit_returns_new_balance(seed, db_session):
    account_id = await seed.account(balance=200)

    new_balance = await ledger_service.try_debit(db_session, account_id=account_id, amount=50)
    await db_session.commit()

    assert new_balance == 150
    assert await seed.balance(account_id) == 150


@pytest.mark.asyncio
async def test_try_debit_insufficient_leaves_balance(seed, db_session):
    account_id = await seed.account(balance=10)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await ledger_service.try_debit(db_session, account_id=account_id, amount=50)
    await db_session.rollback()

    assert exc_info.value.required == 50
    assert exc_info.value.balance == 10
    assert exc_info.value.to_envelope()["reason"] == "insufficient_balance"
    assert await seed.balance(account_id) == 10


@pytest.mark.asyncio
async def test_try_debit_exact_balance_reaches_zero(seed, db_session):
    account_id = await seed.account(balance=50)

    assert await ledger_service.try_debit(db_session, account_id=account_id, amount=50) == 0
    await db_session.commit()


@pytest.mark.asyncio
async def test_try_debit_unknown_account(db_session):
    with pytest.raises(NotFoundError):
        await ledger_service.try_debit(db_session, account_id=999, amount=5)


@pytest.mark.asyncio
async def test_try_debit_rejects_non_positive_amount(seed, db_session):
    account_id = await seed.account(balance=50)

    with pytest.raises(ValueError):
        await ledger_service.try_debit(db_session, account_id=account_id, amount=0)


@pytest.mark.asyncio
async def test_concurrent_debits_never_overspend(seed, async_session_maker):
    account_id = await seed.account(balance=120)

    async def attempt():
        async with async_session_maker() as session:
            try:
                balance = await ledger_service.try_debit(session, account_id=account_id, amount=50)
                await session.commit()
                return balance
            except InsufficientFundsError:
                await session.rollback()
                return None

    results = await asyncio.gather(*(attempt() for _ in range(5)))

    successes = [r for r in results if r is not None]
    assert sorted(successes) == [20, 70]
    assert await seed.balance(account_id) == 20


@pytest.mark.asyncio
async def test_increment_adds_to_balance(seed, db_session):
    account_id = await seed.account(balance=5)

    assert await ledger_service.increment(db_session, account_id, 45) == 50
    await db_session.commit()
    assert await ledger_service.increment(db_session, 999, 45) is None


@pytest.mark.asyncio
async def test_write_audit_transaction_persists_row(seed, async_session_maker):
    account_id = await seed.account(balance=100)

    txn_id = await ledger_service.write_audit_transaction(
        async_session_maker,
        account_id=account_id,
        kind="message_spent",
        direction=ledger_service.DEBIT,
        amount=50,
        balance_after=50,
        description="Message sent to user",
    )

    assert txn_id is not None
    rows = await seed.transactions(account_id)
    assert [(r.kind, r.direction, r.amount_coins, r.balance_after) for r in rows] == [
        ("message_spent", "debit", 50, 50)
    ]


@pytest.mark.asyncio
async def test_write_audit_transaction_failure_is_swallowed(async_session_maker, caplog):
    # Missing required balance_after makes the insert fail
    txn_id = await ledger_service.write_audit_transaction(
        async_session_maker,
        account_id=1,
        kind="message_spent",
        direction=ledger_service.DEBIT,
        amount=50,
        balance_after=None,
    )

    assert txn_id is None
    assert "step=audit" in caplog.text


@pytest.mark.asyncio
async def test_list_transactions_filters_by_kind(seed, async_session_maker, db_session):
    account_id = await seed.account(balance=100)
    for kind in ("gift_sent", "message_spent", "gift_sent"):
        await ledger_service.write_audit_transaction(
            async_session_maker,
            account_id=account_id,
            kind=kind,
            direction=ledger_service.DEBIT,
            amount=10,
            balance_after=90,
        )

    rows = await ledger_service.list_transactions(db_session, account_id=account_id, kinds=["gift_sent"])

    assert len(rows) == 2
    assert {r.kind for r in rows} == {"gift_sent"}
    result = await db_session.execute(select(CoinTransaction))
    assert len(result.scalars().all()) == 3
