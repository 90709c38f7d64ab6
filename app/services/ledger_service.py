"""
Ledger Service - Atomic coin balance mutations and the audit trail
"""
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.account import Account
from app.models.wallet import CoinTransaction
from core.errors import InsufficientFundsError, NotFoundError
from utils.logging_helpers import log_error, log_info

logger = logging.getLogger(__name__)

DEBIT = "debit"
CREDIT = "credit"


async def conditional_decrement(
    db: AsyncSession, account_id: int, amount: int
) -> Optional[int]:
    """
    Decrement the balance by ``amount`` only if the balance covers it.

    Runs as one ``UPDATE ... WHERE coin_balance >= amount RETURNING``
    statement, so two concurrent callers can never both spend the same coins.
    Returns the new balance, or None when the predicate did not match.
    """
    stmt = (
        update(Account)
        .where(Account.account_id == account_id, Account.coin_balance >= amount)
        .values(
            coin_balance=Account.coin_balance - amount,
            updated_at=datetime.utcnow(),
        )
        .returning(Account.coin_balance)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def increment(db: AsyncSession, account_id: int, amount: int) -> Optional[int]:
    """Add ``amount`` to the balance. Returns None if the account does not exist."""
    stmt = (
        update(Account)
        .where(Account.account_id == account_id)
        .values(
            coin_balance=Account.coin_balance + amount,
            updated_at=datetime.utcnow(),
        )
        .returning(Account.coin_balance)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def try_debit(db: AsyncSession, *, account_id: int, amount: int) -> int:
    """
    Debit coins inside the caller's transaction.

    The caller owns the commit so the debit and whatever it pays for land
    together. Raises InsufficientFundsError when the balance is too low.
    """
    if amount <= 0:
        raise ValueError("debit amount must be positive")

    new_balance = await conditional_decrement(db, account_id, amount)
    if new_balance is not None:
        return new_balance

    # Predicate failed; read only to build the error
    result = await db.execute(
        select(Account.coin_balance).where(Account.account_id == account_id)
    )
    balance = result.scalar_one_or_none()
    if balance is None:
        raise NotFoundError("Account not found")

    log_info(
        logger,
        "Debit rejected: insufficient balance",
        user_id=account_id,
        required=amount,
        balance=balance,
    )
    raise InsufficientFundsError(required=amount, balance=balance)


def build_transaction(
    *,
    account_id: int,
    kind: str,
    direction: str,
    amount: int,
    balance_after: int,
    related_account_id: Optional[int] = None,
    related_chat_id: Optional[int] = None,
    related_message_id: Optional[int] = None,
    description: Optional[str] = None,
    created_at: Optional[datetime] = None,
) -> CoinTransaction:
    return CoinTransaction(
        account_id=account_id,
        kind=kind,
        direction=direction,
        amount_coins=amount,
        balance_after=balance_after,
        related_account_id=related_account_id,
        related_chat_id=related_chat_id,
        related_message_id=related_message_id,
        description=description,
        status="completed",
        created_at=created_at or datetime.utcnow(),
    )


async def write_audit_transaction(
    session_factory: async_sessionmaker, **fields
) -> Optional[int]:
    """
    Persist one audit row in its own session.

    Best-effort: the balance change it describes is already committed, so a
    failure here is logged and swallowed.
    """
    try:
        async with session_factory() as db:
            txn = build_transaction(**fields)
            db.add(txn)
            await db.commit()
            return txn.id
    except Exception as exc:
        log_error(
            logger,
            "Audit transaction write failed",
            user_id=fields.get("account_id"),
            step="audit",
            kind=fields.get("kind"),
            amount=fields.get("amount"),
            error=str(exc),
        )
        return None


async def list_transactions(
    db: AsyncSession,
    *,
    account_id: int,
    kinds: Optional[Iterable[str]] = None,
    limit: int = 50,
) -> List[CoinTransaction]:
    stmt = select(CoinTransaction).where(CoinTransaction.account_id == account_id)
    if kinds:
        stmt = stmt.where(CoinTransaction.kind.in_(list(kinds)))
    stmt = stmt.order_by(CoinTransaction.created_at.desc(), CoinTransaction.id.desc()).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())
