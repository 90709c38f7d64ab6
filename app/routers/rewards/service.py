"""Daily reward service layer.

A claim is a single conditional ``UPDATE`` on the account row: it only matches
when the account is male and its last claim falls before the start of the
current calendar day in ``APP_TIMEZONE``. Two concurrent claims on the same day
cannot both match, so the reward is credited at most once per day.
"""

import logging
from datetime import datetime, time, timedelta
from typing import Optional, Tuple

import pytz
from fastapi import BackgroundTasks
from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

import config
from app.models.account import Account, PAYING_ROLE
from app.services import ledger_service, notification_service
from utils.logging_helpers import log_info

from .schemas import (
    DailyRewardEnvelope,
    DailyRewardResult,
    DailyRewardStatus,
    DailyRewardStatusEnvelope,
)

logger = logging.getLogger(__name__)

KIND_DAILY_REWARD = "daily_reward"

REASON_NOT_ELIGIBLE = "Daily rewards are only for male users"
REASON_ALREADY_CLAIMED = "Already claimed today"
REASON_FIRST_CLAIM = "First time claim"
REASON_NEW_DAY = "New day"


def day_bounds(now: datetime, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """
    Start of the calendar day containing ``now`` and of the next one, in the
    reference timezone, returned as naive UTC to compare with stored timestamps.

    ``now`` is naive UTC.
    """
    tz = pytz.timezone(tz_name or config.APP_TIMEZONE)
    local_now = pytz.utc.localize(now).astimezone(tz)
    today = local_now.date()
    start = tz.localize(datetime.combine(today, time.min))
    next_start = tz.localize(datetime.combine(today + timedelta(days=1), time.min))
    return (
        start.astimezone(pytz.utc).replace(tzinfo=None),
        next_start.astimezone(pytz.utc).replace(tzinfo=None),
    )


def claimed_today(last_claim_at: Optional[datetime], now: datetime) -> bool:
    if last_claim_at is None:
        return False
    day_start, _ = day_bounds(now)
    return last_claim_at >= day_start


async def _balance_of(db, account_id: int) -> Optional[int]:
    result = await db.execute(
        select(Account.coin_balance).where(Account.account_id == account_id)
    )
    return result.scalar_one_or_none()


async def claim_daily_reward(
    db,
    *,
    account: Account,
    session_factory: async_sessionmaker,
    background_tasks: BackgroundTasks,
    now: Optional[datetime] = None,
) -> DailyRewardEnvelope:
    """Credit today's reward once. A repeat claim on the same day is a no-op."""
    now = now or datetime.utcnow()
    account_id = account.account_id
    amount = config.DAILY_REWARD_AMOUNT

    if account.role != PAYING_ROLE:
        return DailyRewardEnvelope(
            data=DailyRewardResult(
                claimed=False,
                new_balance=await _balance_of(db, account_id),
                reason=REASON_NOT_ELIGIBLE,
            )
        )

    is_first_claim = account.last_daily_reward_at is None
    day_start, _ = day_bounds(now)

    result = await db.execute(
        update(Account)
        .where(
            Account.account_id == account_id,
            Account.role == PAYING_ROLE,
            or_(
                Account.last_daily_reward_at.is_(None),
                Account.last_daily_reward_at < day_start,
            ),
        )
        .values(
            coin_balance=Account.coin_balance + amount,
            last_daily_reward_at=now,
            updated_at=now,
        )
        .returning(Account.coin_balance)
    )
    new_balance = result.scalar_one_or_none()

    if new_balance is None:
        await db.rollback()
        balance = await _balance_of(db, account_id)
        log_info(logger, "Daily reward already claimed", user_id=account_id)
        return DailyRewardEnvelope(
            data=DailyRewardResult(
                claimed=False, new_balance=balance, reason=REASON_ALREADY_CLAIMED
            )
        )

    db.add(
        ledger_service.build_transaction(
            account_id=account_id,
            kind=KIND_DAILY_REWARD,
            direction=ledger_service.CREDIT,
            amount=amount,
            balance_after=new_balance,
            description="Daily login reward",
            created_at=now,
        )
    )
    await db.commit()

    log_info(
        logger,
        "Daily reward claimed",
        user_id=account_id,
        amount=amount,
        new_balance=new_balance,
        first_claim=is_first_claim,
    )

    notification_service.dispatch_event(
        background_tasks,
        notification_service.EVENT_BALANCE_UPDATE,
        {"account_id": account_id, "balance": new_balance, "reason": KIND_DAILY_REWARD},
        session_factory=session_factory,
    )

    return DailyRewardEnvelope(
        data=DailyRewardResult(
            claimed=True,
            amount=amount,
            new_balance=new_balance,
            reason=REASON_FIRST_CLAIM if is_first_claim else REASON_NEW_DAY,
            is_first_claim=is_first_claim,
        )
    )


async def check_daily_reward(
    db, *, account: Account, now: Optional[datetime] = None
) -> DailyRewardStatusEnvelope:
    now = now or datetime.utcnow()
    amount = config.DAILY_REWARD_AMOUNT

    if account.role != PAYING_ROLE:
        return DailyRewardStatusEnvelope(
            data=DailyRewardStatus(can_claim=False, reason=REASON_NOT_ELIGIBLE, amount=amount)
        )

    last_claim_at = account.last_daily_reward_at
    if claimed_today(last_claim_at, now):
        _, next_start = day_bounds(now)
        return DailyRewardStatusEnvelope(
            data=DailyRewardStatus(
                can_claim=False,
                reason=REASON_ALREADY_CLAIMED,
                amount=amount,
                next_claim_at=next_start,
            )
        )

    return DailyRewardStatusEnvelope(
        data=DailyRewardStatus(
            can_claim=True,
            reason=REASON_FIRST_CLAIM if last_claim_at is None else REASON_NEW_DAY,
            amount=amount,
        )
    )
