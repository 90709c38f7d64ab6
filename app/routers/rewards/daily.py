"""Daily Reward Router - Once-per-day coin grant for male users."""

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import get_async_db
from app.dependencies import get_current_account, get_session_factory
from app.models.account import Account

from .schemas import DailyRewardEnvelope, DailyRewardStatusEnvelope
from .service import (
    check_daily_reward as service_check_daily_reward,
    claim_daily_reward as service_claim_daily_reward,
)

router = APIRouter(prefix="/rewards/daily", tags=["Rewards"])


@router.post("/claim", response_model=DailyRewardEnvelope)
async def claim_daily_reward(
    background_tasks: BackgroundTasks,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Claim today's reward.

    The calendar day is taken in the configured app timezone. A second claim
    on the same day returns ``claimed: false`` with reason "Already claimed
    today" and leaves the balance unchanged.
    """
    return await service_claim_daily_reward(
        db, account=account, session_factory=session_factory, background_tasks=background_tasks
    )


@router.get("/check", response_model=DailyRewardStatusEnvelope)
async def check_daily_reward(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_check_daily_reward(db, account=account)
