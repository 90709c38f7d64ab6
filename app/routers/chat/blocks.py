"""Blocks Router - Block and unblock other users."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_current_account
from app.models.account import Account

from .schemas import AckEnvelope, BlockRequest
from .service import (
    block_account as service_block_account,
    unblock_account as service_unblock_account,
)

router = APIRouter(prefix="/chat/blocks", tags=["Chat"])


@router.post("", response_model=AckEnvelope)
async def block_account(
    request: BlockRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
):
    """Block a user. Messages in either direction are refused while the block exists."""
    return await service_block_account(db, current_user=account, account_id=request.account_id)


@router.delete("/{account_id}", response_model=AckEnvelope)
async def unblock_account(
    account_id: int,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_unblock_account(db, current_user=account, account_id=account_id)
