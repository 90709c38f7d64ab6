"""Gifts Router - Gift catalog and the caller's sent-gift history."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_async_db
from app.dependencies import get_current_account, get_settings_provider
from app.models.account import Account
from app.services.settings_provider import AppSettingsProvider

from .schemas import GiftHistoryEnvelope, GiftListEnvelope
from .service import (
    get_gift_history as service_get_gift_history,
    list_gifts as service_list_gifts,
)

router = APIRouter(prefix="/chat", tags=["Gifts"])


@router.get("/gifts", response_model=GiftListEnvelope)
async def list_gifts(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
    settings_provider: AppSettingsProvider = Depends(get_settings_provider),
):
    """Active gifts in display order. Served from a short-lived cache."""
    return await service_list_gifts(db, settings_provider=settings_provider)


@router.get("/history/gifts", response_model=GiftHistoryEnvelope)
async def get_gift_history(
    limit: int = Query(50, ge=1, le=200),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_get_gift_history(db, current_user=account, limit=limit)
