"""Messages Router - Paid message, Hi and gift sends."""

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import get_async_db
from app.dependencies import (
    get_current_account,
    get_earnings,
    get_session_factory,
    get_settings_provider,
)
from app.models.account import Account
from app.services.settings_provider import AppSettingsProvider
from core.ports.earnings import EarningsPort

from .schemas import SendGiftRequest, SendHiRequest, SendMessageEnvelope, SendMessageRequest
from .service import (
    send_gift as service_send_gift,
    send_hi_message as service_send_hi_message,
    send_message as service_send_message,
)

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post("", response_model=SendMessageEnvelope, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: SendMessageRequest,
    background_tasks: BackgroundTasks,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
    settings_provider: AppSettingsProvider = Depends(get_settings_provider),
    earnings: EarningsPort = Depends(get_earnings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Send a text or image message in an existing chat.

    Male senders are charged by member tier (text) or the flat image cost;
    the debit and the message commit together. Returns 402 when the balance
    does not cover the cost.
    """
    return await service_send_message(
        db,
        sender=account,
        request=request,
        settings_provider=settings_provider,
        earnings=earnings,
        session_factory=session_factory,
        background_tasks=background_tasks,
    )


@router.post("/hi", response_model=SendMessageEnvelope, status_code=status.HTTP_201_CREATED)
async def send_hi_message(
    request: SendHiRequest,
    background_tasks: BackgroundTasks,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
    settings_provider: AppSettingsProvider = Depends(get_settings_provider),
    earnings: EarningsPort = Depends(get_earnings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Send the fixed "Hi" greeting at the discounted Hi cost.
    Creates the chat on first contact. Male senders only.
    """
    return await service_send_hi_message(
        db,
        sender=account,
        request=request,
        settings_provider=settings_provider,
        earnings=earnings,
        session_factory=session_factory,
        background_tasks=background_tasks,
    )


@router.post("/gift", response_model=SendMessageEnvelope, status_code=status.HTTP_201_CREATED)
async def send_gift(
    request: SendGiftRequest,
    background_tasks: BackgroundTasks,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
    settings_provider: AppSettingsProvider = Depends(get_settings_provider),
    earnings: EarningsPort = Depends(get_earnings),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """
    Send one or more catalog gifts as a single gift message.
    The sum of the gift costs is charged as one debit.
    """
    return await service_send_gift(
        db,
        sender=account,
        request=request,
        settings_provider=settings_provider,
        earnings=earnings,
        session_factory=session_factory,
        background_tasks=background_tasks,
    )
