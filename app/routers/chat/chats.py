"""Chats Router - Conversation lifecycle and history."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

import config
from app.db import get_async_db
from app.dependencies import get_current_account
from app.models.account import Account

from .schemas import (
    AckEnvelope,
    ChatEnvelope,
    ChatListEnvelope,
    CreateChatRequest,
    MessageListEnvelope,
)
from .service import (
    get_chat as service_get_chat,
    list_chats as service_list_chats,
    list_messages as service_list_messages,
    mark_chat_read as service_mark_chat_read,
    open_chat as service_open_chat,
)

router = APIRouter(prefix="/chat/chats", tags=["Chat"])


@router.post("", response_model=ChatEnvelope)
async def open_chat(
    request: CreateChatRequest,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
):
    """Get or create the chat between the caller and another user."""
    return await service_open_chat(db, current_user=account, other_user_id=request.other_user_id)


@router.get("", response_model=ChatListEnvelope)
async def list_chats(
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_list_chats(db, current_user=account)


@router.get("/{chat_id}", response_model=ChatEnvelope)
async def get_chat(
    chat_id: int,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_get_chat(db, current_user=account, chat_id=chat_id)


@router.get("/{chat_id}/messages", response_model=MessageListEnvelope)
async def list_messages(
    chat_id: int,
    before_id: Optional[int] = None,
    limit: int = Query(config.MESSAGE_HISTORY_LIMIT, ge=1, le=100),
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
):
    """
    Message history, newest first. Pass the oldest id you hold as
    ``before_id`` to page backwards.
    """
    return await service_list_messages(
        db, current_user=account, chat_id=chat_id, before_id=before_id, limit=limit
    )


@router.patch("/{chat_id}/read", response_model=AckEnvelope)
async def mark_chat_read(
    chat_id: int,
    account: Account = Depends(get_current_account),
    db: AsyncSession = Depends(get_async_db),
):
    return await service_mark_chat_read(db, current_user=account, chat_id=chat_id)
