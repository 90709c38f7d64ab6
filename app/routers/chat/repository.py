"""Chat repository layer.

Counter columns are only ever changed with single ``UPDATE ... SET col = col + n``
statements so concurrent sends never lose an increment.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import desc, select, update
from sqlalchemy.exc import IntegrityError

from app.models.account import Account
from app.models.chat import Block, Chat, ChatMessage, ChatParticipant, MessageStatus


async def get_account(db, account_id: int) -> Optional[Account]:
    result = await db.execute(select(Account).where(Account.account_id == account_id))
    return result.scalar_one_or_none()


async def get_accounts(db, account_ids: Iterable[int]) -> Dict[int, Account]:
    ids = list(set(account_ids))
    if not ids:
        return {}
    result = await db.execute(select(Account).where(Account.account_id.in_(ids)))
    return {a.account_id: a for a in result.scalars().all()}


async def get_chat(db, chat_id: int) -> Optional[Chat]:
    result = await db.execute(select(Chat).where(Chat.id == chat_id))
    return result.scalar_one_or_none()


async def get_chat_between(db, *, user_a: int, user_b: int) -> Optional[Chat]:
    low, high = sorted((user_a, user_b))
    result = await db.execute(
        select(Chat).where(Chat.user1_id == low, Chat.user2_id == high)
    )
    return result.scalar_one_or_none()


async def create_chat(db, *, first: Account, second: Account, created_by: int) -> Chat:
    """Insert the pair's chat, or return the one a concurrent request just created."""
    first_id, second_id = first.account_id, second.account_id
    low, high = sorted((first_id, second_id))
    chat = Chat(
        user1_id=low,
        user2_id=high,
        created_by=created_by,
        last_message_id=None,
        last_message_at=None,
        last_level_up_at=None,
        participants=[
            ChatParticipant(account_id=first_id, role=first.role),
            ChatParticipant(account_id=second_id, role=second.role),
        ],
    )
    db.add(chat)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        await db.refresh(first)
        await db.refresh(second)
        existing = await get_chat_between(db, user_a=first_id, user_b=second_id)
        if existing is None:
            raise
        return existing
    return chat


async def list_chats_for(db, *, account_id: int, limit: int = 100) -> List[Chat]:
    stmt = (
        select(Chat)
        .join(ChatParticipant, ChatParticipant.chat_id == Chat.id)
        .where(
            ChatParticipant.account_id == account_id,
            ChatParticipant.hidden_at.is_(None),
            Chat.is_active.is_(True),
        )
        .order_by(desc(Chat.last_message_at), desc(Chat.id))
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().unique().all())


def create_message(
    *,
    chat_id: int,
    sender_id: int,
    receiver_id: int,
    message_type: str,
    content: Optional[str],
    attachments,
    gifts,
    coins_spent: int,
    client_message_id: Optional[str],
    created_at: datetime,
) -> ChatMessage:
    return ChatMessage(
        chat_id=chat_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        message_type=message_type,
        content=content,
        attachments=attachments or None,
        gifts=gifts or None,
        coins_spent=coins_spent,
        status=MessageStatus.SENT.value,
        read_at=None,
        client_message_id=client_message_id,
        created_at=created_at,
    )


async def get_message_by_client_id(
    db, *, chat_id: int, sender_id: int, client_message_id: str
) -> Optional[ChatMessage]:
    result = await db.execute(
        select(ChatMessage).where(
            ChatMessage.chat_id == chat_id,
            ChatMessage.sender_id == sender_id,
            ChatMessage.client_message_id == client_message_id,
        )
    )
    return result.scalar_one_or_none()


async def get_messages_by_ids(db, message_ids: Iterable[int]) -> Dict[int, ChatMessage]:
    ids = [mid for mid in set(message_ids) if mid is not None]
    if not ids:
        return {}
    result = await db.execute(select(ChatMessage).where(ChatMessage.id.in_(ids)))
    return {m.id: m for m in result.scalars().all()}


async def list_messages(
    db, *, chat_id: int, before_id: Optional[int] = None, limit: int = 50
) -> List[ChatMessage]:
    stmt = select(ChatMessage).where(ChatMessage.chat_id == chat_id)
    if before_id is not None:
        stmt = stmt.where(ChatMessage.id < before_id)
    stmt = stmt.order_by(desc(ChatMessage.id)).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def record_message_activity(
    db, *, chat_id: int, sender_id: int, message_id: int, sent_at: datetime, weight: int
) -> Optional[int]:
    """
    Point the chat at its newest message and add ``weight`` to both the chat
    total and the sender's own counter. Returns the sender's new count.
    """
    await db.execute(
        update(Chat)
        .where(Chat.id == chat_id)
        .values(
            last_message_id=message_id,
            last_message_at=sent_at,
            total_message_count=Chat.total_message_count + weight,
        )
    )
    result = await db.execute(
        update(ChatParticipant)
        .where(ChatParticipant.chat_id == chat_id, ChatParticipant.account_id == sender_id)
        .values(message_count=ChatParticipant.message_count + weight)
        .returning(ChatParticipant.message_count)
    )
    return result.scalar_one_or_none()


async def increment_unread(db, *, chat_id: int, account_id: int) -> Optional[int]:
    result = await db.execute(
        update(ChatParticipant)
        .where(ChatParticipant.chat_id == chat_id, ChatParticipant.account_id == account_id)
        .values(unread_count=ChatParticipant.unread_count + 1, hidden_at=None)
        .returning(ChatParticipant.unread_count)
    )
    return result.scalar_one_or_none()


async def raise_intimacy_level(db, *, chat_id: int, level: int, leveled_at: datetime) -> bool:
    """Store a higher level; never lowers one written by a concurrent send."""
    result = await db.execute(
        update(Chat)
        .where(Chat.id == chat_id, Chat.intimacy_level < level)
        .values(intimacy_level=level, last_level_up_at=leveled_at)
        .returning(Chat.id)
    )
    return result.scalar_one_or_none() is not None


async def get_participant_count(db, *, chat_id: int, account_id: int) -> Optional[int]:
    result = await db.execute(
        select(ChatParticipant.message_count).where(
            ChatParticipant.chat_id == chat_id, ChatParticipant.account_id == account_id
        )
    )
    return result.scalar_one_or_none()


async def mark_chat_read(db, *, chat_id: int, reader_id: int, read_at: datetime) -> int:
    """Zero the reader's unread count and mark incoming messages read. Returns messages updated."""
    await db.execute(
        update(ChatParticipant)
        .where(ChatParticipant.chat_id == chat_id, ChatParticipant.account_id == reader_id)
        .values(unread_count=0, last_read_at=read_at)
    )
    result = await db.execute(
        update(ChatMessage)
        .where(
            ChatMessage.chat_id == chat_id,
            ChatMessage.receiver_id == reader_id,
            ChatMessage.status != MessageStatus.READ.value,
        )
        .values(status=MessageStatus.READ.value, read_at=read_at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def get_block(db, *, blocker_id: int, blocked_id: int) -> Optional[Block]:
    result = await db.execute(
        select(Block).where(Block.blocker_id == blocker_id, Block.blocked_id == blocked_id)
    )
    return result.scalar_one_or_none()

