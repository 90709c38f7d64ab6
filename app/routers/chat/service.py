"""Chat domain service layer.

Every paid send follows the same order: validate, check blocks, resolve the
cost, then debit and persist the message in one database transaction with the
debit statement first. Once that commit succeeds the sender has been charged
and will get a success response; everything after it (audit row, counters,
level-up, notifications) is a soft step that logs its own failure.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

import config
from app.models.account import Account, PAYING_ROLE
from app.models.chat import Block, Chat, ChatMessage, MessageType
from app.services import ledger_service, notification_service
from app.services.intimacy import LevelInfo, check_level_up, level_for
from app.services.settings_provider import AppSettingsProvider
from core.errors import (
    BlockedError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from core.ports.earnings import EarningRecord, EarningsPort
from utils.chat_blocking import get_block_between
from utils.logging_helpers import log_error, log_info
from utils.message_sanitizer import sanitize_message

from . import repository
from .schemas import (
    AccountSummary,
    AckEnvelope,
    ChatEnvelope,
    ChatListEnvelope,
    ChatResponse,
    GiftHistoryEnvelope,
    GiftHistoryItem,
    GiftListEnvelope,
    GiftResponse,
    LevelInfoResponse,
    MessageListEnvelope,
    MessageResponse,
    SendGiftRequest,
    SendHiRequest,
    SendMessageEnvelope,
    SendMessageRequest,
    SendMessageResult,
)

logger = logging.getLogger(__name__)

KIND_MESSAGE_SPENT = "message_spent"
KIND_MESSAGE_EARNED = "message_earned"
KIND_IMAGE_SPENT = "image_spent"
KIND_IMAGE_EARNED = "image_earned"
KIND_GIFT_SENT = "gift_sent"
KIND_GIFT_RECEIVED = "gift_received"


@dataclass
class OutgoingMessage:
    chat: Chat
    sender: Account
    receiver: Account
    message_type: str
    content: Optional[str]
    cost: int
    intensity: int
    spend_kind: str
    earn_kind: str
    description: str
    earn_description: str
    attachments: Optional[List[Dict[str, Any]]] = None
    gifts: Optional[List[Dict[str, Any]]] = None
    client_message_id: Optional[str] = None


def _summary(account: Account) -> AccountSummary:
    return AccountSummary.model_validate(account)


def _level_response(info: Optional[LevelInfo]) -> Optional[LevelInfoResponse]:
    if info is None:
        return None
    return LevelInfoResponse(**info.to_dict())


def _message_response(message: ChatMessage, sender: Optional[AccountSummary] = None) -> MessageResponse:
    payload = MessageResponse.model_validate(message)
    payload.sender = sender
    return payload


def _paying_participant_id(chat: Chat) -> Optional[int]:
    for participant in chat.participants:
        if participant.role == PAYING_ROLE:
            return participant.account_id
    return None


def _chat_intimacy(chat: Chat) -> Optional[LevelInfo]:
    paying_id = _paying_participant_id(chat)
    if paying_id is None:
        return None
    return level_for(chat.participant_for(paying_id).message_count or 0)


def _ensure_can_send(sender: Account) -> None:
    if sender.is_blocked:
        raise BlockedError("Your account has been blocked. Contact support.")


def _ensure_pair_allowed(first: Account, second: Account) -> None:
    if first.account_id == second.account_id:
        raise ValidationError("You cannot chat with yourself")
    if first.is_admin or second.is_admin:
        return
    if first.role == second.role:
        if first.role == PAYING_ROLE:
            raise ValidationError("Males can only chat with females")
        raise ValidationError("Females can only chat with males")


async def _ensure_not_blocked(db, *, sender_id: int, receiver_id: int) -> None:
    block = await get_block_between(db, sender_id, receiver_id)
    if block is None:
        return
    if block.blocker_id == sender_id:
        raise BlockedError("You have blocked this user. Unblock to send messages.")
    raise BlockedError("You cannot send messages to this user as you have been blocked.")


async def _load_active_account(db, account_id: int) -> Account:
    account = await repository.get_account(db, account_id)
    if account is None or not account.is_active:
        raise NotFoundError("User not found")
    return account


async def _load_chat_for(db, *, chat_id: int, account_id: int) -> Chat:
    chat = await repository.get_chat(db, chat_id)
    if chat is None or not chat.is_active or chat.participant_for(account_id) is None:
        raise NotFoundError("Chat not found")
    return chat


async def _load_receiver(db, chat: Chat, sender_id: int) -> Account:
    other = chat.other_participant(sender_id)
    if other is None:
        raise NotFoundError("Chat not found")
    return await _load_active_account(db, other.account_id)


async def _current_balance(db, account_id: int) -> Optional[int]:
    result = await db.execute(
        select(Account.coin_balance).where(Account.account_id == account_id)
    )
    return result.scalar_one_or_none()


async def _duplicate_response(db, message: ChatMessage, *, sender_id: int, paying: bool) -> SendMessageEnvelope:
    sender = await db.get(Account, sender_id)
    chat = await repository.get_chat(db, message.chat_id)
    log_info(
        logger,
        "Duplicate send ignored",
        user_id=sender_id,
        chat_id=message.chat_id,
        message_id=message.id,
        client_message_id=message.client_message_id,
    )
    return SendMessageEnvelope(
        data=SendMessageResult(
            message=_message_response(message, _summary(sender) if sender else None),
            new_balance=await _current_balance(db, sender_id) if paying else None,
            coins_spent=0,
            intimacy=_level_response(_chat_intimacy(chat)) if chat else None,
            duplicate=True,
        )
    )


async def _deliver(
    db,
    out: OutgoingMessage,
    *,
    earnings: EarningsPort,
    session_factory: async_sessionmaker,
    background_tasks: BackgroundTasks,
) -> SendMessageEnvelope:
    # Plain values only from here on: a rollback expires ORM instances.
    sender_id = out.sender.account_id
    receiver_id = out.receiver.account_id
    chat_id = out.chat.id
    paying = out.sender.is_paying
    paying_participant_id = _paying_participant_id(out.chat)
    sender_summary = _summary(out.sender)
    cost = out.cost if paying else 0

    if out.client_message_id:
        existing = await repository.get_message_by_client_id(
            db, chat_id=chat_id, sender_id=sender_id, client_message_id=out.client_message_id
        )
        if existing is not None:
            return await _duplicate_response(db, existing, sender_id=sender_id, paying=paying)

    # Debit and persist commit together; the conditional debit runs first so an
    # insufficient balance aborts before the message row exists.
    new_balance = None
    try:
        if cost > 0:
            new_balance = await ledger_service.try_debit(db, account_id=sender_id, amount=cost)
        message = repository.create_message(
            chat_id=chat_id,
            sender_id=sender_id,
            receiver_id=receiver_id,
            message_type=out.message_type,
            content=out.content,
            attachments=out.attachments,
            gifts=out.gifts,
            coins_spent=cost,
            client_message_id=out.client_message_id,
            created_at=datetime.utcnow(),
        )
        db.add(message)
        await db.flush()
        await db.commit()
    except IntegrityError:
        await db.rollback()
        if out.client_message_id:
            existing = await repository.get_message_by_client_id(
                db, chat_id=chat_id, sender_id=sender_id, client_message_id=out.client_message_id
            )
            if existing is not None:
                return await _duplicate_response(db, existing, sender_id=sender_id, paying=paying)
        raise
    except Exception:
        await db.rollback()
        raise

    message_payload = _message_response(message, sender_summary)
    message_id = message.id
    sent_at = message.created_at

    if paying and cost == 0:
        new_balance = await _current_balance(db, sender_id)

    if cost > 0:
        try:
            earnings.add_earning(
                receiver_id,
                EarningRecord(
                    amount=cost,
                    kind=out.earn_kind,
                    related_account_id=sender_id,
                    related_chat_id=chat_id,
                    related_message_id=message_id,
                    description=out.earn_description,
                ),
            )
        except Exception as exc:
            log_error(logger, "Earning hand-off failed", user_id=receiver_id, step="earning", chat_id=chat_id, amount=cost, error=str(exc))

        background_tasks.add_task(
            ledger_service.write_audit_transaction,
            session_factory,
            account_id=sender_id,
            kind=out.spend_kind,
            direction=ledger_service.DEBIT,
            amount=cost,
            balance_after=new_balance,
            related_account_id=receiver_id,
            related_chat_id=chat_id,
            related_message_id=message_id,
            description=out.description,
        )

    sender_count = None
    try:
        sender_count = await repository.record_message_activity(
            db,
            chat_id=chat_id,
            sender_id=sender_id,
            message_id=message_id,
            sent_at=sent_at,
            weight=out.intensity,
        )
        await db.commit()
    except Exception as exc:
        await db.rollback()
        sender_count = None
        log_error(logger, "Conversation update failed", user_id=sender_id, step="conversation", chat_id=chat_id, error=str(exc))

    receiver_unread = None
    try:
        receiver_unread = await repository.increment_unread(db, chat_id=chat_id, account_id=receiver_id)
        await db.commit()
    except Exception as exc:
        await db.rollback()
        log_error(logger, "Unread increment failed", user_id=receiver_id, step="unread", chat_id=chat_id, error=str(exc))

    level_up = None
    if paying and sender_count is not None:
        check = check_level_up(sender_count - out.intensity, sender_count)
        if check.leveled_up:
            level_up = check.new_level_info
            try:
                await repository.raise_intimacy_level(
                    db, chat_id=chat_id, level=check.new_level, leveled_at=sent_at
                )
                await db.commit()
                log_info(
                    logger,
                    f"Chat leveled up: {check.previous_level} -> {check.new_level}",
                    user_id=sender_id,
                    chat_id=chat_id,
                )
            except Exception as exc:
                await db.rollback()
                log_error(logger, "Level-up persist failed", user_id=sender_id, step="level_up", chat_id=chat_id, error=str(exc))

    intimacy = None
    if paying_participant_id is not None:
        paying_count = sender_count if paying_participant_id == sender_id else None
        if paying_count is None:
            try:
                paying_count = await repository.get_participant_count(
                    db, chat_id=chat_id, account_id=paying_participant_id
                )
            except Exception as exc:
                log_error(logger, "Intimacy lookup failed", user_id=sender_id, step="intimacy", chat_id=chat_id, error=str(exc))
        if paying_count is not None:
            intimacy = level_for(paying_count)

    message_json = message_payload.model_dump(mode="json")
    events = [
        (
            notification_service.EVENT_MESSAGE_SENT,
            {
                "message": message_json,
                "sender": sender_summary.model_dump(mode="json"),
                "receiver_unread_count": receiver_unread,
            },
        )
    ]
    if paying and new_balance is not None:
        events.append(
            (
                notification_service.EVENT_BALANCE_UPDATE,
                {"account_id": sender_id, "balance": new_balance, "reason": out.spend_kind},
            )
        )
        if cost > 0 and new_balance < config.LOW_BALANCE_THRESHOLD:
            events.append(
                (
                    notification_service.EVENT_LOW_BALANCE,
                    {"account_id": sender_id, "balance": new_balance},
                )
            )
    if level_up is not None:
        events.append(
            (
                notification_service.EVENT_LEVEL_UP,
                {"chat_id": chat_id, "level_info": level_up.to_dict()},
            )
        )
    notification_service.dispatch_events(
        background_tasks, events, session_factory=session_factory
    )

    log_info(
        logger,
        "Message sent",
        user_id=sender_id,
        chat_id=chat_id,
        message_id=message_id,
        message_type=out.message_type,
        cost=cost,
        new_balance=new_balance,
    )

    return SendMessageEnvelope(
        data=SendMessageResult(
            message=message_payload,
            new_balance=new_balance if paying else None,
            coins_spent=cost,
            level_up=_level_response(level_up),
            intimacy=_level_response(intimacy),
        )
    )


async def send_message(
    db,
    *,
    sender: Account,
    request: SendMessageRequest,
    settings_provider: AppSettingsProvider,
    earnings: EarningsPort,
    session_factory: async_sessionmaker,
    background_tasks: BackgroundTasks,
) -> SendMessageEnvelope:
    """Send a text or image message inside an existing chat."""
    _ensure_can_send(sender)

    is_image = request.message_type == MessageType.IMAGE.value
    content = sanitize_message(request.content, max_length=config.MESSAGE_MAX_LENGTH)
    attachments = [a.model_dump() for a in request.attachments]
    if is_image and not attachments:
        raise ValidationError("At least one image attachment is required")
    if not is_image and not content:
        raise ValidationError("Message content is required")

    chat = await _load_chat_for(db, chat_id=request.chat_id, account_id=sender.account_id)
    receiver = await _load_receiver(db, chat, sender.account_id)
    await _ensure_not_blocked(db, sender_id=sender.account_id, receiver_id=receiver.account_id)

    cost = 0
    if sender.is_paying:
        costs = await settings_provider.get(db)
        cost = costs.get_image_message_cost() if is_image else costs.get_message_cost(sender.member_tier)

    return await _deliver(
        db,
        OutgoingMessage(
            chat=chat,
            sender=sender,
            receiver=receiver,
            message_type=request.message_type,
            content=content,
            attachments=attachments,
            cost=cost,
            intensity=config.IMAGE_MESSAGE_INTENSITY if is_image else config.TEXT_MESSAGE_INTENSITY,
            spend_kind=KIND_IMAGE_SPENT if is_image else KIND_MESSAGE_SPENT,
            earn_kind=KIND_IMAGE_EARNED if is_image else KIND_MESSAGE_EARNED,
            description="Image sent to user" if is_image else "Message sent to user",
            earn_description="Image received from user" if is_image else "Message received from user",
            client_message_id=request.client_message_id,
        ),
        earnings=earnings,
        session_factory=session_factory,
        background_tasks=background_tasks,
    )


async def send_hi_message(
    db,
    *,
    sender: Account,
    request: SendHiRequest,
    settings_provider: AppSettingsProvider,
    earnings: EarningsPort,
    session_factory: async_sessionmaker,
    background_tasks: BackgroundTasks,
) -> SendMessageEnvelope:
    """Open a conversation with a discounted "Hi", creating the chat if needed."""
    if not sender.is_paying:
        raise ForbiddenError("Only male users can send Hi messages")
    _ensure_can_send(sender)
    if request.receiver_id == sender.account_id:
        raise ValidationError("You cannot send a message to yourself")

    receiver = await _load_active_account(db, request.receiver_id)
    _ensure_pair_allowed(sender, receiver)
    await _ensure_not_blocked(db, sender_id=sender.account_id, receiver_id=receiver.account_id)

    costs = await settings_provider.get(db)
    chat = await get_or_create_chat(db, first=sender, second=receiver)

    return await _deliver(
        db,
        OutgoingMessage(
            chat=chat,
            sender=sender,
            receiver=receiver,
            message_type=MessageType.TEXT.value,
            content=config.HI_MESSAGE_CONTENT,
            cost=costs.get_hi_message_cost(),
            intensity=config.TEXT_MESSAGE_INTENSITY,
            spend_kind=KIND_MESSAGE_SPENT,
            earn_kind=KIND_MESSAGE_EARNED,
            description="Hi message sent to user",
            earn_description="Hi message received from user",
            client_message_id=request.client_message_id,
        ),
        earnings=earnings,
        session_factory=session_factory,
        background_tasks=background_tasks,
    )


async def send_gift(
    db,
    *,
    sender: Account,
    request: SendGiftRequest,
    settings_provider: AppSettingsProvider,
    earnings: EarningsPort,
    session_factory: async_sessionmaker,
    background_tasks: BackgroundTasks,
) -> SendMessageEnvelope:
    """Send one or more gifts as a single gift message, charged as one debit."""
    if not sender.is_paying:
        raise ForbiddenError("Only male users can send gifts")
    _ensure_can_send(sender)

    chat = await _load_chat_for(db, chat_id=request.chat_id, account_id=sender.account_id)
    gifts = await settings_provider.get_gifts(db, request.gift_ids)
    if not gifts:
        raise NotFoundError("No valid gifts found")

    receiver = await _load_receiver(db, chat, sender.account_id)
    await _ensure_not_blocked(db, sender_id=sender.account_id, receiver_id=receiver.account_id)

    items = [
        {"gift_id": g.id, "name": g.name, "cost": g.cost, "image_url": g.image_url}
        for g in gifts
    ]
    total_cost = sum(g.cost for g in gifts)
    content = sanitize_message(request.content, max_length=500) or f"Sent {len(items)} gift(s)"
    names = ", ".join(g.name for g in gifts)

    return await _deliver(
        db,
        OutgoingMessage(
            chat=chat,
            sender=sender,
            receiver=receiver,
            message_type=MessageType.GIFT.value,
            content=content,
            gifts=items,
            cost=total_cost,
            intensity=config.GIFT_MESSAGE_INTENSITY,
            spend_kind=KIND_GIFT_SENT,
            earn_kind=KIND_GIFT_RECEIVED,
            description=f"Gift ({names}) sent to user",
            earn_description=f"Gift ({names}) received from user",
            client_message_id=request.client_message_id,
        ),
        earnings=earnings,
        session_factory=session_factory,
        background_tasks=background_tasks,
    )


async def get_or_create_chat(db, *, first: Account, second: Account) -> Chat:
    chat = await repository.get_chat_between(db, user_a=first.account_id, user_b=second.account_id)
    if chat is not None:
        return chat
    chat = await repository.create_chat(db, first=first, second=second, created_by=first.account_id)
    log_info(logger, "Chat created", user_id=first.account_id, chat_id=chat.id, other_user_id=second.account_id)
    return chat


async def _chat_responses(db, chats: List[Chat], *, account_id: int) -> List[ChatResponse]:
    other_ids = [c.other_participant(account_id).account_id for c in chats]
    accounts = await repository.get_accounts(db, other_ids)
    last_messages = await repository.get_messages_by_ids(db, [c.last_message_id for c in chats])

    responses = []
    for chat, other_id in zip(chats, other_ids):
        other = accounts.get(other_id)
        if other is None:
            continue
        last = last_messages.get(chat.last_message_id)
        responses.append(
            ChatResponse(
                id=chat.id,
                other_user=_summary(other),
                is_active=chat.is_active,
                unread_count=chat.participant_for(account_id).unread_count,
                total_message_count=chat.total_message_count,
                intimacy_level=chat.intimacy_level,
                intimacy=_level_response(_chat_intimacy(chat)),
                last_message=_message_response(last) if last else None,
                last_message_at=chat.last_message_at,
                created_at=chat.created_at,
            )
        )
    return responses


async def open_chat(db, *, current_user: Account, other_user_id: int) -> ChatEnvelope:
    other = await _load_active_account(db, other_user_id)
    _ensure_pair_allowed(current_user, other)
    await _ensure_not_blocked(db, sender_id=current_user.account_id, receiver_id=other.account_id)
    chat = await get_or_create_chat(db, first=current_user, second=other)
    responses = await _chat_responses(db, [chat], account_id=current_user.account_id)
    return ChatEnvelope(data=responses[0])


async def list_chats(db, *, current_user: Account) -> ChatListEnvelope:
    chats = await repository.list_chats_for(db, account_id=current_user.account_id)
    return ChatListEnvelope(data=await _chat_responses(db, chats, account_id=current_user.account_id))


async def get_chat(db, *, current_user: Account, chat_id: int) -> ChatEnvelope:
    chat = await _load_chat_for(db, chat_id=chat_id, account_id=current_user.account_id)
    responses = await _chat_responses(db, [chat], account_id=current_user.account_id)
    if not responses:
        raise NotFoundError("Chat not found")
    return ChatEnvelope(data=responses[0])


async def list_messages(
    db, *, current_user: Account, chat_id: int, before_id: Optional[int], limit: int
) -> MessageListEnvelope:
    await _load_chat_for(db, chat_id=chat_id, account_id=current_user.account_id)
    messages = await repository.list_messages(
        db, chat_id=chat_id, before_id=before_id, limit=min(limit, config.MESSAGE_HISTORY_LIMIT)
    )
    return MessageListEnvelope(data=[_message_response(m) for m in messages])


async def mark_chat_read(db, *, current_user: Account, chat_id: int) -> AckEnvelope:
    await _load_chat_for(db, chat_id=chat_id, account_id=current_user.account_id)
    updated = await repository.mark_chat_read(
        db, chat_id=chat_id, reader_id=current_user.account_id, read_at=datetime.utcnow()
    )
    await db.commit()
    return AckEnvelope(data={"chat_id": chat_id, "messages_marked_read": updated})


async def block_account(db, *, current_user: Account, account_id: int) -> AckEnvelope:
    if account_id == current_user.account_id:
        raise ValidationError("You cannot block yourself")
    await _load_active_account(db, account_id)

    existing = await repository.get_block(db, blocker_id=current_user.account_id, blocked_id=account_id)
    if existing is None:
        db.add(Block(blocker_id=current_user.account_id, blocked_id=account_id))
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
        log_info(logger, "Account blocked", user_id=current_user.account_id, blocked_id=account_id)
    return AckEnvelope(data={"blocked_id": account_id, "blocked": True})


async def unblock_account(db, *, current_user: Account, account_id: int) -> AckEnvelope:
    blocker_id = current_user.account_id
    existing = await repository.get_block(db, blocker_id=blocker_id, blocked_id=account_id)
    if existing is None:
        raise NotFoundError("Block not found")
    await db.delete(existing)
    await db.commit()
    log_info(logger, "Account unblocked", user_id=blocker_id, blocked_id=account_id)
    return AckEnvelope(data={"blocked_id": account_id, "blocked": False})


async def list_gifts(db, *, settings_provider: AppSettingsProvider) -> GiftListEnvelope:
    gifts = await settings_provider.get_active_gifts(db)
    return GiftListEnvelope(
        data=[
            GiftResponse(id=g.id, name=g.name, cost=g.cost, image_url=g.image_url, category=g.category)
            for g in gifts
        ]
    )


async def get_gift_history(db, *, current_user: Account, limit: int = 50) -> GiftHistoryEnvelope:
    transactions = await ledger_service.list_transactions(
        db, account_id=current_user.account_id, kinds=[KIND_GIFT_SENT], limit=limit
    )
    recipients = await repository.get_accounts(
        db, [t.related_account_id for t in transactions if t.related_account_id]
    )
    items = []
    for txn in transactions:
        recipient = recipients.get(txn.related_account_id)
        items.append(
            GiftHistoryItem(
                transaction_id=txn.id,
                chat_id=txn.related_chat_id,
                recipient=_summary(recipient) if recipient else None,
                amount_coins=txn.amount_coins,
                balance_after=txn.balance_after,
                description=txn.description,
                created_at=txn.created_at,
            )
        )
    return GiftHistoryEnvelope(data=items)
