"""Chat, message and gift schemas."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

import config


class AttachmentModel(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    type: str = Field("image", description="Attachment kind, currently only image")


class SendMessageRequest(BaseModel):
    chat_id: int
    content: Optional[str] = Field(None, max_length=config.MESSAGE_MAX_LENGTH)
    message_type: Literal["text", "image"] = "text"
    attachments: List[AttachmentModel] = Field(default_factory=list)
    client_message_id: Optional[str] = Field(
        None, max_length=64, description="Client generated id; resubmissions are charged once"
    )


class SendHiRequest(BaseModel):
    receiver_id: int
    client_message_id: Optional[str] = Field(None, max_length=64)


class SendGiftRequest(BaseModel):
    chat_id: int
    gift_ids: List[int] = Field(..., min_length=1, max_length=20)
    content: Optional[str] = Field(None, max_length=500)
    client_message_id: Optional[str] = Field(None, max_length=64)


class CreateChatRequest(BaseModel):
    other_user_id: int


class BlockRequest(BaseModel):
    account_id: int


class AccountSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: int
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    role: str


class GiftItem(BaseModel):
    gift_id: int
    name: str
    cost: int
    image_url: Optional[str] = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    chat_id: int
    sender_id: int
    receiver_id: int
    message_type: str
    content: Optional[str] = None
    attachments: Optional[List[Dict[str, Any]]] = None
    gifts: Optional[List[GiftItem]] = None
    coins_spent: int = 0
    status: str
    read_at: Optional[datetime] = None
    created_at: datetime
    sender: Optional[AccountSummary] = None


class LevelInfoResponse(BaseModel):
    level: int
    name: str
    badge: str
    message_count: int
    min_messages: int
    next_level_at: Optional[int] = None
    messages_to_next_level: Optional[int] = None
    progress_percent: int
    is_max_level: bool


class SendMessageResult(BaseModel):
    message: MessageResponse
    new_balance: Optional[int] = None
    coins_spent: int = 0
    level_up: Optional[LevelInfoResponse] = None
    intimacy: Optional[LevelInfoResponse] = None
    duplicate: bool = False


class SendMessageEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: SendMessageResult


class ChatResponse(BaseModel):
    id: int
    other_user: AccountSummary
    is_active: bool
    unread_count: int = 0
    total_message_count: int = 0
    intimacy_level: int = 1
    intimacy: Optional[LevelInfoResponse] = None
    last_message: Optional[MessageResponse] = None
    last_message_at: Optional[datetime] = None
    created_at: datetime


class ChatEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: ChatResponse


class ChatListEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: List[ChatResponse]


class MessageListEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: List[MessageResponse]


class GiftResponse(BaseModel):
    id: int
    name: str
    cost: int
    image_url: Optional[str] = None
    category: Optional[str] = None


class GiftListEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: List[GiftResponse]


class GiftHistoryItem(BaseModel):
    transaction_id: int
    chat_id: Optional[int] = None
    recipient: Optional[AccountSummary] = None
    amount_coins: int
    balance_after: int
    description: Optional[str] = None
    created_at: datetime


class GiftHistoryEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: List[GiftHistoryItem]


class AckEnvelope(BaseModel):
    status: Literal["success"] = "success"
    data: Dict[str, Any] = Field(default_factory=dict)
