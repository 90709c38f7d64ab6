"""
Chat Models
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db import Base, BigIntPK


class MessageType(str, PyEnum):
    TEXT = "text"
    IMAGE = "image"
    GIFT = "gift"


class MessageStatus(str, PyEnum):
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"


class Chat(Base):
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    user1_id = Column(BigInteger, ForeignKey("accounts.account_id"), nullable=False, index=True)  # lower id
    user2_id = Column(BigInteger, ForeignKey("accounts.account_id"), nullable=False, index=True)  # higher id
    created_by = Column(BigInteger, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    total_message_count = Column(Integer, default=0, nullable=False)
    intimacy_level = Column(Integer, default=1, nullable=False)
    last_level_up_at = Column(DateTime, nullable=True)
    last_message_id = Column(BigInteger, nullable=True)
    last_message_at = Column(DateTime, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    participants = relationship(
        "ChatParticipant", back_populates="chat", lazy="selectin", order_by="ChatParticipant.id"
    )

    __table_args__ = (
        UniqueConstraint("user1_id", "user2_id", name="uq_chats_pair"),
    )

    def participant_for(self, account_id):
        for participant in self.participants:
            if participant.account_id == account_id:
                return participant
        return None

    def other_participant(self, account_id):
        for participant in self.participants:
            if participant.account_id != account_id:
                return participant
        return None


class ChatParticipant(Base):
    """Per-participant chat state; message_count drives intimacy for the paying side."""

    __tablename__ = "chat_participants"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    account_id = Column(BigInteger, ForeignKey("accounts.account_id"), nullable=False, index=True)
    role = Column(String, nullable=False)
    unread_count = Column(Integer, default=0, nullable=False)
    message_count = Column(Integer, default=0, nullable=False)
    last_read_at = Column(DateTime, nullable=True)
    hidden_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    chat = relationship("Chat", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("chat_id", "account_id", name="uq_chat_participants_member"),
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(BigIntPK, primary_key=True)
    chat_id = Column(Integer, ForeignKey("chats.id"), nullable=False, index=True)
    sender_id = Column(BigInteger, ForeignKey("accounts.account_id"), nullable=False, index=True)
    receiver_id = Column(BigInteger, ForeignKey("accounts.account_id"), nullable=False)
    message_type = Column(String, nullable=False, default=MessageType.TEXT.value)
    content = Column(Text, nullable=True)
    attachments = Column(JSON, nullable=True)  # list of {url, type}
    gifts = Column(JSON, nullable=True)  # ordered list of {gift_id, name, cost, image_url}
    coins_spent = Column(BigInteger, default=0, nullable=False)
    status = Column(String, nullable=False, default=MessageStatus.SENT.value)
    read_at = Column(DateTime, nullable=True)
    client_message_id = Column(String, nullable=True)  # For idempotency
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint(
            "chat_id", "sender_id", "client_message_id", name="uq_chat_messages_client_id"
        ),
    )


class Block(Base):
    __tablename__ = "account_blocks"

    id = Column(Integer, primary_key=True, index=True)
    blocker_id = Column(BigInteger, ForeignKey("accounts.account_id"), nullable=False, index=True)
    blocked_id = Column(BigInteger, ForeignKey("accounts.account_id"), nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("blocker_id", "blocked_id", name="uq_account_blocks_pair"),
    )
