"""
Account Model
"""

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    String,
)

from app.db import Base, BigIntPK


class AccountRole(str, PyEnum):
    MALE = "male"
    FEMALE = "female"
    ADMIN = "admin"


class MemberTier(str, PyEnum):
    BASIC = "basic"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


# Only this role pays coins to send and receives daily rewards
PAYING_ROLE = AccountRole.MALE.value


class Account(Base):
    __tablename__ = "accounts"

    account_id = Column(BigIntPK, primary_key=True)
    descope_user_id = Column(String, unique=True, index=True, nullable=True)
    display_name = Column(String, nullable=True)
    photo_url = Column(String, nullable=True)
    role = Column(String, nullable=False, default=AccountRole.MALE.value)  # male, female, admin
    member_tier = Column(String, nullable=False, default=MemberTier.BASIC.value)
    coin_balance = Column(BigInteger, nullable=False, default=0)
    last_daily_reward_at = Column(DateTime, nullable=True)  # naive UTC
    is_active = Column(Boolean, default=True, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)  # suspended by an admin
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("coin_balance >= 0", name="ck_accounts_coin_balance_non_negative"),
    )

    @property
    def is_paying(self) -> bool:
        return self.role == PAYING_ROLE

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN.value
