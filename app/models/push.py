"""
Push Notification Device Model
"""

from datetime import datetime

from sqlalchemy import BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String

from app.db import Base


class OneSignalPlayer(Base):
    __tablename__ = "onesignal_players"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(BigInteger, ForeignKey("accounts.account_id"), nullable=False, index=True)
    player_id = Column(String, unique=True, nullable=False, index=True)
    platform = Column(String, nullable=False)  # "ios", "android", "web"
    is_valid = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_active = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_failure_at = Column(DateTime, nullable=True)
