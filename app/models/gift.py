"""
Gift Catalog and App Settings Models
"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from app.db import Base


class Gift(Base):
    __tablename__ = "gifts"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=True)
    image_url = Column(String, nullable=True)
    cost = Column(Integer, nullable=False)
    display_order = Column(Integer, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AppSettings(Base):
    """Single-row table of admin-editable coin costs."""

    __tablename__ = "app_settings"

    id = Column(Integer, primary_key=True)
    message_cost_basic = Column(Integer, nullable=False)
    message_cost_silver = Column(Integer, nullable=False)
    message_cost_gold = Column(Integer, nullable=False)
    message_cost_platinum = Column(Integer, nullable=False)
    hi_message_cost = Column(Integer, nullable=False)
    image_message_cost = Column(Integer, nullable=False)
    default_gift_cost = Column(Integer, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
