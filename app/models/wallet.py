"""
Coin Ledger Models
"""

from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, Integer, String

from app.db import Base, BigIntPK


class CoinTransaction(Base):
    """Append-only audit row; accounts.coin_balance stays authoritative."""

    __tablename__ = "coin_transactions"

    id = Column(BigIntPK, primary_key=True)
    account_id = Column(BigInteger, ForeignKey("accounts.account_id"), nullable=False, index=True)
    kind = Column(String, nullable=False)  # message_spent, gift_received, daily_reward, etc.
    direction = Column(String, nullable=False)  # debit or credit
    amount_coins = Column(BigInteger, nullable=False)
    balance_after = Column(BigInteger, nullable=False)
    related_account_id = Column(BigInteger, nullable=True)
    related_chat_id = Column(Integer, nullable=True)
    related_message_id = Column(BigInteger, nullable=True)
    description = Column(String, nullable=True)
    status = Column(String, nullable=False, default="completed")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_coin_transactions_account_kind", "account_id", "kind"),
    )
