from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol


@dataclass
class EarningRecord:
    amount: int
    kind: str
    related_account_id: Optional[int] = None
    related_chat_id: Optional[int] = None
    related_message_id: Optional[int] = None
    description: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


class EarningsPort(Protocol):
    def add_earning(self, account_id: int, record: EarningRecord) -> None: ...

    def pending_total(self, account_id: int) -> int: ...
