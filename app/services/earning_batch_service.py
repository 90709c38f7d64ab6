"""
Earning Batch Service - Buffers receiver earnings and credits them in bulk

Every paid message earns the receiver coins. Writing one balance update and one
ledger row per message is wasteful, so earnings are buffered per receiver in
memory and flushed periodically: one atomic balance increment per receiver plus
one audit row per buffered earning.

Delivery is at-least-once from the buffer's point of view: a failed flush puts
the entries back and the next flush retries them. Entries still buffered when
the process dies are lost, which is the accepted trade-off for keeping the
send path free of earning writes.
"""
import asyncio
import logging
from typing import Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import async_sessionmaker

import config
from app.db import AsyncSessionLocal
from app.services import ledger_service
from core.ports.earnings import EarningRecord
from utils.logging_helpers import log_error, log_warning

logger = logging.getLogger(__name__)

FLUSH_JOB_ID = "earning_batch_flush"


class EarningBatchService:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        *,
        flush_interval_seconds: float = config.EARNING_BATCH_FLUSH_SECONDS,
    ):
        self._session_factory = session_factory
        self.flush_interval_seconds = flush_interval_seconds
        self._buffer: Dict[int, List[EarningRecord]] = {}
        self._flush_lock = asyncio.Lock()
        self._scheduler: Optional[AsyncIOScheduler] = None

    def add_earning(self, account_id: int, record: EarningRecord) -> None:
        """Queue an earning. Never touches the database, never raises."""
        if record.amount <= 0:
            return
        self._buffer.setdefault(account_id, []).append(record)
        logger.debug(
            f"Earning queued | user_id={account_id} | amount={record.amount} | kind={record.kind}"
        )

    def pending_total(self, account_id: int) -> int:
        return sum(r.amount for r in self._buffer.get(account_id, []))

    def pending_records(self, account_id: int) -> List[EarningRecord]:
        return list(self._buffer.get(account_id, []))

    @property
    def pending_accounts(self) -> int:
        return len(self._buffer)

    def _requeue(self, batch: Dict[int, List[EarningRecord]]) -> None:
        for account_id, records in batch.items():
            self._buffer[account_id] = records + self._buffer.get(account_id, [])

    async def flush(self) -> int:
        """Credit everything buffered so far. Returns the number of earnings credited."""
        async with self._flush_lock:
            if not self._buffer:
                return 0

            batch, self._buffer = self._buffer, {}
            credited = 0
            try:
                async with self._session_factory() as db:
                    for account_id, records in batch.items():
                        total = sum(r.amount for r in records)
                        new_balance = await ledger_service.increment(db, account_id, total)
                        if new_balance is None:
                            log_warning(
                                logger,
                                "Dropping earnings for missing account",
                                user_id=account_id,
                                amount=total,
                                entries=len(records),
                            )
                            continue

                        running = new_balance - total
                        for record in records:
                            running += record.amount
                            db.add(
                                ledger_service.build_transaction(
                                    account_id=account_id,
                                    kind=record.kind,
                                    direction=ledger_service.CREDIT,
                                    amount=record.amount,
                                    balance_after=running,
                                    related_account_id=record.related_account_id,
                                    related_chat_id=record.related_chat_id,
                                    related_message_id=record.related_message_id,
                                    description=record.description,
                                    created_at=record.created_at,
                                )
                            )
                        credited += len(records)
                    await db.commit()
            except Exception as exc:
                self._requeue(batch)
                log_error(
                    logger,
                    "Earning batch flush failed, entries requeued",
                    accounts=len(batch),
                    error=str(exc),
                    exc_info=True,
                )
                return 0

            logger.info(f"Earning batch flushed | accounts={len(batch)} | entries={credited}")
            return credited

    def start(self) -> None:
        """Schedule periodic flushes on the running event loop."""
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
            self._scheduler.add_job(
                self.flush,
                IntervalTrigger(seconds=self.flush_interval_seconds),
                id=FLUSH_JOB_ID,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info(f"Earning batch scheduler started (every {self.flush_interval_seconds}s)")

    async def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        self._scheduler = None
        await self.flush()


default_earning_batcher = EarningBatchService(AsyncSessionLocal)
