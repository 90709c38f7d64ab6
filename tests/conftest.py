import os

os.environ.setdefault("TESTING", "true")
os.environ.setdefault("CHAT_EVENT_QUEUE_ENABLED", "false")
os.environ.setdefault("REALTIME_ENABLED", "false")
os.environ.setdefault("ONESIGNAL_ENABLED", "false")
os.environ.setdefault("EARNING_BATCH_ENABLED", "false")

from typing import List, Optional

import pytest
import pytest_asyncio
from fastapi import Depends, Request
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.db import Base, get_async_db
from app.dependencies import (
    get_current_account,
    get_earnings,
    get_session_factory,
    get_settings_provider,
)
from app.models.account import Account
from app.models.chat import Block, Chat, ChatMessage, ChatParticipant
from app.models.gift import AppSettings, Gift
from app.models.push import OneSignalPlayer  # noqa: F401
from app.models.wallet import CoinTransaction
from app.services.earning_batch_service import EarningBatchService
from app.services.settings_provider import AppSettingsProvider
from core.errors import NotFoundError, UnauthorizedError
from main import app

ACCOUNT_HEADER = "X-Test-Account"


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    db_path = tmp_path / "chat_tests.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def async_session_maker(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(async_session_maker):
    async with async_session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def settings_provider():
    return AppSettingsProvider()


@pytest_asyncio.fixture
async def earnings(async_session_maker):
    return EarningBatchService(async_session_maker, flush_interval_seconds=60)


class Seeder:
    """Writes fixture rows through its own sessions and reads state back."""

    def __init__(self, session_maker):
        self.session_maker = session_maker
        self._next_descope = 0

    async def account(
        self,
        *,
        role: str = "male",
        balance: int = 0,
        tier: str = "basic",
        display_name: Optional[str] = None,
        last_daily_reward_at=None,
        is_blocked: bool = False,
        is_active: bool = True,
    ) -> int:
        self._next_descope += 1
        async with self.session_maker() as session:
            account = Account(
                descope_user_id=f"descope-{self._next_descope}",
                display_name=display_name or f"{role}-{self._next_descope}",
                role=role,
                member_tier=tier,
                coin_balance=balance,
                last_daily_reward_at=last_daily_reward_at,
                is_blocked=is_blocked,
                is_active=is_active,
            )
            session.add(account)
            await session.commit()
            return account.account_id

    async def chat(self, male_id: int, female_id: int, *, male_count: int = 0) -> int:
        low, high = sorted((male_id, female_id))
        async with self.session_maker() as session:
            chat = Chat(
                user1_id=low,
                user2_id=high,
                created_by=male_id,
                total_message_count=male_count,
                participants=[
                    ChatParticipant(account_id=male_id, role="male", message_count=male_count),
                    ChatParticipant(account_id=female_id, role="female"),
                ],
            )
            session.add(chat)
            await session.commit()
            return chat.id

    async def gift(self, name: str, cost: int, *, is_active: bool = True, display_order: int = 0) -> int:
        async with self.session_maker() as session:
            gift = Gift(name=name, cost=cost, is_active=is_active, display_order=display_order)
            session.add(gift)
            await session.commit()
            return gift.id

    async def settings(self, **costs) -> None:
        values = {
            "message_cost_basic": 50,
            "message_cost_silver": 45,
            "message_cost_gold": 40,
            "message_cost_platinum": 35,
            "hi_message_cost": 5,
            "image_message_cost": 100,
            "default_gift_cost": 100,
        }
        values.update(costs)
        async with self.session_maker() as session:
            session.add(AppSettings(**values))
            await session.commit()

    async def block(self, blocker_id: int, blocked_id: int) -> None:
        async with self.session_maker() as session:
            session.add(Block(blocker_id=blocker_id, blocked_id=blocked_id))
            await session.commit()

    async def balance(self, account_id: int) -> int:
        async with self.session_maker() as session:
            result = await session.execute(
                select(Account.coin_balance).where(Account.account_id == account_id)
            )
            return result.scalar_one()

    async def get_account(self, account_id: int) -> Account:
        async with self.session_maker() as session:
            return await session.get(Account, account_id)

    async def get_chat(self, chat_id: int) -> Chat:
        async with self.session_maker() as session:
            result = await session.execute(select(Chat).where(Chat.id == chat_id))
            return result.scalar_one()

    async def messages(self, chat_id: Optional[int] = None) -> List[ChatMessage]:
        async with self.session_maker() as session:
            stmt = select(ChatMessage).order_by(ChatMessage.id)
            if chat_id is not None:
                stmt = stmt.where(ChatMessage.chat_id == chat_id)
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def participant(self, chat_id: int, account_id: int) -> ChatParticipant:
        async with self.session_maker() as session:
            result = await session.execute(
                select(ChatParticipant).where(
                    ChatParticipant.chat_id == chat_id,
                    ChatParticipant.account_id == account_id,
                )
            )
            return result.scalar_one()

    async def transactions(self, account_id: int) -> List[CoinTransaction]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(CoinTransaction)
                .where(CoinTransaction.account_id == account_id)
                .order_by(CoinTransaction.id)
            )
            return list(result.scalars().all())


@pytest_asyncio.fixture
async def seed(async_session_maker):
    return Seeder(async_session_maker)


@pytest_asyncio.fixture
async def api_client(async_session_maker, settings_provider, earnings):
    async def _get_db():
        async with async_session_maker() as session:
            yield session

    async def _current_account(request: Request, db: AsyncSession = Depends(get_async_db)):
        account_id = request.headers.get(ACCOUNT_HEADER)
        if not account_id:
            raise UnauthorizedError("Authorization token missing.")
        account = await db.get(Account, int(account_id))
        if account is None:
            raise NotFoundError("User profile not found.")
        return account

    app.dependency_overrides[get_async_db] = _get_db
    app.dependency_overrides[get_current_account] = _current_account
    app.dependency_overrides[get_session_factory] = lambda: async_session_maker
    app.dependency_overrides[get_settings_provider] = lambda: settings_provider
    app.dependency_overrides[get_earnings] = lambda: earnings
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def headers_for():
    """Request headers authenticating as the given account."""
    def _headers(account_id: int) -> dict:
        return {ACCOUNT_HEADER: str(account_id)}
    return _headers
