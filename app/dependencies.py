"""
Async dependencies for authentication and shared services
"""
from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import AsyncSessionLocal, get_async_db
from app.models.account import Account
from app.services.earning_batch_service import default_earning_batcher
from app.services.settings_provider import AppSettingsProvider, default_settings_provider
from auth import validate_descope_jwt
from core.errors import ForbiddenError, NotFoundError, UnauthorizedError
from core.ports.earnings import EarningsPort


async def get_current_account(
    request: Request,
    db: AsyncSession = Depends(get_async_db)
) -> Account:
    """
    Extracts and validates the Descope JWT from the Authorization header.
    Returns the caller's Account, loaded in the request's session.
    """
    auth_header = request.headers.get('authorization')
    if not auth_header or not auth_header.lower().startswith('bearer '):
        raise UnauthorizedError("Authorization token missing.")
    token = auth_header.split(' ', 1)[1].strip()
    user_info = validate_descope_jwt(token)

    result = await db.execute(
        select(Account).where(Account.descope_user_id == user_info['userId'])
    )
    account = result.scalar_one_or_none()
    if account is None:
        raise NotFoundError("User profile not found. Please complete profile setup first.")
    if not account.is_active:
        raise ForbiddenError("Account is deactivated")
    return account


def get_session_factory() -> async_sessionmaker:
    """Session factory for work that outlives the request session (audit rows, events)."""
    return AsyncSessionLocal


def get_settings_provider() -> AppSettingsProvider:
    return default_settings_provider


def get_earnings() -> EarningsPort:
    return default_earning_batcher
