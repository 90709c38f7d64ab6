"""
Async Database Configuration
"""
from urllib.parse import urlparse, parse_qs, urlunparse
from sqlalchemy import BigInteger, Integer
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

import config

DATABASE_URL = config.DATABASE_URL

if not DATABASE_URL:
    if not config.TESTING:
        raise ValueError("DATABASE_URL environment variable is not set")
    DATABASE_URL = "sqlite+aiosqlite:///:memory:"

connect_args = {}

if DATABASE_URL.startswith("sqlite"):
    engine_kwargs = {}
else:
    # asyncpg doesn't support query string parameters, so we remove them all
    parsed = urlparse(DATABASE_URL)
    query_params = parse_qs(parsed.query)
    sslmode = query_params.pop('sslmode', [None])[0]
    DATABASE_URL = urlunparse(parsed._replace(query=''))

    if sslmode:
        if sslmode in ['require', 'prefer', 'allow', 'verify-ca', 'verify-full']:
            connect_args['ssl'] = True
        elif sslmode == 'disable':
            connect_args['ssl'] = False

    if DATABASE_URL.startswith("postgres://"):
        DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
    elif DATABASE_URL.startswith("postgresql://"):
        DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine_kwargs = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args,
    **engine_kwargs,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()

# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


async def get_async_db():
    """Dependency to get async database session"""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
