"""
Async SQLAlchemy engine and session factory.

Every booking write opens its own short session and commits a single
version-checked UPDATE, so the pool is sized by the number of concurrent
writers a worker serves (``db_pool_size``), with ``db_max_overflow`` to
absorb bursts on popular departures.
"""

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from carpool.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    pool_pre_ping=True,
)

# Sessions outlive their commit so aggregates can be returned to callers
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for the users, rides and passenger_bookings tables."""
