"""Database session factory setup."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def setup_db_session(db_url: str, pool_size: int = 20) -> async_sessionmaker[AsyncSession]:
    """Create async database session factory.

    Args:
        db_url: Async SQLAlchemy URL (postgresql+psycopg://... or sqlite+aiosqlite://...)
        pool_size: Maximum number of connections in the pool (ignored for SQLite)

    Returns:
        Async session factory for creating database sessions
    """
    engine_options: dict = {"echo": False}  # SQL is not logged; structlog covers app events

    if not db_url.startswith("sqlite"):
        engine_options.update(
            pool_size=pool_size,
            max_overflow=0,
            pool_pre_ping=True,
        )

    engine = create_async_engine(db_url, **engine_options)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,  # Prevent lazy loading issues after commit
    )

    return session_factory
