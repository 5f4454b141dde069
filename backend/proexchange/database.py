from datetime import datetime, timezone

from sqlalchemy import Enum as SAEnum, create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session
from proexchange.config import get_settings

settings = get_settings()

# Convert sqlite:/// to sqlite+aiosqlite:///
database_url = settings.database_url.replace("sqlite:///", "sqlite+aiosqlite:///")

engine = create_async_engine(database_url, echo=settings.debug)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Synchronous engine for Celery tasks
sync_database_url = settings.database_url
sync_engine = create_engine(sync_database_url, echo=settings.debug)
SyncSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo on the way back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def get_db():
    async with async_session() as session:
        yield session


def get_db_session() -> Session:
    """
    Get synchronous database session for Celery tasks.

    Returns:
        SQLAlchemy Session (caller must close)
    """
    return SyncSessionLocal()


async def init_db():
    # Register every mapped table on Base.metadata before create_all
    import proexchange.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def status_enum(enum_cls, length: int = 32) -> SAEnum:
    """Store a str Enum by value (e.g. "pending"), not by member name."""
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
