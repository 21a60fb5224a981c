"""Database engine, session factory and unit-of-work helper."""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.orm.exc import StaleDataError
import structlog

from app.core.config import settings
from app.core.exceptions import ConcurrentUpdateError, ProgressionError, StorageFailure

logger = structlog.get_logger()


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _engine_options() -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.DATABASE_ECHO}
    if not settings.is_sqlite():
        options["pool_size"] = settings.DATABASE_POOL_SIZE
        options["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
        options["pool_pre_ping"] = True
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options())

async_session = async_sessionmaker(engine, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for one request."""
    async with async_session() as session:
        yield session


async def init_db():
    """Create tables that do not exist yet."""
    import app.models  # noqa: F401  (registers mappers)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized", url=engine.url.render_as_string(hide_password=True))


@asynccontextmanager
async def transaction(db: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """Run a block as a single unit of work.

    Commits when the block exits cleanly and rolls back on any error, so
    habit, user and challenge mutations are never partially applied.
    ORM failures are translated into engine errors on the way out.
    """
    try:
        yield db
        await db.commit()
    except ProgressionError:
        await db.rollback()
        raise
    except StaleDataError as e:
        await db.rollback()
        logger.warning("Concurrent update rejected", error=str(e))
        raise ConcurrentUpdateError("Record was modified by another request") from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Storage operation failed", error=str(e))
        raise StorageFailure("Storage operation failed") from e
    except BaseException:
        await db.rollback()
        raise
