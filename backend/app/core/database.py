from contextlib import asynccontextmanager

from sqlalchemy.exc import OperationalError, InterfaceError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from app.core.config import get_settings
from app.core.errors import StorageUnavailable
from app.utils.logger import get_logger

settings = get_settings()
logger = get_logger("database")


def build_engine(url: str, echo: bool = False):
    connect_args = {}
    if url.startswith("sqlite"):
        # Needed for SQLite; the timeout lets a writer wait for a concurrent transaction to commit
        connect_args = {"check_same_thread": False, "timeout": 15}
    return create_async_engine(url, echo=echo, connect_args=connect_args)


engine = build_engine(settings.DATABASE_URL, echo=settings.LOG_LEVEL == "DEBUG")

SessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False
)

class Base(DeclarativeBase):
    pass

async def get_db():
    async with SessionLocal() as session:
        yield session


@asynccontextmanager
async def storage_errors(action: str):
    """Turn connectivity and locking failures (including at COMMIT) into StorageUnavailable."""
    try:
        yield
    except (OperationalError, InterfaceError, PoolTimeoutError) as e:
        logger.error(f"Storage unavailable during {action}: {type(e).__name__}")
        raise StorageUnavailable(f"{action} failed, storage unavailable") from e
