from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel
from bgbatch.core.config import settings

# Import ALL models to ensure they're registered with SQLModel.metadata
from bgbatch.modules.jobs.models import BatchJob  # noqa: F401

# SQLite connections are not shared between event loops
_engine_kwargs = {"poolclass": NullPool} if settings.DATABASE_URL.startswith("sqlite") else {}

# Create async engine
engine = create_async_engine(settings.DATABASE_URL, echo=False, future=True, **_engine_kwargs)

# Create async session factory
async_session_maker = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def create_db_and_tables():
    """Create all tables if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(lambda sync_conn: SQLModel.metadata.create_all(sync_conn, checkfirst=True))


async def check_database() -> bool:
    """Readiness probe for the job ledger."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


async def get_session() -> AsyncSession:
    async with async_session_maker() as session:
        yield session
