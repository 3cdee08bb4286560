from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .settings.config import settings


def normalize_database_url(raw_url: str) -> str:
    if raw_url.startswith("postgresql+psycopg"):
        # if someone provided a sync URL by mistake, upgrade it to async
        return raw_url.replace("postgresql+psycopg2", "postgresql+asyncpg").replace(
            "postgresql+psycopg", "postgresql+asyncpg"
        )
    if raw_url.startswith("postgresql://"):
        return raw_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return raw_url


DATABASE_URL = normalize_database_url(settings.DATABASE_URL)

engine = create_async_engine(DATABASE_URL, echo=False, future=True)
async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
Base = declarative_base()


async def get_db():
    async with async_session_maker() as session:
        yield session


async def init_db():
    # Only run create_all in dev, never in prod with Alembic
    if settings.RUN_DB_CREATE_ALL:
        from . import models  # noqa: F401  registers models on Base
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
