from __future__ import annotations
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from templepoints.config import settings

class Base(DeclarativeBase):
    pass

def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        # aiosqlite connections are bound to the loop that opened them
        return {"poolclass": NullPool}
    return {"pool_pre_ping": True}

engine = create_async_engine(settings.database_url, future=True, echo=False, **_engine_kwargs(settings.database_url))
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session

async def create_schema() -> None:
    """Create all tables directly from the models (local runs and tests; production uses alembic)."""
    import templepoints.models.ward  # noqa: F401  register models on Base.metadata
    import templepoints.models.user  # noqa: F401
    import templepoints.models.submission  # noqa: F401
    import templepoints.models.achievement  # noqa: F401
    import templepoints.models.activity  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
