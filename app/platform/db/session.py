from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.platform.config import settings
from app.platform.db.base import Base

engine_kwargs = {"echo": False, "future": True, "pool_pre_ping": True}
if settings.DATABASE_URL.startswith("sqlite"):
    # aiosqlite connections are tied to the loop that opened them
    engine_kwargs["poolclass"] = NullPool
else:
    engine_kwargs.update(
        pool_recycle=1800,
        pool_size=20,
        max_overflow=30,  # (burst capacity)
        pool_timeout=30,
    )

engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)
SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False, autocommit=False)


async def get_db():
    async with SessionLocal() as session:
        yield session


async def init_models():
    # Register tables on Base.metadata
    from app.features.batches.models.batch import BatchScan  # noqa: F401
    from app.features.scan.models.scan import Scan  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
