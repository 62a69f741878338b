# contentgen/core/database.py
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import DeclarativeBase

from contentgen.core.config import get_database_url


def build_engine(db_url: str):
    # Configure engine based on database type
    if "sqlite" in db_url:
        return create_async_engine(
            db_url,
            echo=False,
            connect_args={"check_same_thread": False}
        )
    return create_async_engine(
        db_url,
        pool_pre_ping=True,
        pool_recycle=3600
    )


engine = build_engine(get_database_url())

SessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

class Base(DeclarativeBase):
    pass

async def get_db():
    async with SessionLocal() as session:
        yield session

async def create_tables(bind=None):
    # Registers every mapped class on Base.metadata before create_all.
    import contentgen.models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
