from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from .config import DATABASE_URL


def get_engine(database_url: str):
    return create_async_engine(database_url, echo=False, future=True, pool_pre_ping=True)


def get_session(engine):
    return async_sessionmaker(
        bind=engine,
        expire_on_commit=False,
    )


engine = get_engine(DATABASE_URL)
SessionLocal = get_session(engine)

Base = declarative_base()


async def create_tables(bind=engine) -> None:
    """Create tables from the models directly; deployed databases are migrated with alembic."""
    from . import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
