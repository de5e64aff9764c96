from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from taskflow.config import settings

Base = declarative_base()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    return create_async_engine(url, echo=echo)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, expire_on_commit=False, class_=AsyncSession)


engine = build_engine(settings.effective_database_url, echo=settings.DB_ECHO)

AsyncSessionLocal = build_session_factory(engine)

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


async def init_models(bind: AsyncEngine) -> None:
    # Register every table on Base.metadata before create_all
    from taskflow.models import note, notification, project, task, timer, user  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
