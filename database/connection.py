"""Подключение к базе данных"""
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from config import settings

# Базовый класс для моделей
Base = declarative_base()


def build_engine(url: str, **kwargs) -> AsyncEngine:
    """Создать асинхронный движок SQLAlchemy"""
    kwargs.setdefault("echo", False)
    return create_async_engine(url, **kwargs)


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Создать фабрику сессий для движка"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Создать таблицы, если их нет"""
    # Импорт регистрирует модели в Base.metadata
    import database.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# Движок и фабрика сессий приложения
engine = build_engine(settings.database_url, pool_pre_ping=True)
async_session_maker = build_session_maker(engine)
