from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from counsel_chat.core.config import settings


engine_kwargs = {
  "pool_pre_ping": True,
  "echo": settings.DEBUG,      # Вывод SQL-запросов в консоль
}

# У SQLite свой пул соединений, размер пула не настраивается
if not settings.DATABASE_URL.startswith("sqlite"):
  engine_kwargs.update(pool_size=10, max_overflow=20)

# Создаем async engine
engine = create_async_engine(settings.DATABASE_URL, **engine_kwargs)

# Session для async
AsyncSessionLocal = async_sessionmaker(
  bind=engine,
  class_=AsyncSession,
  expire_on_commit=False,
  autoflush=False,
)


# Зависимость FastAPI
async def get_db() -> AsyncIterator[AsyncSession]:
  async with AsyncSessionLocal() as session:
    try:
      yield session
    finally:
      await session.close()


# Контекстный менеджер для кода вне запросов (WebSocket, старт приложения)
@asynccontextmanager
async def get_db_session() -> AsyncIterator[AsyncSession]:
  async with AsyncSessionLocal() as session:
    yield session
