from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime
from sqlalchemy.exc import SQLAlchemyError
import logging
import sys

from counsel_chat.routers import users
from counsel_chat.routers import chat
from counsel_chat.routers import messages
from counsel_chat.routers import websocket
from counsel_chat.core.config import settings
from counsel_chat.core.exceptions import ChatError
from counsel_chat.models.base import Base
from counsel_chat.database import engine, AsyncSessionLocal, get_db_session
from counsel_chat.dependencies.websocket_auth import get_current_user_ws
from counsel_chat.redis.manager import redis_manager
from counsel_chat.services.room_service import RoomService
from counsel_chat.websocket.manager import (
  ConnectionRegistry,
  RealtimeGateway,
  SlidingWindowRateLimiter,
)


logger = logging.getLogger(__name__)


# ======== SETTINGS LOGGER ========
def setup_logging():
  handlers = [logging.StreamHandler(sys.stdout)]
  if settings.LOG_FILE:
    handlers.append(logging.FileHandler(settings.LOG_FILE))

  logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=handlers,
  )


setup_logging()


# ======== LIFESPAN ========
@asynccontextmanager
async def lifespan(app: FastAPI):
  """
  Управление жизненным циклом приложения
  """

  # Startup
  logger.info("Запуск приложения...")

  # 1. Создаем таблицы в БД
  try:
    async with engine.begin() as conn:
      await conn.run_sync(Base.metadata.create_all)
    logger.info("Таблицы БД созданы/проверены")

  except SQLAlchemyError as e:
    logger.error(f"Ошибка создания таблиц БД: {e}")
    raise

  # 2. Общая комната
  async with get_db_session() as db:
    await RoomService.ensure_global_room(db)

  # 3. Подключение Redis
  if await redis_manager.connect():
    logger.info("Redis подключен")
  else:
    logger.warning("Redis недоступен, работаем без кэша")

  logger.info("Приложение запущено")

  yield     # Работает приложение

  # Shutdown
  await redis_manager.close()
  await engine.dispose()
  logger.info("Приложение остановлено")


# ======== APP INIT ========
app = FastAPI(
  title=settings.PROJECT_NAME,
  version="1.0.0",
  lifespan=lifespan,
)


# Один шлюз на процесс: реестр соединений живет в памяти
app.state.gateway = RealtimeGateway(
  registry=ConnectionRegistry(),
  rate_limiter=SlidingWindowRateLimiter(
    max_requests=settings.SOCKET_RATE_LIMIT_REQUESTS,
    window_seconds=settings.SOCKET_RATE_LIMIT_WINDOW_SECONDS,
  ),
  session_factory=AsyncSessionLocal,
  authenticator=get_current_user_ws,
)


# ======== ERRORS ========
@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
  return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
  logger.error(f"Ошибка БД на {request.method} {request.url.path}: {exc}")
  return JSONResponse(
    status_code=500,
    content={"error": "INTERNAL_ERROR", "detail": "Внутренняя ошибка сервера"},
  )


# ======== CORS ========
app.add_middleware(
  CORSMiddleware,
  allow_origins=settings.ALLOWED_ORIGINS,   # Список разрешенных доменов для запросов
  allow_credentials=True,                   # Разрешает куки/авторизацию
  allow_methods=["*"],                      # Все HTTP-методы
  allow_headers=["*"],                      # Все заголовки
)


# ======== ROUTERS ========
app.include_router(users.router)
app.include_router(chat.router)
app.include_router(messages.router)
app.include_router(websocket.router)


# ======== HEALTH CHECK ========
@app.get("/health")
async def health_check():
  """Проверка состояния сервиса"""

  gateway = app.state.gateway
  return {
    "status": "healthy",
    "service": "counsel-chat",
    "online_users": gateway.registry.user_count(),
    "sockets": gateway.registry.socket_count(),
    "timestamp": datetime.now().isoformat()
  }


@app.get("/")
async def root():
  return {
    "message": f"{settings.PROJECT_NAME} API",
    "docs": "/docs",
    "redoc": "/redoc",
  }
