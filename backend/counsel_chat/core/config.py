from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class Settings(BaseSettings):
  """
  Все настройки приложения
  """

  # Основные
  PROJECT_NAME: str = "CounselChat"
  DEBUG: bool = True
  LOG_LEVEL: str = "INFO"
  LOG_FILE: Optional[str] = None        # None - только stdout

  # Безопастность
  SECRET_KEY: str
  ALGORITHM: str = "HS256"
  ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7    # 7 дней

  # База данных
  DATABASE_URL: str

  # Redis (кэш профилей)
  REDIS_HOST: str = "localhost"
  REDIS_PORT: int = 6379
  REDIS_DB: int = 0
  PROFILE_CACHE_TTL: int = 60           # Секунд

  # Чат
  GLOBAL_CHAT_ROOM_ID: int = 1
  MESSAGES_PAGE_LIMIT: int = 30

  # Ограничение частоты действий в WebSocket
  SOCKET_RATE_LIMIT_REQUESTS: int = 10
  SOCKET_RATE_LIMIT_WINDOW_SECONDS: int = 60

  # CORS - какие фронтенды могут подключаться
  ALLOWED_ORIGINS: List[str] = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
  ]

  model_config = SettingsConfigDict(
    env_file=".env",          # Путь до .env
    env_file_encoding="utf-8",
    case_sensitive=False,
    extra="ignore",
  )


# Экземляр настроек
settings = Settings()
