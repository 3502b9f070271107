from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from counsel_chat.database import get_db
from counsel_chat.core.config import settings
from counsel_chat.core.exceptions import AuthenticationError
from counsel_chat.core.security import decode_access_token
from counsel_chat.redis.manager import redis_manager
from counsel_chat.services.user_service import UserService


# Токены выдает сервис аутентификации, здесь только проверяем
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def _unauthorized(detail: str = "Невалидный токен") -> HTTPException:
  return HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail=detail,
    headers={"WWW-Authenticate": "Bearer"},
  )


async def get_current_user(
  token: str = Depends(oauth2_scheme),
  db: AsyncSession = Depends(get_db)
) -> dict:
  """
  Dependency: Получает конкретного пользователя по JWT
  """

  # 1. Декодируем токен
  try:
    user_id = decode_access_token(token)
  except AuthenticationError as e:
    raise _unauthorized(e.message)

  # 2. Пытаемся взять данные из Redis
  cached_user = await redis_manager.get_cached_user_profile(user_id)
  if cached_user:
    return cached_user

  # 3. Если нет - идем в БД
  user_data = await UserService.get_display_profile(user_id, db)

  # 4. Если пользователя нет или он отключен - ошибка
  if not user_data or not user_data["is_active"]:
    raise _unauthorized()

  # 5. Кладем в Redis с TTL (Redis не должен ломать API)
  await redis_manager.cache_user_profile(user_id, user_data, settings.PROFILE_CACHE_TTL)

  return user_data
