from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from counsel_chat.core.config import settings
from counsel_chat.core.exceptions import AuthenticationError


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
  """
  Создание access-токена
  Сами токены выдает сервис аутентификации, здесь - для локальной отладки и тестов
  """

  # 1. Копируем данные, которые нужно закодировать в JWT-токен
  to_encode = data.copy()

  # 2. Вычисляем время жизни acccess-токена
  if expires_delta:
    expire = datetime.now(timezone.utc) + expires_delta
  else:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

  to_encode.update({"exp": expire})

  # 3. Возвращаем закодированный JSON Web Token
  return jwt.encode(
    to_encode,
    settings.SECRET_KEY,
    algorithm=settings.ALGORITHM
  )


def decode_access_token(token: Optional[str]) -> int:
  """
  Проверяет токен и возвращает ID пользователя из поля sub
  Любая проблема с токеном - AuthenticationError
  """

  if not token:
    raise AuthenticationError("Требуется токен аутентификации")

  try:
    payload = jwt.decode(
      token,
      settings.SECRET_KEY,
      algorithms=[settings.ALGORITHM]
    )
  except JWTError:
    raise AuthenticationError()

  user_id = payload.get("sub")
  if user_id is None:
    raise AuthenticationError()

  try:
    return int(user_id)
  except (TypeError, ValueError):
    raise AuthenticationError()
