import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from counsel_chat.core.exceptions import AuthenticationError
from counsel_chat.core.security import decode_access_token
from counsel_chat.services.user_service import UserService

logger = logging.getLogger(__name__)


async def get_current_user_ws(token: str, db: AsyncSession) -> Optional[dict]:
  """
  Аутентификация для WebSocket
  Возвращает профиль пользователя или None (соединение будет отклонено)
  """

  # 1. Декодируем токен
  try:
    user_id = decode_access_token(token)
  except AuthenticationError as e:
    logger.warning(f"[ws_auth] JWT ошибка: {e.message}")
    return None

  # 2. Ищем пользователя
  user = await UserService.get_display_profile(user_id, db)

  if not user:
    logger.warning(f"[ws_auth] Пользователь {user_id} не найден")
    return None

  if not user["is_active"]:
    logger.warning(f"[ws_auth] Пользователь {user_id} неактивен")
    return None

  return user
