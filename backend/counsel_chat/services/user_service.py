from typing import Optional

from sqlalchemy import select, case, and_
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from counsel_chat.models.user import User, Client, UserRole


logger = logging.getLogger(__name__)


def display_name_column(user, client):
  """
  SQL-выражение отображаемого имени:
  у клиента с заданным псевдонимом - псевдоним, у остальных - имя
  user и client могут быть aliased()
  """

  return case(
    (
      and_(user.role == UserRole.CLIENT.value, client.nick_name.is_not(None)),
      client.nick_name,
    ),
    else_=user.name,
  )


class UserService:
  """Чтение профилей пользователей (сами профили ведет другой сервис)"""

  @staticmethod
  async def get_display_profile(user_id: int, db: AsyncSession) -> Optional[dict]:
    """
    Профиль для отображения в чате
    Возвращает None, если пользователя нет
    """

    stmt = (
      select(
        User.id,
        User.name,
        User.email,
        User.avatar,
        User.role,
        User.is_active,
        display_name_column(User, Client).label("display_name"),
      )
      .outerjoin(Client, Client.user_id == User.id)
      .where(User.id == user_id)
    )

    result = await db.execute(stmt)
    row = result.mappings().one_or_none()

    if row is None:
      logger.warning(f"[get_display_profile] Пользователь {user_id} не найден")
      return None

    return dict(row)
