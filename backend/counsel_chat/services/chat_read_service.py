from typing import Optional

from sqlalchemy import select, func, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from counsel_chat.models.chat_reads import UserLastRead
import logging

logger = logging.getLogger(__name__)


_UPSERT_DIALECTS = {
  "postgresql": postgresql.insert,
  "sqlite": sqlite.insert,
}


class ChatReadService:
  """Сервис для отслеживания, до какого сообщения пользователь прочитал чат"""

  @staticmethod
  async def mark_chat_read(
    room_id: int,
    user_id: int,
    last_read_message_id: int,
    db: AsyncSession,
  ) -> None:
    """
    Обновляет last_message_id, только если новый больше сохраненного.
    Один атомарный upsert: параллельные отметки сходятся к максимуму
    """

    dialect = db.get_bind().dialect.name
    insert = _UPSERT_DIALECTS.get(dialect)
    if insert is None:
      raise RuntimeError(f"Upsert не поддерживается для диалекта {dialect}")

    stmt = insert(UserLastRead).values(
      user_id=user_id,
      room_id=room_id,
      last_message_id=last_read_message_id,
      read_at=func.now(),
    )
    stmt = stmt.on_conflict_do_update(
      index_elements=[UserLastRead.user_id, UserLastRead.room_id],
      set_={
        "last_message_id": stmt.excluded.last_message_id,
        "read_at": stmt.excluded.read_at,
      },
      where=or_(
        UserLastRead.last_message_id.is_(None),
        UserLastRead.last_message_id < stmt.excluded.last_message_id,
      ),
    )

    try:
      await db.execute(stmt)
      await db.commit()

    except Exception:
      await db.rollback()
      logger.exception(f"[mark_chat_read] Ошибка отметки прочтения: user {user_id}, room {room_id}")
      raise

    logger.debug(f"[mark_chat_read] user {user_id}, room {room_id}, message <= {last_read_message_id}")


  @staticmethod
  async def get_last_read_message_id(
    room_id: int,
    user_id: int,
    db: AsyncSession,
  ) -> Optional[int]:
    """Текущий указатель пользователя (None - еще ничего не читал)"""

    stmt = select(UserLastRead.last_message_id).where(
      UserLastRead.room_id == room_id,
      UserLastRead.user_id == user_id,
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()
