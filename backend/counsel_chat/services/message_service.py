from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, or_

from counsel_chat.core.exceptions import ValidationError
from counsel_chat.models.chat_reads import UserLastRead
from counsel_chat.models.message import ChatMessage, MessageType
from counsel_chat.models.user import User, Client
from counsel_chat.schemas.message import MessagePage, MessageResponse, MessageWithSender
from counsel_chat.services.user_service import display_name_column
import logging

logger = logging.getLogger(__name__)


def _with_sender_details():
  """SELECT сообщения вместе с именем, аватаром и ролью отправителя"""

  return (
    select(
      ChatMessage.id,
      ChatMessage.room_id,
      ChatMessage.sender_id,
      ChatMessage.message,
      ChatMessage.message_type,
      ChatMessage.created_at,
      display_name_column(User, Client).label("sender_name"),
      User.avatar.label("sender_avatar"),
      User.role.label("sender_type"),
    )
    .outerjoin(User, User.id == ChatMessage.sender_id)
    .outerjoin(Client, Client.user_id == User.id)
  )


def _unread_condition(room_id: int, user_id: int):
  """
  Непрочитанные: чужие сообщения комнаты после указателя пользователя
  Нет указателя - непрочитано все
  """

  return and_(
    ChatMessage.room_id == room_id,
    ChatMessage.sender_id != user_id,
    or_(
      UserLastRead.last_message_id.is_(None),
      ChatMessage.id > UserLastRead.last_message_id,
    ),
  )


def _join_last_read(stmt, user_id: int):
  return stmt.outerjoin(
    UserLastRead,
    and_(
      UserLastRead.room_id == ChatMessage.room_id,
      UserLastRead.user_id == user_id,
    ),
  )


class MessageService:
  """
  Хранилище сообщений: только добавление и чтение
  Проверка доступа к комнате - на стороне ChatService
  """

  @staticmethod
  async def create_message(
    room_id: int,
    sender_id: int,
    message: str,
    message_type: str,
    db: AsyncSession,
  ) -> ChatMessage:
    """
    Создание и сохранение сообщения
    """

    if not room_id or not sender_id or not message or not message.strip():
      raise ValidationError("Нужны ID комнаты, отправитель и текст сообщения")

    try:
      message_type = MessageType(message_type).value
    except ValueError:
      raise ValidationError(f"Неизвестный тип сообщения: {message_type}")

    chat_message = ChatMessage(
      room_id=room_id,
      sender_id=sender_id,
      message=message,
      message_type=message_type,
    )

    try:
      db.add(chat_message)
      await db.commit()

    except Exception:
      await db.rollback()
      logger.exception(f"[create_message] Ошибка создания сообщения в комнате {room_id}")
      raise

    await db.refresh(chat_message)
    return chat_message


  @staticmethod
  async def get_message_by_id(
    message_id: int,
    db: AsyncSession,
  ) -> Optional[ChatMessage]:
    """
    Находит одно сообщение по его ID
    """

    return await db.get(ChatMessage, message_id)


  @staticmethod
  async def get_message_with_details(
    message_id: int,
    db: AsyncSession,
  ) -> Optional[MessageWithSender]:
    """Сообщение + данные отправителя"""

    stmt = _with_sender_details().where(ChatMessage.id == message_id)

    result = await db.execute(stmt)
    row = result.mappings().one_or_none()
    if row is None:
      return None

    return MessageWithSender.model_validate(dict(row))


  @staticmethod
  async def get_messages_paginated(
    room_id: int,
    db: AsyncSession,
    limit: int = 30,
    offset: int = 0,
  ) -> MessagePage:
    """
    Страница сообщений комнаты
    Берем limit + 1 от новых к старым: лишняя строка означает, что есть еще.
    Возвращаем в хронологическом порядке
    """

    stmt = (
      select(ChatMessage)
      .where(ChatMessage.room_id == room_id)
      .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
      .limit(limit + 1)
      .offset(offset)
    )

    result = await db.execute(stmt)
    messages = list(result.scalars().all())

    has_more = len(messages) > limit
    if has_more:
      messages.pop()

    messages.reverse()

    return MessagePage(
      messages=[MessageResponse.model_validate(m) for m in messages],
      has_more=has_more,
    )


  @staticmethod
  async def get_unread_messages(
    room_id: int,
    user_id: int,
    db: AsyncSession,
  ) -> List[MessageWithSender]:
    """
    Непрочитанные сообщения от старых к новым
    """

    stmt = (
      _join_last_read(_with_sender_details(), user_id)
      .where(_unread_condition(room_id, user_id))
      .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
    )

    result = await db.execute(stmt)
    return [MessageWithSender.model_validate(dict(row)) for row in result.mappings().all()]


  @staticmethod
  async def get_unread_count(
    room_id: int,
    user_id: int,
    db: AsyncSession,
  ) -> int:
    """Количество непрочитанных сообщений"""

    stmt = (
      _join_last_read(select(func.count(ChatMessage.id)).select_from(ChatMessage), user_id)
      .where(_unread_condition(room_id, user_id))
    )

    result = await db.execute(stmt)
    return result.scalar() or 0
