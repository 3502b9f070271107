from datetime import datetime, timezone
from typing import List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession
import logging

from counsel_chat.core.config import settings
from counsel_chat.core.exceptions import (
  AuthorizationError,
  NotFoundError,
  ValidationError,
)
from counsel_chat.models.chat import ChatRoom
from counsel_chat.models.user import UserRole, COUNSELOR_ROLES
from counsel_chat.schemas.message import MessagePage, MessageWithSender, ReadReceipt
from counsel_chat.services.chat_read_service import ChatReadService
from counsel_chat.services.message_service import MessageService
from counsel_chat.services.room_service import RoomService
from counsel_chat.services.user_service import UserService

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
  """То, что умеет рассылать события в комнату и пользователю"""

  async def emit_to_room(self, room_id: int, event: str, payload: dict, exclude: Optional[str] = None) -> int: ...

  async def emit_to_user(self, user_id: int, event: str, payload: dict) -> int: ...

  def join_user_to_room(self, user_id: int, room_id: int) -> int: ...


class ChatService:
  """
  Оркестрация чата: проверка доступа -> хранилище -> рассылка
  Любая операция над комнатой начинается с ensure_access
  """

  def __init__(self, broadcaster: Broadcaster):
    self.broadcaster = broadcaster


  @staticmethod
  async def ensure_access(room_id: int, user_id: int, db: AsyncSession) -> None:
    """Состоит ли пользователь в чате"""

    if not await RoomService.is_user_in_room(room_id, user_id, db):
      logger.warning(f"[ensure_access] Пользователь {user_id} не участник комнаты {room_id}")
      raise AuthorizationError()


  async def create_direct_chat(
    self,
    counselor_id: int,
    client_id: int,
    db: AsyncSession,
  ) -> ChatRoom:
    """
    Личный чат специалиста и клиента (найти или создать)
    """

    if counselor_id == client_id:
      raise ValidationError("Нельзя создавать чат с самим собой")

    counselor = await UserService.get_display_profile(counselor_id, db)
    if counselor is None:
      raise NotFoundError("Специалист не найден")

    client = await UserService.get_display_profile(client_id, db)
    if client is None:
      raise NotFoundError("Клиент не найден")

    if counselor["role"] not in COUNSELOR_ROLES:
      raise ValidationError("Личный чат создается только со специалистом")

    if client["role"] != UserRole.CLIENT.value:
      raise ValidationError("Второй участник личного чата должен быть клиентом")

    room = await RoomService.create_direct_chat(counselor_id, client_id, db)

    # Участники онлайн сразу получают события новой комнаты
    for user_id in (counselor_id, client_id):
      self.broadcaster.join_user_to_room(user_id, room.id)

    return room


  async def get_direct_chat(
    self,
    counselor_id: int,
    client_id: int,
    db: AsyncSession,
  ) -> ChatRoom:
    room = await RoomService.get_direct_chat(counselor_id, client_id, db)
    if room is None:
      raise NotFoundError("Чат не найден")
    return room


  async def send_message(
    self,
    room_id: int,
    sender_id: int,
    message: str,
    message_type: str,
    db: AsyncSession,
  ) -> MessageWithSender:
    """
    Отправка сообщения и рассылка new_message всем в комнате
    """

    await self.ensure_access(room_id, sender_id, db)

    created = await MessageService.create_message(
      room_id=room_id,
      sender_id=sender_id,
      message=message,
      message_type=message_type,
      db=db,
    )

    details = await MessageService.get_message_with_details(created.id, db)

    delivered = await self.broadcaster.emit_to_room(
      room_id,
      "new_message",
      {"message": details.model_dump()},
    )
    logger.info(f"[send_message] Сообщение {created.id} в комнате {room_id}, доставлено соединениям: {delivered}")

    return details


  async def get_messages(
    self,
    room_id: int,
    user_id: int,
    db: AsyncSession,
    limit: int = settings.MESSAGES_PAGE_LIMIT,
    offset: int = 0,
  ) -> MessagePage:
    await self.ensure_access(room_id, user_id, db)

    return await MessageService.get_messages_paginated(room_id, db, limit=limit, offset=offset)


  async def mark_as_read(
    self,
    room_id: int,
    message_id: int,
    user_id: int,
    db: AsyncSession,
  ) -> ReadReceipt:
    """
    Отметка о прочтении:
    1. Сдвигаем указатель (только вперед)
    2. Всем в комнате - message_read
    3. Самому читателю на все устройства - unread_count_updated
    """

    await self.ensure_access(room_id, user_id, db)

    message = await MessageService.get_message_by_id(message_id, db)
    if message is None or message.room_id != room_id:
      raise NotFoundError("Сообщение не найдено")

    await ChatReadService.mark_chat_read(room_id, user_id, message_id, db)

    unread_count = await MessageService.get_unread_count(room_id, user_id, db)

    reader = await UserService.get_display_profile(user_id, db)
    if reader is None:
      raise NotFoundError("Пользователь не найден")

    read_at = datetime.now(timezone.utc)

    await self.broadcaster.emit_to_room(room_id, "message_read", {
      "room_id": room_id,
      "message_id": message_id,
      "read_by": {
        "id": user_id,
        "name": reader["display_name"],
        "avatar": reader["avatar"],
      },
      "unread_count": unread_count,
      "read_at": read_at,
    })

    await self.broadcaster.emit_to_user(user_id, "unread_count_updated", {
      "room_id": room_id,
      "unread_count": unread_count,
    })

    return ReadReceipt(
      room_id=room_id,
      message_id=message_id,
      unread_count=unread_count,
      marked_at=read_at,
    )


  async def get_user_chat_rooms(self, user_id: int, db: AsyncSession) -> List:
    return await RoomService.get_user_chat_rooms(user_id, db)


  async def get_room_details(self, room_id: int, user_id: int, db: AsyncSession):
    rooms = await RoomService.get_user_chat_rooms(user_id, db)

    for room in rooms:
      if room.id == room_id:
        return room

    raise NotFoundError("Чат не найден")


  async def get_unread_count(self, room_id: int, user_id: int, db: AsyncSession) -> int:
    await self.ensure_access(room_id, user_id, db)

    return await MessageService.get_unread_count(room_id, user_id, db)


  async def get_unread_messages(self, room_id: int, user_id: int, db: AsyncSession) -> List[MessageWithSender]:
    await self.ensure_access(room_id, user_id, db)

    return await MessageService.get_unread_messages(room_id, user_id, db)
