from typing import List, Optional

from sqlalchemy import select, exists, func, and_, or_, case, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased
import logging

from counsel_chat.core.config import settings
from counsel_chat.core.exceptions import NotFoundError
from counsel_chat.models.chat import ChatRoom, RoomType
from counsel_chat.models.chat_reads import UserLastRead
from counsel_chat.models.message import ChatMessage
from counsel_chat.models.user import User, Client, COUNSELOR_ROLES
from counsel_chat.schemas.chat import RoomSummaryForClient, RoomSummaryForCounselor
from counsel_chat.services.user_service import UserService, display_name_column

logger = logging.getLogger(__name__)


GLOBAL_CHAT_NAME = "Global Chat"


def build_room_summary(row, viewer_is_counselor: bool):
  """
  Собирает итоговую карточку комнаты из строки запроса
  Специалист видит поля client_*, клиент - поля counselor_*
  """

  room = row.ChatRoom
  is_global = room.type == RoomType.GLOBAL.value

  base = {
    "id": room.id,
    "name": room.name,
    "type": room.type,
    "counselor_id": room.counselor_id,
    "client_id": room.client_id,
    "created_at": room.created_at,
    "last_message": row.last_message,
    "last_message_time": row.last_message_time,
    "unread_count": row.unread_count or 0,
  }
  other_name = GLOBAL_CHAT_NAME if is_global else row.other_name
  other_avatar = None if is_global else row.other_avatar

  if viewer_is_counselor:
    return RoomSummaryForCounselor(**base, client_name=other_name, client_avatar=other_avatar)
  return RoomSummaryForClient(**base, counselor_name=other_name, counselor_avatar=other_avatar)


class RoomService:
  """
  Справочник комнат: поиск/создание личных чатов и проверка доступа
  """

  @staticmethod
  async def ensure_global_room(db: AsyncSession) -> ChatRoom:
    """
    Создает общую комнату, если ее еще нет
    """

    room = await db.get(ChatRoom, settings.GLOBAL_CHAT_ROOM_ID)
    if room:
      return room

    room = ChatRoom(
      id=settings.GLOBAL_CHAT_ROOM_ID,
      name=GLOBAL_CHAT_NAME,
      type=RoomType.GLOBAL.value,
    )
    db.add(room)
    await db.flush()

    # ID задан вручную, последовательность PostgreSQL нужно сдвинуть
    if db.get_bind().dialect.name == "postgresql":
      await db.execute(text(
        "SELECT setval(pg_get_serial_sequence('chat_rooms', 'id'), "
        "(SELECT MAX(id) FROM chat_rooms))"
      ))

    await db.commit()
    await db.refresh(room)

    logger.info(f"[ensure_global_room] Создана общая комната {room.id}")
    return room


  @staticmethod
  async def get_chat_room(room_id: int, db: AsyncSession) -> Optional[ChatRoom]:
    return await db.get(ChatRoom, room_id)


  @staticmethod
  async def is_user_in_room(room_id: int, user_id: int, db: AsyncSession) -> bool:
    """
    Проверка, является ли пользователь участником чата
    Общая комната доступна всем
    """

    if room_id == settings.GLOBAL_CHAT_ROOM_ID:
      return True

    stmt = select(
      exists().where(
        ChatRoom.id == room_id,
        ChatRoom.type == RoomType.DIRECT.value,
        or_(
          ChatRoom.counselor_id == user_id,
          ChatRoom.client_id == user_id,
        ),
      )
    )

    result = await db.execute(stmt)
    return bool(result.scalar())


  @staticmethod
  async def get_direct_chat(
    counselor_id: int,
    client_id: int,
    db: AsyncSession,
  ) -> Optional[ChatRoom]:
    """
    Поиск существующего личного чата (пара без учета порядка)
    """

    stmt = (
      select(ChatRoom)
      .where(ChatRoom.type == RoomType.DIRECT.value)
      .where(
        or_(
          and_(ChatRoom.counselor_id == counselor_id, ChatRoom.client_id == client_id),
          and_(ChatRoom.counselor_id == client_id, ChatRoom.client_id == counselor_id),
        )
      )
      .order_by(ChatRoom.id)
      .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


  @staticmethod
  async def create_direct_chat(
    counselor_id: int,
    client_id: int,
    db: AsyncSession,
  ) -> ChatRoom:
    """
    Найти существующий личный чат или создать новый
    Дубликаты отсекает уникальный индекс (counselor_id, client_id):
    проигравший в гонке откатывается и читает чужую запись
    """

    existing_chat = await RoomService.get_direct_chat(counselor_id, client_id, db)
    if existing_chat:
      return existing_chat

    chat = ChatRoom(
      type=RoomType.DIRECT.value,
      counselor_id=counselor_id,
      client_id=client_id,
    )

    try:
      db.add(chat)
      await db.commit()

    except IntegrityError:
      await db.rollback()
      logger.info(f"[create_direct_chat] Чат {counselor_id}-{client_id} уже создан параллельным запросом")

      existing_chat = await RoomService.get_direct_chat(counselor_id, client_id, db)
      if existing_chat is None:
        raise
      return existing_chat

    await db.refresh(chat)
    logger.info(f"[create_direct_chat] Создан чат {chat.id}: специалист {counselor_id}, клиент {client_id}")

    return chat


  @staticmethod
  async def get_user_chat_rooms(user_id: int, db: AsyncSession) -> List:
    """
    Все комнаты пользователя с последним сообщением и счетчиком непрочитанных
    Один запрос + сборка карточек в зависимости от роли
    """

    viewer = await UserService.get_display_profile(user_id, db)
    if viewer is None:
      raise NotFoundError("Пользователь не найден")

    viewer_is_counselor = viewer["role"] in COUNSELOR_ROLES

    other = aliased(User)
    other_client = aliased(Client)

    other_id = case(
      (ChatRoom.counselor_id == user_id, ChatRoom.client_id),
      else_=ChatRoom.counselor_id,
    )

    last_message = (
      select(ChatMessage.message)
      .where(ChatMessage.room_id == ChatRoom.id)
      .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
      .limit(1)
      .correlate(ChatRoom)
      .scalar_subquery()
      .label("last_message")
    )

    last_message_time = (
      select(ChatMessage.created_at)
      .where(ChatMessage.room_id == ChatRoom.id)
      .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
      .limit(1)
      .correlate(ChatRoom)
      .scalar_subquery()
      .label("last_message_time")
    )

    unread_count = (
      select(func.count(ChatMessage.id))
      .select_from(ChatMessage)
      .outerjoin(
        UserLastRead,
        and_(
          UserLastRead.room_id == ChatMessage.room_id,
          UserLastRead.user_id == user_id,
        ),
      )
      .where(
        ChatMessage.room_id == ChatRoom.id,
        ChatMessage.sender_id != user_id,
        or_(
          UserLastRead.last_message_id.is_(None),
          ChatMessage.id > UserLastRead.last_message_id,
        ),
      )
      .correlate(ChatRoom)
      .scalar_subquery()
      .label("unread_count")
    )

    stmt = (
      select(
        ChatRoom,
        display_name_column(other, other_client).label("other_name"),
        other.avatar.label("other_avatar"),
        last_message,
        last_message_time,
        unread_count,
      )
      .outerjoin(
        other,
        and_(ChatRoom.type == RoomType.DIRECT.value, other.id == other_id),
      )
      .outerjoin(other_client, other_client.user_id == other.id)
      .where(
        or_(
          ChatRoom.id == settings.GLOBAL_CHAT_ROOM_ID,
          and_(
            ChatRoom.type == RoomType.DIRECT.value,
            or_(ChatRoom.counselor_id == user_id, ChatRoom.client_id == user_id),
          ),
        )
      )
      .order_by(last_message_time.desc().nulls_last(), ChatRoom.id)
    )

    result = await db.execute(stmt)
    rooms = [build_room_summary(row, viewer_is_counselor) for row in result.all()]

    logger.info(f"[get_user_chat_rooms] Найдено {len(rooms)} комнат для пользователя {user_id}")
    return rooms
