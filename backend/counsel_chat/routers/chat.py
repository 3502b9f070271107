from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from counsel_chat.core.config import settings
from counsel_chat.database import get_db
from counsel_chat.dependencies.auth import get_current_user
from counsel_chat.dependencies.chat import get_chat_service
from counsel_chat.models.user import COUNSELOR_ROLES
from counsel_chat.schemas.chat import ChatRoomResponse, DirectChatCreate, RoomSummary
from counsel_chat.schemas.message import (
  MarkAsReadRequest,
  MessagesListResponse,
  Pagination,
  ReadReceipt,
  UnreadCountResponse,
  UnreadMessagesResponse,
)
from counsel_chat.services.chat_service import ChatService


router = APIRouter(prefix="/chat", tags=["chat"])


@router.post("/rooms/direct", response_model=ChatRoomResponse, status_code=status.HTTP_201_CREATED)
async def create_direct_chat(
  chat_data: DirectChatCreate,
  current_user: dict = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  chat_service: ChatService = Depends(get_chat_service),
):
  """
  Личный чат (найти или создать)
  Специалист передает ID клиента, клиент - ID специалиста
  """

  if current_user["role"] in COUNSELOR_ROLES:
    counselor_id, client_id = current_user["id"], chat_data.participant_id
  else:
    counselor_id, client_id = chat_data.participant_id, current_user["id"]

  return await chat_service.create_direct_chat(counselor_id, client_id, db)


@router.get("/rooms", response_model=List[RoomSummary])
async def get_user_rooms(
  current_user: dict = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  chat_service: ChatService = Depends(get_chat_service),
):
  """
  Список чатов текущего пользователя
  с последним сообщением и количеством непрочитанных
  """

  return await chat_service.get_user_chat_rooms(current_user["id"], db)


@router.get("/rooms/counselor/{counselor_id}", response_model=ChatRoomResponse)
async def get_room_with_counselor(
  counselor_id: int,
  current_user: dict = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  chat_service: ChatService = Depends(get_chat_service),
):
  """Личный чат текущего клиента с указанным специалистом"""

  return await chat_service.get_direct_chat(counselor_id, current_user["id"], db)


@router.get("/rooms/{room_id}", response_model=RoomSummary)
async def get_room_details(
  room_id: int,
  current_user: dict = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  chat_service: ChatService = Depends(get_chat_service),
):
  return await chat_service.get_room_details(room_id, current_user["id"], db)


@router.get("/rooms/{room_id}/messages", response_model=MessagesListResponse)
async def get_messages(
  room_id: int,
  limit: int = Query(settings.MESSAGES_PAGE_LIMIT, ge=1, le=100),
  offset: int = Query(0, ge=0),
  current_user: dict = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  chat_service: ChatService = Depends(get_chat_service),
):
  """
  Получение сообщений чата (старые -> новые внутри страницы)
  """

  page = await chat_service.get_messages(room_id, current_user["id"], db, limit=limit, offset=offset)

  return MessagesListResponse(
    messages=page.messages,
    pagination=Pagination(limit=limit, offset=offset, has_more=page.has_more),
  )


@router.get("/rooms/{room_id}/messages/unread", response_model=UnreadMessagesResponse)
async def get_unread_messages(
  room_id: int,
  current_user: dict = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  chat_service: ChatService = Depends(get_chat_service),
):
  messages = await chat_service.get_unread_messages(room_id, current_user["id"], db)

  return UnreadMessagesResponse(messages=messages, count=len(messages))


@router.get("/rooms/{room_id}/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
  room_id: int,
  current_user: dict = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  chat_service: ChatService = Depends(get_chat_service),
):
  count = await chat_service.get_unread_count(room_id, current_user["id"], db)

  return UnreadCountResponse(room_id=room_id, count=count)


@router.patch("/rooms/{room_id}/mark-read", response_model=ReadReceipt)
async def mark_as_read(
  room_id: int,
  data: MarkAsReadRequest,
  current_user: dict = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  chat_service: ChatService = Depends(get_chat_service),
):
  """Отметить сообщения комнаты прочитанными до message_id включительно"""

  return await chat_service.mark_as_read(room_id, data.message_id, current_user["id"], db)
