from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from counsel_chat.database import get_db
from counsel_chat.dependencies.auth import get_current_user
from counsel_chat.dependencies.chat import get_chat_service
from counsel_chat.schemas.message import MessageCreate, MessageWithSender
from counsel_chat.services.chat_service import ChatService


router = APIRouter(prefix="/chat", tags=["messages"])


@router.post("/messages", response_model=MessageWithSender, status_code=status.HTTP_201_CREATED)
async def send_message(
  message_data: MessageCreate,
  current_user: dict = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
  chat_service: ChatService = Depends(get_chat_service),
):
  """
  Отправка сообщения в чат
  Сохраняем и рассылаем new_message подключенным участникам
  """

  return await chat_service.send_message(
    room_id=message_data.room_id,
    sender_id=current_user["id"],
    message=message_data.message,
    message_type=message_data.message_type,
    db=db,
  )
