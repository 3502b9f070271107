from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Optional

from counsel_chat.models.message import MessageType


class MessageBase(BaseModel):
  """Схема сообщения"""

  message: str = Field(min_length=1)
  message_type: MessageType = MessageType.TEXT


class MessageCreate(MessageBase):
  """Схема отправки сообщения"""

  room_id: int


class MessageResponse(MessageBase):
  """Схема с информацией о сообщении"""

  id: int
  room_id: int
  sender_id: int
  created_at: datetime

  model_config = ConfigDict(from_attributes=True)


class MessageWithSender(MessageResponse):
  """Сообщение вместе с данными отправителя"""

  sender_name: Optional[str] = None
  sender_avatar: Optional[str] = None
  sender_type: Optional[str] = None


class MessagePage(BaseModel):
  """Страница сообщений в хронологическом порядке"""

  messages: List[MessageResponse]
  has_more: bool


class Pagination(BaseModel):
  limit: int
  offset: int
  has_more: bool


class MessagesListResponse(BaseModel):
  messages: List[MessageResponse]
  pagination: Pagination


class UnreadMessagesResponse(BaseModel):
  messages: List[MessageWithSender]
  count: int


class UnreadCountResponse(BaseModel):
  room_id: int
  count: int


class MarkAsReadRequest(BaseModel):
  message_id: int


class ReadReceipt(BaseModel):
  """Результат отметки о прочтении"""

  room_id: int
  message_id: int
  unread_count: int
  marked_at: datetime
