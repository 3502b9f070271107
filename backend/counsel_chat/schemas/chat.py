from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Literal, Optional, Union
from datetime import datetime


class ChatRoomResponse(BaseModel):
  """Схема с информацией о чате"""

  id: int
  name: Optional[str] = None      # None - для личных чатов
  type: str
  counselor_id: Optional[int] = None
  client_id: Optional[int] = None
  created_at: Optional[datetime] = None

  model_config = ConfigDict(from_attributes=True)


class DirectChatCreate(BaseModel):
  """
  Схема для создания личного чата
  Кто специалист, а кто клиент - решает роль текущего пользователя
  """

  participant_id: int


class RoomSummaryBase(ChatRoomResponse):
  """Комната в списке чатов пользователя"""

  last_message: Optional[str] = None
  last_message_time: Optional[datetime] = None
  unread_count: int = 0


class RoomSummaryForCounselor(RoomSummaryBase):
  """Список глазами специалиста: собеседник - клиент"""

  kind: Literal["counselor"] = "counselor"
  client_name: Optional[str] = None
  client_avatar: Optional[str] = None


class RoomSummaryForClient(RoomSummaryBase):
  """Список глазами клиента: собеседник - специалист"""

  kind: Literal["client"] = "client"
  counselor_name: Optional[str] = None
  counselor_avatar: Optional[str] = None


RoomSummary = Annotated[
  Union[RoomSummaryForCounselor, RoomSummaryForClient],
  Field(discriminator="kind"),
]
