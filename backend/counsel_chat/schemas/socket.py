from pydantic import BaseModel, Field

from counsel_chat.models.message import MessageType


class SocketFrame(BaseModel):
  """Входящий кадр WebSocket: {"event": "...", "data": {...}}"""

  event: str
  data: dict = Field(default_factory=dict)


class RoomPayload(BaseModel):
  """join_room, leave_room, typing_stop"""

  room_id: int


class MarkAsReadPayload(BaseModel):
  room_id: int
  message_id: int


class SendMessagePayload(BaseModel):
  room_id: int
  message: str = Field(min_length=1)
  message_type: MessageType = MessageType.TEXT
