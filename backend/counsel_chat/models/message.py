import enum

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from counsel_chat.models.base import Base


class MessageType(str, enum.Enum):
  TEXT = "text"
  IMAGE = "image"


class ChatMessage(Base):
  """
  Модель сообщений
  Сообщения не редактируются и не удаляются, ID растет в порядке отправки
  """

  __tablename__ = "chat_messages"

  id = Column(Integer, primary_key=True, index=True)
  room_id = Column(Integer, ForeignKey("chat_rooms.id"), nullable=False, index=True)
  sender_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
  message = Column(Text, nullable=False)
  message_type = Column(String(10), nullable=False, default=MessageType.TEXT.value)
  created_at = Column(DateTime(timezone=True), server_default=func.now())

  __table_args__ = (
    Index("ix_chat_messages_room_created", "room_id", "created_at"),
  )

  # Связи
  room = relationship("ChatRoom", back_populates="messages")
  sender = relationship("User")
