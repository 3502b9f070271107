import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from counsel_chat.models.base import Base


class RoomType(str, enum.Enum):
  DIRECT = "direct"
  GLOBAL = "global"


class ChatRoom(Base):
  """
  Модель чата/комната
  global - одна общая комната для всех пользователей
  direct - личный чат специалиста и клиента
  """

  __tablename__ = "chat_rooms"

  id = Column(Integer, primary_key=True, index=True)
  name = Column(String(100), nullable=True)
  type = Column(String(10), nullable=False, default=RoomType.DIRECT.value)
  counselor_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
  client_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
  created_at = Column(DateTime(timezone=True), server_default=func.now())
  updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

  # Один личный чат на пару специалист-клиент
  __table_args__ = (
    UniqueConstraint("counselor_id", "client_id", name="uix_direct_chat_pair"),
  )

  messages = relationship("ChatMessage", back_populates="room")
