from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from counsel_chat.models.base import Base


class UserLastRead(Base):
  """Модель последнего прочитанного сообщения в чате"""

  __tablename__ = "user_last_read"

  id = Column(Integer, primary_key=True)
  user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
  room_id = Column(Integer, ForeignKey("chat_rooms.id"), nullable=False)

  last_message_id = Column(Integer, nullable=True)
  read_at = Column(DateTime(timezone=True), server_default=func.now())

  __table_args__ = (
    UniqueConstraint("user_id", "room_id", name="uix_last_read_user_room"),
  )
