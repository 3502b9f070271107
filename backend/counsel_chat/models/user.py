import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from counsel_chat.models.base import Base


class UserRole(str, enum.Enum):
  """Роли пользователей платформы"""

  CLIENT = "Client"
  COUNSELOR = "Counselor"
  PSYCHIATRIST = "Psychiatrist"
  ADMIN = "Admin"


# Роли, которые в личных чатах выступают со стороны специалиста
COUNSELOR_ROLES = (UserRole.COUNSELOR.value, UserRole.PSYCHIATRIST.value)


class User(Base):
  """
  Модель пользователя
  Таблицей владеет сервис пользователей, чат только читает профиль
  """

  __tablename__ = "users"

  id = Column(Integer, primary_key=True, index=True)
  name = Column(String(100), nullable=False)
  email = Column(String(255), unique=True, nullable=False, index=True)
  avatar = Column(String(500), nullable=True)
  role = Column(String(20), nullable=False, default=UserRole.CLIENT.value)
  is_active = Column(Boolean, default=True)
  created_at = Column(DateTime(timezone=True), server_default=func.now())

  client_profile = relationship("Client", back_populates="user", uselist=False)


class Client(Base):
  """
  Профиль клиента (псевдоним вместо настоящего имени)
  """

  __tablename__ = "clients"

  id = Column(Integer, primary_key=True, index=True)
  user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
  nick_name = Column(String(100), nullable=True)

  user = relationship("User", back_populates="client_profile")
