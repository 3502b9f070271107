from pydantic import BaseModel, EmailStr, ConfigDict
from typing import Optional


class UserResponse(BaseModel):
  """Схема с данными текущего пользователя (GET /users/me)"""

  id: int
  name: str
  email: EmailStr
  avatar: Optional[str] = None
  role: str
  display_name: str

  # Позволяет создавать модели из объектов ORM
  model_config = ConfigDict(from_attributes=True)
