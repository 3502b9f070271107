from typing import Optional


class ChatError(Exception):
  """
  Базовая ошибка чата
  code - стабильный тип ошибки (отдается клиенту как есть)
  """

  status_code: int = 400
  code: str = "CHAT_ERROR"
  default_message: str = "Ошибка чата"

  def __init__(self, message: Optional[str] = None):
    self.message = message or self.default_message
    super().__init__(self.message)

  def to_dict(self) -> dict:
    return {
      "error": self.code,
      "detail": self.message,
    }


class AuthenticationError(ChatError):
  """Нет валидной личности (токен отсутствует, поврежден или истек)"""

  status_code = 401
  code = "UNAUTHORIZED"
  default_message = "Невалидный токен"


class AuthorizationError(ChatError):
  """Пользователь не участник комнаты"""

  status_code = 403
  code = "FORBIDDEN"
  default_message = "Нет доступа к этому чату"


class NotFoundError(ChatError):
  status_code = 404
  code = "NOT_FOUND"
  default_message = "Объект не найден"


class RateLimitError(ChatError):
  """Превышен лимит действий пользователя"""

  status_code = 429
  code = "RATE_LIMITED"
  default_message = "Слишком много запросов, попробуйте позже"


class ValidationError(ChatError):
  status_code = 400
  code = "VALIDATION_ERROR"
  default_message = "Некорректные данные"
