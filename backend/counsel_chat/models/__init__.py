from counsel_chat.models.base import Base
from counsel_chat.models.user import User, Client, UserRole, COUNSELOR_ROLES
from counsel_chat.models.chat import ChatRoom, RoomType
from counsel_chat.models.message import ChatMessage, MessageType
from counsel_chat.models.chat_reads import UserLastRead
