import enum
import json
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Set

from fastapi import WebSocket, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import logging

from counsel_chat.core.exceptions import ChatError, AuthorizationError, RateLimitError
from counsel_chat.schemas.socket import MarkAsReadPayload, RoomPayload, SendMessagePayload, SocketFrame
from counsel_chat.services.chat_service import ChatService
from counsel_chat.services.room_service import RoomService
from counsel_chat.utils.json_encoder import json_dumps


logger = logging.getLogger(__name__)


Authenticator = Callable[[str, AsyncSession], Awaitable[Optional[dict]]]


class ConnectionState(str, enum.Enum):
  CONNECTING = "connecting"
  AUTHENTICATING = "authenticating"
  AUTHENTICATED = "authenticated"
  REJECTED = "rejected"
  CONNECTED = "connected"
  DISCONNECTED = "disconnected"


@dataclass(eq=False)
class Connection:
  """Одно WebSocket соединение (вкладка/устройство)"""

  websocket: WebSocket
  id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
  user: Optional[dict] = None
  state: ConnectionState = ConnectionState.CONNECTING
  rooms: Set[int] = field(default_factory=set)

  @property
  def user_id(self) -> Optional[int]:
    return self.user["id"] if self.user else None


class ConnectionRegistry:
  """
  Реестр живых соединений процесса
  user_id -> set(connection_id), room_id -> set(connection_id)
  """

  def __init__(self):
    self.connections: Dict[str, Connection] = {}
    self.user_connections: Dict[int, Set[str]] = {}
    self.room_connections: Dict[int, Set[str]] = {}


  def add(self, connection: Connection):
    self.connections[connection.id] = connection
    self.user_connections.setdefault(connection.user_id, set()).add(connection.id)


  def remove(self, connection: Connection) -> bool:
    """
    Удаляет соединение из всех комнат и из набора пользователя
    Возвращает True, если у пользователя больше нет соединений (оффлайн)
    """

    self.connections.pop(connection.id, None)

    for room_id in list(connection.rooms):
      self.leave(connection, room_id)

    user_sockets = self.user_connections.get(connection.user_id)
    if user_sockets is None:
      return True

    user_sockets.discard(connection.id)
    if not user_sockets:
      del self.user_connections[connection.user_id]
      return True

    return False


  def join(self, connection: Connection, room_id: int):
    self.room_connections.setdefault(room_id, set()).add(connection.id)
    connection.rooms.add(room_id)


  def leave(self, connection: Connection, room_id: int):
    connection.rooms.discard(room_id)

    members = self.room_connections.get(room_id)
    if members is None:
      return

    members.discard(connection.id)
    if not members:
      del self.room_connections[room_id]


  def connections_in_room(self, room_id: int) -> List[Connection]:
    # Копия, чтобы не ловить мутацию во время рассылки
    ids = list(self.room_connections.get(room_id, ()))
    return [self.connections[i] for i in ids if i in self.connections]


  def connections_for_user(self, user_id: int) -> List[Connection]:
    ids = list(self.user_connections.get(user_id, ()))
    return [self.connections[i] for i in ids if i in self.connections]


  def is_user_online(self, user_id: int) -> bool:
    return user_id in self.user_connections

  def online_users(self) -> List[int]:
    return list(self.user_connections.keys())

  def user_count(self) -> int:
    return len(self.user_connections)

  def socket_count(self) -> int:
    return sum(len(sockets) for sockets in self.user_connections.values())


class SlidingWindowRateLimiter:
  """
  Скользящее окно: не больше max_requests действий за window_seconds на пользователя
  """

  def __init__(
    self,
    max_requests: int = 10,
    window_seconds: float = 60,
    clock: Callable[[], float] = time.monotonic,
  ):
    self.max_requests = max_requests
    self.window_seconds = window_seconds
    self.clock = clock
    self._hits: Dict[int, Deque[float]] = {}


  def _prune(self, hits: Deque[float], now: float) -> None:
    # Выбрасываем отметки, выпавшие из окна
    while hits and hits[0] <= now - self.window_seconds:
      hits.popleft()


  def hit(self, user_id: int) -> None:
    """Засчитывает действие или бросает RateLimitError"""

    now = self.clock()
    hits = self._hits.setdefault(user_id, deque())
    self._prune(hits, now)

    if len(hits) >= self.max_requests:
      raise RateLimitError()

    hits.append(now)


  def sweep(self) -> int:
    """
    Удаляет пользователей, у которых в окне не осталось отметок
    Свежие отметки остаются: переподключение не обнуляет лимит
    """

    now = self.clock()
    stale = []
    for user_id, hits in self._hits.items():
      self._prune(hits, now)
      if not hits:
        stale.append(user_id)

    for user_id in stale:
      del self._hits[user_id]

    return len(stale)


  def reset(self, user_id: int) -> None:
    self._hits.pop(user_id, None)


class RealtimeGateway:
  """
  Шлюз реального времени
  1. Аутентификация соединения по токену
  2. Автоподключение к комнатам пользователя
  3. Обработка событий клиента
  4. Рассылка в комнату и пользователю (best-effort, без очередей)
  """

  def __init__(
    self,
    registry: ConnectionRegistry,
    rate_limiter: SlidingWindowRateLimiter,
    session_factory: async_sessionmaker,
    authenticator: Authenticator,
  ):
    self.registry = registry
    self.rate_limiter = rate_limiter
    self.session_factory = session_factory
    self.authenticator = authenticator
    self.chat_service = ChatService(self)

    self._handlers = {
      "join_room": self._on_join_room,
      "leave_room": self._on_leave_room,
      "typing_stop": self._on_typing_stop,
      "mark_as_read": self._on_mark_as_read,
      "send_message": self._on_send_message,
    }


  # ============ ЖИЗНЕННЫЙ ЦИКЛ СОЕДИНЕНИЯ ============
  async def connect(self, websocket: WebSocket) -> Optional[Connection]:
    """
    Подключение: токен -> пользователь -> accept -> комнаты
    None - соединение отклонено
    """

    connection = Connection(websocket=websocket)
    connection.state = ConnectionState.AUTHENTICATING

    # 1. Получаем токен из query-параметра
    token = websocket.query_params.get("token")
    if not token:
      logger.info(f"[connect] Соединение {connection.id} отклонено: нет токена")
      return await self._reject(connection)

    async with self.session_factory() as db:
      # 2. Аутентификация
      user = await self.authenticator(token, db)
      if not user:
        logger.info(f"[connect] Соединение {connection.id} отклонено: невалидный токен")
        return await self._reject(connection)

      connection.user = user
      connection.state = ConnectionState.AUTHENTICATED

      # 3. Регистрируем соединение
      await websocket.accept()
      self.registry.add(connection)

      # 4. Комнаты пользователя
      try:
        rooms = await self.chat_service.get_user_chat_rooms(connection.user_id, db)
      except (ChatError, SQLAlchemyError) as e:
        logger.error(f"[connect] Ошибка загрузки комнат пользователя {connection.user_id}: {e}")
        rooms = []

    for room in rooms:
      self.registry.join(connection, room.id)

    connection.state = ConnectionState.CONNECTED
    logger.info(
      f"[connect] Пользователь {connection.user_id} подключен, ws_id {connection.id}, "
      f"комнат: {len(connection.rooms)}, соединений пользователя: {len(self.registry.connections_for_user(connection.user_id))}"
    )

    # 5. Подтверждаем подключение
    await self._send(connection, "connected", {
      "user_id": connection.user_id,
      "rooms": sorted(connection.rooms),
    })
    return connection


  async def _reject(self, connection: Connection) -> None:
    connection.state = ConnectionState.REJECTED
    await connection.websocket.close(code=status.WS_1008_POLICY_VIOLATION)
    return None


  async def disconnect(self, connection: Connection):
    """
    Отключение: чистим учет соединений и устаревшие отметки лимита
    """

    offline = self.registry.remove(connection)
    connection.state = ConnectionState.DISCONNECTED

    if offline:
      self.rate_limiter.sweep()

    logger.info(
      f"[disconnect] Пользователь {connection.user_id} отключился, ws_id {connection.id}"
      + (", пользователь оффлайн" if offline else "")
    )


  async def receive_loop(self, connection: Connection):
    """
    Держим соединение открытым до отключения
    WebSocketDisconnect пробрасывается наверх
    """

    while True:
      raw_data = await connection.websocket.receive_text()
      await self.handle_frame(connection, raw_data)


  async def handle_frame(self, connection: Connection, raw_data: str):
    """
    Разбор и обработка одного кадра
    Ошибки отдаем событием error, соединение не рвем
    """

    try:
      frame = SocketFrame.model_validate(json.loads(raw_data))
    except (json.JSONDecodeError, PydanticValidationError):
      await self._send_error(connection, "BAD_FRAME", "Неверный формат. Отправьте JSON {event, data}")
      return

    handler = self._handlers.get(frame.event)
    if handler is None:
      await self._send_error(connection, "UNKNOWN_EVENT", f"Неизвестное событие: {frame.event}")
      return

    try:
      self.rate_limiter.hit(connection.user_id)

      async with self.session_factory() as db:
        await handler(connection, frame.data, db)

    except PydanticValidationError as e:
      await self._send_error(connection, "VALIDATION_ERROR", f"Некорректные данные события {frame.event}: {e.error_count()} ошибок")

    except ChatError as e:
      logger.info(f"[handle_frame] {frame.event} от пользователя {connection.user_id}: {e.code}")
      await self._send_error(connection, e.code, e.message)

    except SQLAlchemyError:
      logger.exception(f"[handle_frame] Ошибка БД при обработке {frame.event}")
      await self._send_error(connection, "INTERNAL_ERROR", "Внутренняя ошибка сервера")


  # ============ ОБРАБОТЧИКИ СОБЫТИЙ ============
  async def _on_join_room(self, connection: Connection, data: dict, db: AsyncSession):
    payload = RoomPayload.model_validate(data)

    if not await RoomService.is_user_in_room(payload.room_id, connection.user_id, db):
      raise AuthorizationError("Нет доступа к этой комнате")

    self.registry.join(connection, payload.room_id)
    logger.info(f"[join_room] Пользователь {connection.user_id} вошел в комнату {payload.room_id}")

    await self._send(connection, "joined_room", {"room_id": payload.room_id})
    await self.emit_to_room(payload.room_id, "user_joined_room", {
      "room_id": payload.room_id,
      "user_id": connection.user_id,
      "user_name": connection.user.get("display_name"),
    }, exclude=connection.id)


  async def _on_leave_room(self, connection: Connection, data: dict, db: AsyncSession):
    payload = RoomPayload.model_validate(data)

    await self.chat_service.ensure_access(payload.room_id, connection.user_id, db)

    self.registry.leave(connection, payload.room_id)
    logger.info(f"[leave_room] Пользователь {connection.user_id} покинул комнату {payload.room_id}")

    await self._send(connection, "left_room", {"room_id": payload.room_id})
    await self.emit_to_room(payload.room_id, "user_left_room", {
      "room_id": payload.room_id,
      "user_id": connection.user_id,
      "user_name": connection.user.get("display_name"),
    })


  async def _on_typing_stop(self, connection: Connection, data: dict, db: AsyncSession):
    payload = RoomPayload.model_validate(data)

    await self.chat_service.ensure_access(payload.room_id, connection.user_id, db)

    await self.emit_to_room(payload.room_id, "user_stopped_typing", {
      "room_id": payload.room_id,
      "user_id": connection.user_id,
    }, exclude=connection.id)


  async def _on_mark_as_read(self, connection: Connection, data: dict, db: AsyncSession):
    payload = MarkAsReadPayload.model_validate(data)

    await self.chat_service.mark_as_read(payload.room_id, payload.message_id, connection.user_id, db)


  async def _on_send_message(self, connection: Connection, data: dict, db: AsyncSession):
    payload = SendMessagePayload.model_validate(data)

    await self.chat_service.send_message(
      room_id=payload.room_id,
      sender_id=connection.user_id,
      message=payload.message,
      message_type=payload.message_type,
      db=db,
    )


  # ============ РАССЫЛКА ============
  def join_user_to_room(self, user_id: int, room_id: int) -> int:
    """
    Подключает все живые соединения пользователя к комнате
    Возвращает количество подключенных соединений
    """

    connections = self.registry.connections_for_user(user_id)
    for connection in connections:
      self.registry.join(connection, room_id)

    if connections:
      logger.info(f"[join_user_to_room] Пользователь {user_id} -> комната {room_id}, соединений: {len(connections)}")
    return len(connections)


  async def emit_to_room(
    self,
    room_id: int,
    event: str,
    payload: dict,
    exclude: Optional[str] = None,
  ) -> int:
    """
    Отправляет событие всем соединениям комнаты
    Возвращает количество соединений, которым доставлено
    """

    connections = [
      c for c in self.registry.connections_in_room(room_id)
      if c.id != exclude
    ]
    if not connections:
      logger.debug(f"[emit_to_room] Нет получателей {event} в комнате {room_id}")
      return 0

    delivered = 0
    for connection in connections:
      if await self._send(connection, event, payload):
        delivered += 1

    logger.debug(f"[emit_to_room] {event} -> комната {room_id}: {delivered}/{len(connections)}")
    return delivered


  async def emit_to_user(self, user_id: int, event: str, payload: dict) -> int:
    """
    Отправляет событие на все устройства пользователя
    Пользователь оффлайн - событие отбрасывается (0)
    """

    delivered = 0
    for connection in self.registry.connections_for_user(user_id):
      if await self._send(connection, event, payload):
        delivered += 1

    logger.debug(f"[emit_to_user] {event} -> пользователь {user_id}: {delivered}")
    return delivered


  async def _send(self, connection: Connection, event: str, payload: dict) -> bool:
    try:
      await connection.websocket.send_text(json_dumps({"event": event, "data": payload}))
      return True

    except Exception as e:
      # Мертвое соединение уберет disconnect
      logger.warning(f"[send] Ошибка отправки {event} в ws_id {connection.id}: {e}")
      return False


  async def _send_error(self, connection: Connection, code: str, message: str):
    await self._send(connection, "error", {"code": code, "message": message})
