import json
import os

# Настройки читаются при импорте приложения
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "false"

import pytest

from fastapi import WebSocketDisconnect
from httpx import AsyncClient
from httpx._transports.asgi import ASGITransport
from sqlalchemy.pool import StaticPool
from sqlalchemy.ext.asyncio import (
  AsyncSession,
  create_async_engine,
  async_sessionmaker
)

from counsel_chat.main import app
from counsel_chat.core.security import create_access_token
from counsel_chat.database import get_db
from counsel_chat.dependencies.auth import get_current_user
from counsel_chat.dependencies.websocket_auth import get_current_user_ws
from counsel_chat.models.base import Base
from counsel_chat.models.user import User, Client, UserRole
from counsel_chat.services.chat_service import ChatService
from counsel_chat.services.room_service import RoomService
from counsel_chat.services.user_service import UserService
from counsel_chat.websocket.manager import (
  ConnectionRegistry,
  RealtimeGateway,
  SlidingWindowRateLimiter,
)


COUNSELOR_ID = 10
CLIENT_ID = 20
OUTSIDER_ID = 30


@pytest.fixture
async def async_engine():
  # StaticPool: все сессии теста видят одну in-memory базу
  engine = create_async_engine(
    "sqlite+aiosqlite:///:memory:",
    poolclass=StaticPool,
    echo=False,
  )

  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.create_all)

  yield engine

  await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
  return async_sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
  )


@pytest.fixture
async def async_session(session_factory):
  async with session_factory() as session:
    yield session
    await session.rollback()


@pytest.fixture
async def users(async_session):
  """Специалист, клиент с псевдонимом и посторонний клиент"""

  counselor = User(
    id=COUNSELOR_ID,
    name="Anna Petrova",
    email="counselor@mail.com",
    avatar="/avatars/anna.png",
    role=UserRole.COUNSELOR.value,
  )
  client = User(
    id=CLIENT_ID,
    name="Ivan Sidorov",
    email="client@mail.com",
    role=UserRole.CLIENT.value,
  )
  outsider = User(
    id=OUTSIDER_ID,
    name="Petr Ivanov",
    email="outsider@mail.com",
    role=UserRole.CLIENT.value,
  )
  async_session.add_all([counselor, client, outsider])
  async_session.add(Client(user_id=CLIENT_ID, nick_name="Sunny"))
  await async_session.commit()

  return {"counselor": counselor, "client": client, "outsider": outsider}


@pytest.fixture
async def global_room(async_session):
  return await RoomService.ensure_global_room(async_session)


@pytest.fixture
async def direct_room(async_session, users, global_room):
  return await RoomService.create_direct_chat(COUNSELOR_ID, CLIENT_ID, async_session)


# ============ РАССЫЛКА ============
class RecordingBroadcaster:
  """Запоминает все события вместо отправки в сокеты"""

  def __init__(self):
    self.room_events = []
    self.user_events = []
    self.joins = []

  async def emit_to_room(self, room_id, event, payload, exclude=None):
    self.room_events.append((room_id, event, payload))
    return 1

  async def emit_to_user(self, user_id, event, payload):
    self.user_events.append((user_id, event, payload))
    return 1

  def join_user_to_room(self, user_id, room_id):
    self.joins.append((user_id, room_id))
    return 1


@pytest.fixture
def broadcaster():
  return RecordingBroadcaster()


@pytest.fixture
def chat_service(broadcaster):
  return ChatService(broadcaster)


# ============ WEBSOCKET ============
class FakeWebSocket:
  """
  Минимальная замена starlette WebSocket для тестов шлюза
  Исходящие кадры декодируются в self.sent
  """

  def __init__(self, token=None, incoming=None):
    self.query_params = {"token": token} if token else {}
    self.incoming = list(incoming or [])
    self.sent = []
    self.accepted = False
    self.closed_code = None
    self.broken = False

  async def accept(self):
    self.accepted = True

  async def close(self, code=1000):
    self.closed_code = code

  async def send_text(self, data):
    if self.broken:
      raise RuntimeError("socket is closed")
    self.sent.append(json.loads(data))

  async def receive_text(self):
    if not self.incoming:
      raise WebSocketDisconnect(code=1000)
    return self.incoming.pop(0)

  def events(self, name):
    return [frame["data"] for frame in self.sent if frame["event"] == name]


@pytest.fixture
def make_ws():
  return FakeWebSocket


@pytest.fixture
def make_token():
  def _make_token(user_id):
    return create_access_token({"sub": str(user_id)})
  return _make_token


@pytest.fixture
def gateway(session_factory):
  return RealtimeGateway(
    registry=ConnectionRegistry(),
    rate_limiter=SlidingWindowRateLimiter(max_requests=100, window_seconds=60),
    session_factory=session_factory,
    authenticator=get_current_user_ws,
  )


# ============ HTTP ============
@pytest.fixture
async def async_client(async_session):
  async def _get_db_override():
    yield async_session

  app.dependency_overrides[get_db] = _get_db_override

  async with AsyncClient(
    transport=ASGITransport(app=app),
    base_url="http://test",
  ) as client:
    yield client

  app.dependency_overrides.clear()


@pytest.fixture
def login_as(async_session):
  """Подменяет get_current_user профилем указанного пользователя"""

  async def _login_as(user_id):
    profile = await UserService.get_display_profile(user_id, async_session)
    app.dependency_overrides[get_current_user] = lambda: profile
    return profile

  return _login_as
