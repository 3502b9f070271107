from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocketDisconnect, status
from fastapi.testclient import TestClient

from counsel_chat.main import app
from counsel_chat.websocket.manager import (
  ConnectionRegistry,
  RealtimeGateway,
  SlidingWindowRateLimiter,
)


@pytest.fixture
def stub_gateway(monkeypatch):
  """Шлюз без БД: пользователь и его комнаты подставлены"""

  gateway = RealtimeGateway(
    registry=ConnectionRegistry(),
    rate_limiter=SlidingWindowRateLimiter(),
    session_factory=MagicMock(),
    authenticator=AsyncMock(return_value={"id": 10, "display_name": "Anna Petrova"}),
  )
  gateway.chat_service.get_user_chat_rooms = AsyncMock(return_value=[SimpleNamespace(id=1)])

  monkeypatch.setattr(app.state, "gateway", gateway)
  return gateway


def test_handshake_without_token_is_rejected():
  client = TestClient(app)

  with pytest.raises(WebSocketDisconnect) as exc_info:
    with client.websocket_connect("/ws"):
      pass

  assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_handshake_with_invalid_token_is_rejected():
  client = TestClient(app)

  with pytest.raises(WebSocketDisconnect) as exc_info:
    with client.websocket_connect("/ws?token=invalid"):
      pass

  assert exc_info.value.code == status.WS_1008_POLICY_VIOLATION


def test_connected_client_gets_ack_and_errors(stub_gateway):
  client = TestClient(app)

  with client.websocket_connect("/ws?token=valid") as websocket:
    assert websocket.receive_json() == {
      "event": "connected",
      "data": {"user_id": 10, "rooms": [1]},
    }

    websocket.send_text("not json")
    assert websocket.receive_json()["data"]["code"] == "BAD_FRAME"

    websocket.send_json({"event": "dance", "data": {}})
    assert websocket.receive_json()["data"]["code"] == "UNKNOWN_EVENT"

    assert stub_gateway.registry.is_user_online(10)
