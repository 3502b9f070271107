from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import logging

logger = logging.getLogger(__name__)


router = APIRouter(tags=["websocket"])


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
  """
  WebSocket эндпоинт чата: /ws?token=...
  После подключения пользователь сразу получает события всех своих комнат
  """

  gateway = websocket.app.state.gateway

  # 1. Аутентификация и автоподключение к комнатам
  connection = await gateway.connect(websocket)
  if connection is None:
    return

  # 2. Держим соединение открытым до отключения
  try:
    await gateway.receive_loop(connection)
  except WebSocketDisconnect:
    pass
  finally:
    await gateway.disconnect(connection)
