from fastapi import Depends, Request

from counsel_chat.services.chat_service import ChatService
from counsel_chat.websocket.manager import RealtimeGateway


def get_gateway(request: Request) -> RealtimeGateway:
  """Шлюз живет в app.state, создается в main.py"""

  return request.app.state.gateway


def get_chat_service(gateway: RealtimeGateway = Depends(get_gateway)) -> ChatService:
  return gateway.chat_service
