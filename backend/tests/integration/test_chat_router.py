import pytest

from counsel_chat.services.message_service import MessageService
from tests.conftest import COUNSELOR_ID, CLIENT_ID, OUTSIDER_ID


@pytest.mark.asyncio
async def test_create_direct_chat_as_counselor(async_client, login_as, users, global_room):
  await login_as(COUNSELOR_ID)

  response = await async_client.post("/chat/rooms/direct", json={"participant_id": CLIENT_ID})
  assert response.status_code == 201

  data = response.json()
  assert data["type"] == "direct"
  assert data["counselor_id"] == COUNSELOR_ID
  assert data["client_id"] == CLIENT_ID

  # Клиент с той стороны получает тот же чат
  await login_as(CLIENT_ID)
  again = await async_client.post("/chat/rooms/direct", json={"participant_id": COUNSELOR_ID})

  assert again.status_code == 201
  assert again.json()["id"] == data["id"]


@pytest.mark.asyncio
async def test_create_direct_chat_between_clients(async_client, login_as, users):
  await login_as(CLIENT_ID)

  response = await async_client.post("/chat/rooms/direct", json={"participant_id": OUTSIDER_ID})

  assert response.status_code == 400
  assert response.json()["error"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_create_direct_chat_unknown_participant(async_client, login_as, users):
  await login_as(COUNSELOR_ID)

  response = await async_client.post("/chat/rooms/direct", json={"participant_id": 404})

  assert response.status_code == 404
  assert response.json()["error"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_get_user_rooms(async_client, login_as, direct_room, async_session):
  await MessageService.create_message(direct_room.id, COUNSELOR_ID, "Добрый день", "text", async_session)
  await login_as(CLIENT_ID)

  response = await async_client.get("/chat/rooms")
  assert response.status_code == 200

  rooms = response.json()
  assert [room["id"] for room in rooms] == [direct_room.id, 1]
  assert rooms[0]["kind"] == "client"
  assert rooms[0]["counselor_name"] == "Anna Petrova"
  assert rooms[0]["last_message"] == "Добрый день"
  assert rooms[0]["unread_count"] == 1
  assert rooms[1]["counselor_name"] == "Global Chat"


@pytest.mark.asyncio
async def test_get_room_with_counselor(async_client, login_as, direct_room):
  await login_as(CLIENT_ID)

  response = await async_client.get(f"/chat/rooms/counselor/{COUNSELOR_ID}")

  assert response.status_code == 200
  assert response.json()["id"] == direct_room.id


@pytest.mark.asyncio
async def test_get_room_details(async_client, login_as, direct_room):
  await login_as(COUNSELOR_ID)

  response = await async_client.get(f"/chat/rooms/{direct_room.id}")

  assert response.status_code == 200
  assert response.json()["kind"] == "counselor"
  assert response.json()["client_name"] == "Sunny"


@pytest.mark.asyncio
async def test_outsider_gets_404_for_room_details(async_client, login_as, direct_room):
  await login_as(OUTSIDER_ID)

  response = await async_client.get(f"/chat/rooms/{direct_room.id}")

  assert response.status_code == 404


@pytest.mark.asyncio
async def test_outsider_cannot_read_messages(async_client, login_as, direct_room):
  await login_as(OUTSIDER_ID)

  response = await async_client.get(f"/chat/rooms/{direct_room.id}/messages")

  assert response.status_code == 403
  assert response.json() == {"error": "FORBIDDEN", "detail": "Нет доступа к этому чату"}


@pytest.mark.asyncio
async def test_messages_pagination(async_client, login_as, direct_room, async_session):
  for i in range(3):
    await MessageService.create_message(direct_room.id, COUNSELOR_ID, f"msg {i}", "text", async_session)
  await login_as(CLIENT_ID)

  response = await async_client.get(
    f"/chat/rooms/{direct_room.id}/messages",
    params={"limit": 2, "offset": 0},
  )
  assert response.status_code == 200

  data = response.json()
  assert [m["message"] for m in data["messages"]] == ["msg 1", "msg 2"]
  assert data["pagination"] == {"limit": 2, "offset": 0, "has_more": True}


@pytest.mark.asyncio
async def test_messages_limit_validation(async_client, login_as, direct_room):
  await login_as(CLIENT_ID)

  response = await async_client.get(f"/chat/rooms/{direct_room.id}/messages", params={"limit": 0})

  assert response.status_code == 422


@pytest.mark.asyncio
async def test_unread_flow(async_client, login_as, direct_room, async_session):
  first = await MessageService.create_message(direct_room.id, COUNSELOR_ID, "one", "text", async_session)
  second = await MessageService.create_message(direct_room.id, COUNSELOR_ID, "two", "text", async_session)
  await login_as(CLIENT_ID)

  count = await async_client.get(f"/chat/rooms/{direct_room.id}/unread-count")
  assert count.json() == {"room_id": direct_room.id, "count": 2}

  marked = await async_client.patch(
    f"/chat/rooms/{direct_room.id}/mark-read",
    json={"message_id": first.id},
  )
  assert marked.status_code == 200
  assert marked.json()["unread_count"] == 1

  unread = await async_client.get(f"/chat/rooms/{direct_room.id}/messages/unread")
  assert unread.status_code == 200
  assert unread.json()["count"] == 1
  assert unread.json()["messages"][0]["id"] == second.id
  assert unread.json()["messages"][0]["sender_name"] == "Anna Petrova"


@pytest.mark.asyncio
async def test_mark_read_unknown_message(async_client, login_as, direct_room):
  await login_as(CLIENT_ID)

  response = await async_client.patch(
    f"/chat/rooms/{direct_room.id}/mark-read",
    json={"message_id": 999},
  )

  assert response.status_code == 404


@pytest.mark.asyncio
async def test_rooms_require_token(async_client):
  response = await async_client.get("/chat/rooms")

  assert response.status_code == 401
