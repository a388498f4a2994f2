import asyncio
import json

import pytest
from fastapi import status
from httpx import AsyncClient

from roomcast.events.bus import PRESENCE_CHANNEL
from roomcast.main import create_app


async def create_room(client: AsyncClient, name: str = "Drop", creator: str = "Fox") -> dict:
    response = await client.post("/rooms", json={"name": name, "creatorName": creator})
    assert response.status_code == status.HTTP_201_CREATED
    return response.json()


class TestRoomAPI:
    """채팅방 API 테스트"""

    @pytest.mark.asyncio
    async def test_create_room(self, client: AsyncClient):
        data = await create_room(client)

        assert data["name"] == "Drop"
        assert data["users"] == ["Fox"]
        assert data["activeUsers"] == ["Fox"]
        assert data["messages"] == []
        assert data["adminSecret"]
        assert isinstance(data["createdAt"], int)

    @pytest.mark.asyncio
    async def test_create_room_validation(self, client: AsyncClient):
        response = await client.post("/rooms", json={"name": "", "creatorName": "Fox"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        data = response.json()
        assert data["error"] == "validation_error"
        assert data["validation_errors"][0]["field"] == "name"

    @pytest.mark.asyncio
    async def test_create_room_malformed_body(self, client: AsyncClient):
        response = await client.post("/rooms", content=b"not json", headers={"Content-Type": "application/json"})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["error"] == "validation_error"

    @pytest.mark.asyncio
    async def test_get_room_hides_secret(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.get(f"/rooms/{created['id']}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["id"] == created["id"]
        assert "adminSecret" not in data

    @pytest.mark.asyncio
    async def test_get_missing_room(self, client: AsyncClient):
        response = await client.get("/rooms/missing")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        data = response.json()
        assert data["error"] == "resource_not_found"
        assert data["message"] == "Room not found"

    @pytest.mark.asyncio
    async def test_list_rooms(self, client: AsyncClient, clock):
        first = await create_room(client, "first")
        clock.advance(10)
        second = await create_room(client, "second")

        response = await client.get("/rooms")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert [room["id"] for room in data] == [second["id"], first["id"]]
        assert all("messages" not in room and "adminSecret" not in room for room in data)

    @pytest.mark.asyncio
    async def test_expired_room_not_found(self, client: AsyncClient, clock, ttl_ms):
        created = await create_room(client)
        clock.advance(ttl_ms)

        response = await client.get(f"/rooms/{created['id']}")
        assert response.status_code == status.HTTP_404_NOT_FOUND

        response = await client.get("/rooms")
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_join_room(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.post(f"/rooms/{created['id']}/join", json={"userName": "Owl"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True, "roomId": created["id"]}

        room = (await client.get(f"/rooms/{created['id']}")).json()
        assert room["users"] == ["Fox", "Owl"]
        assert room["activeUsers"] == ["Fox"]

    @pytest.mark.asyncio
    async def test_join_room_requires_user_name(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.post(f"/rooms/{created['id']}/join", json={})

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


class TestMessageAPI:
    """메시지 API 테스트"""

    @pytest.mark.asyncio
    async def test_send_and_list_messages(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.post(
            f"/rooms/{created['id']}/messages",
            json={"senderId": "u-2", "senderName": "Owl", "content": "hi"}
        )

        assert response.status_code == status.HTTP_201_CREATED
        message = response.json()
        assert message["content"] == "hi"
        assert message["senderName"] == "Owl"
        assert "attachment" not in message

        response = await client.get(f"/rooms/{created['id']}/messages")
        assert response.status_code == status.HTTP_200_OK
        assert [m["id"] for m in response.json()] == [message["id"]]

    @pytest.mark.asyncio
    async def test_send_empty_message(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.post(
            f"/rooms/{created['id']}/messages",
            json={"senderId": "u-2", "senderName": "Owl", "content": ""}
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.json()["validation_errors"][0]["field"] == "content"

    @pytest.mark.asyncio
    async def test_send_attachment_only(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.post(
            f"/rooms/{created['id']}/messages",
            json={"senderId": "u-2", "senderName": "Owl", "attachment": "data:image/png;base64,AAAA"}
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["attachment"] == "data:image/png;base64,AAAA"

    @pytest.mark.asyncio
    async def test_send_to_missing_room(self, client: AsyncClient):
        response = await client.post(
            "/rooms/missing/messages",
            json={"senderId": "u-2", "senderName": "Owl", "content": "hi"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_typing(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.post(
            f"/rooms/{created['id']}/typing",
            json={"userName": "Owl", "isTyping": True}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True}


class TestDeleteAPI:
    """채팅방 삭제 API 테스트"""

    @pytest.mark.asyncio
    async def test_delete_with_wrong_secret(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.delete(f"/rooms/{created['id']}", headers={"X-Admin-Secret": "wrong"})

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"] == "forbidden"
        assert (await client.get(f"/rooms/{created['id']}")).status_code == status.HTTP_200_OK

    @pytest.mark.asyncio
    async def test_delete_without_secret(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.delete(f"/rooms/{created['id']}")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.asyncio
    async def test_delete_with_header_secret(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.delete(
            f"/rooms/{created['id']}", headers={"X-Admin-Secret": created["adminSecret"]}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"success": True}
        assert (await client.get(f"/rooms/{created['id']}")).status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_with_query_secret(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.delete(
            f"/rooms/{created['id']}", params={"adminSecret": created["adminSecret"]}
        )

        assert response.status_code == status.HTTP_200_OK

    @pytest.mark.asyncio
    async def test_delete_with_body_secret(self, client: AsyncClient):
        created = await create_room(client)

        response = await client.request(
            "DELETE", f"/rooms/{created['id']}", json={"adminSecret": created["adminSecret"]}
        )

        assert response.status_code == status.HTTP_200_OK

    @pytest.mark.asyncio
    async def test_delete_missing_room(self, client: AsyncClient):
        response = await client.delete("/rooms/missing", headers={"X-Admin-Secret": "secret"})

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestStreamAPI:
    """SSE 스트림 API 테스트"""

    @pytest.mark.asyncio
    async def test_stream_missing_room(self, client: AsyncClient):
        response = await client.get("/rooms/missing/sse", params={"userName": "Fox"})

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "resource_not_found"

    @pytest.mark.asyncio
    async def test_stream_lifecycle_over_http(self, test_settings, services, recorder, eventually):
        """스트림 연결 → init 프레임/헤더 확인 → 연결 종료 시 leave"""
        created = await services.lifecycle.create("Drop", "Fox")
        services.bus.on(PRESENCE_CHANNEL.format(room_id=created.id), recorder)
        app = create_app(test_settings, services=services)

        client_gone = asyncio.Event()
        request_read = []
        sent = []

        async def receive():
            if not request_read:
                request_read.append(True)
                return {"type": "http.request", "body": b"", "more_body": False}
            await client_gone.wait()
            return {"type": "http.disconnect"}

        async def send(message):
            sent.append(message)

        scope = {
            "type": "http",
            "asgi": {"version": "3.0"},
            "http_version": "1.1",
            "method": "GET",
            "scheme": "http",
            "path": f"/rooms/{created.id}/sse",
            "raw_path": f"/rooms/{created.id}/sse".encode(),
            "query_string": b"userName=Owl",
            "root_path": "",
            "headers": [(b"host", b"test")],
            "client": ("127.0.0.1", 50000),
            "server": ("test", 80),
        }

        def body():
            return b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body")

        connection = asyncio.create_task(app(scope, receive, send))
        await eventually(lambda: b"\n\n" in body())

        start = next(m for m in sent if m["type"] == "http.response.start")
        assert start["status"] == status.HTTP_200_OK
        headers = {key.decode().lower(): value.decode() for key, value in start["headers"]}
        assert headers["content-type"].startswith("text/event-stream")
        assert headers["cache-control"] == "no-cache, no-transform"
        assert headers["x-accel-buffering"] == "no"

        first = body().split(b"\n\n")[0].decode()
        assert first.startswith("event: presence\n")
        assert json.loads(first.split("data: ", 1)[1]) == {"type": "init", "activeUsers": ["Fox", "Owl"]}
        assert (await services.lifecycle.get_room(created.id)).active_users == ["Fox", "Owl"]

        client_gone.set()
        await asyncio.wait_for(connection, timeout=5)

        await eventually(lambda: any(event["type"] == "leave" for event in recorder.events))
        assert recorder.events[-1] == {"type": "leave", "userName": "Owl", "activeUsers": ["Fox"]}
        assert (await services.lifecycle.get_room(created.id)).active_users == ["Fox"]


class TestHealthAPI:
    """헬스 체크 API 테스트"""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "healthy"
        assert data["storage"] == "memory"
        assert data["broker"] == "local"

    @pytest.mark.asyncio
    async def test_liveness_and_readiness(self, client: AsyncClient):
        assert (await client.get("/health/live")).json()["status"] == "alive"
        assert (await client.get("/health/ready")).json() == {"status": "ready"}

    @pytest.mark.asyncio
    async def test_request_id_header(self, client: AsyncClient):
        response = await client.get("/health/live", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_unknown_route(self, client: AsyncClient):
        response = await client.get("/nope")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["error"] == "http_error"
