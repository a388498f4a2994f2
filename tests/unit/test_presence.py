import pytest

from roomcast.events.bus import PRESENCE_CHANNEL


class TestPresenceTracker:
    """접속자 관리 테스트"""

    @pytest.mark.asyncio
    async def test_add_publishes_join(self, presence, repository, bus, recorder):
        room, _ = await repository.create("Drop", "Fox")
        bus.on(PRESENCE_CHANNEL.format(room_id=room.id), recorder)

        snapshot = await presence.add_active_user(room.id, "Owl")

        assert snapshot == ["Fox", "Owl"]
        assert recorder.events == [
            {"type": "join", "userName": "Owl", "activeUsers": ["Fox", "Owl"]}
        ]
        assert (await repository.get(room.id)).active_users == ["Fox", "Owl"]

    @pytest.mark.asyncio
    async def test_repeated_add_is_idempotent(self, presence, repository):
        room, _ = await repository.create("Drop", "Fox")

        await presence.add_active_user(room.id, "Owl")
        snapshot = await presence.add_active_user(room.id, "Owl")

        assert snapshot == ["Fox", "Owl"]

    @pytest.mark.asyncio
    async def test_remove_publishes_leave(self, presence, repository, bus, recorder):
        room, _ = await repository.create("Drop", "Fox")
        await presence.add_active_user(room.id, "Owl")
        bus.on(PRESENCE_CHANNEL.format(room_id=room.id), recorder)

        snapshot = await presence.remove_active_user(room.id, "Owl")

        assert snapshot == ["Fox"]
        assert recorder.events == [
            {"type": "leave", "userName": "Owl", "activeUsers": ["Fox"]}
        ]

    @pytest.mark.asyncio
    async def test_remove_inactive_user_still_publishes(self, presence, repository, bus, recorder):
        """방이 존재하면 remove는 항상 leave 발행"""
        room, _ = await repository.create("Drop", "Fox")
        bus.on(PRESENCE_CHANNEL.format(room_id=room.id), recorder)

        snapshot = await presence.remove_active_user(room.id, "Owl")

        assert snapshot == ["Fox"]
        assert len(recorder.events) == 1
        assert recorder.events[0]["type"] == "leave"

    @pytest.mark.asyncio
    async def test_missing_room_is_noop(self, presence, bus, recorder):
        bus.on(PRESENCE_CHANNEL.format(room_id="missing"), recorder)

        assert await presence.add_active_user("missing", "Owl") is None
        assert await presence.remove_active_user("missing", "Owl") is None
        assert recorder.events == []

    @pytest.mark.asyncio
    async def test_expired_room_is_noop(self, presence, repository, bus, recorder, clock, ttl_ms):
        room, _ = await repository.create("Drop", "Fox")
        bus.on(PRESENCE_CHANNEL.format(room_id=room.id), recorder)
        clock.advance(ttl_ms)

        assert await presence.add_active_user(room.id, "Owl") is None
        assert recorder.events == []
