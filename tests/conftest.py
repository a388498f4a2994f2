import asyncio
from typing import AsyncGenerator, Callable

import fakeredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

from roomcast.container import RoomServices, build_services
from roomcast.core.config import Settings
from roomcast.events.bus import EventBus
from roomcast.main import create_app
from roomcast.repositories.base import RoomRepository
from roomcast.repositories.memory import InMemoryRoomRepository
from roomcast.repositories.redis import RedisRoomRepository
from roomcast.services.presence import PresenceTracker
from roomcast.services.room_lifecycle import RoomLifecycle


TEST_TTL_SECONDS = 60
TEST_TTL_MS = TEST_TTL_SECONDS * 1000


class FakeClock:
    """테스트용 epoch millis 시계"""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class EventRecorder:
    """채널별 수신 이벤트 기록 핸들러"""

    def __init__(self):
        self.events = []

    def __call__(self, event: dict):
        self.events.append(event)


async def wait_for_condition(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01):
    """조건이 참이 될 때까지 대기 (브로커 경유 전달 확인용)"""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def ttl_ms() -> int:
    return TEST_TTL_MS


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def eventually():
    return wait_for_condition


@pytest.fixture
def bus() -> EventBus:
    """브로커 없는 로컬 이벤트 버스"""
    return EventBus()


@pytest.fixture
def fake_redis_server() -> fakeredis.FakeServer:
    """프로세스 간 공유되는 가짜 Redis 서버"""
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def redis_client(fake_redis_server):
    client = fakeredis.FakeAsyncRedis(server=fake_redis_server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def memory_repository(clock, bus) -> InMemoryRoomRepository:
    return InMemoryRoomRepository(TEST_TTL_SECONDS, bus=bus, clock=clock)


@pytest.fixture
def redis_repository(redis_client, clock, bus) -> RedisRoomRepository:
    return RedisRoomRepository(redis_client, TEST_TTL_SECONDS, bus=bus, clock=clock, key_prefix="test")


@pytest_asyncio.fixture(params=["memory", "redis"])
async def repository(request, clock, bus, fake_redis_server) -> AsyncGenerator[RoomRepository, None]:
    """두 백엔드에 동일한 계약 테스트 적용"""
    if request.param == "memory":
        yield InMemoryRoomRepository(TEST_TTL_SECONDS, bus=bus, clock=clock)
        return

    client = fakeredis.FakeAsyncRedis(server=fake_redis_server, decode_responses=True)
    yield RedisRoomRepository(client, TEST_TTL_SECONDS, bus=bus, clock=clock, key_prefix="test")
    await client.aclose()


@pytest.fixture
def presence(repository, bus) -> PresenceTracker:
    return PresenceTracker(repository, bus)


@pytest.fixture
def lifecycle(repository, bus, presence) -> RoomLifecycle:
    return RoomLifecycle(repository, bus, presence, keepalive_interval=0.05, stream_queue_size=32)


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        storage_backend="memory",
        broker_enabled=False,
        room_ttl_seconds=TEST_TTL_SECONDS,
        sweep_interval_seconds=3600,
        keepalive_interval_seconds=0.05,
        metrics_enabled=False,
    )


@pytest_asyncio.fixture
async def services(test_settings, clock) -> AsyncGenerator[RoomServices, None]:
    services = await build_services(test_settings, clock=clock)
    await services.start()
    yield services
    await services.close()


@pytest_asyncio.fixture
async def client(test_settings, services) -> AsyncGenerator[AsyncClient, None]:
    """테스트용 비동기 HTTP 클라이언트"""
    app = create_app(test_settings, services=services)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def test_room(lifecycle):
    """테스트용 채팅방 ("Drop", 생성자 "Fox")"""
    return await lifecycle.create("Drop", "Fox")
