"""
서비스 구성

Settings 로부터 저장소/이벤트 버스/서비스를 생성하여 명시적으로 연결합니다.
애플리케이션 lifespan 에서 1회 생성되어 app.state 로 전달됩니다.
"""

from dataclasses import dataclass
from typing import Callable, Optional

import redis.asyncio as redis

from roomcast.core.config import Settings
from roomcast.core.logging import get_logger
from roomcast.database.redis import close_redis, health_check, init_redis
from roomcast.events.bus import EventBus
from roomcast.events.redis_relay import RedisPubSubRelay
from roomcast.repositories.base import RoomRepository, now_millis
from roomcast.repositories.memory import InMemoryRoomRepository
from roomcast.repositories.redis import RedisRoomRepository
from roomcast.services.presence import PresenceTracker
from roomcast.services.room_lifecycle import RoomLifecycle
from roomcast.services.room_sweeper import RoomSweeper

logger = get_logger(__name__)


@dataclass
class RoomServices:
    settings: Settings
    repository: RoomRepository
    bus: EventBus
    presence: PresenceTracker
    lifecycle: RoomLifecycle
    sweeper: RoomSweeper
    redis_client: Optional[redis.Redis] = None
    owns_redis: bool = False

    async def start(self):
        await self.bus.start()
        await self.sweeper.start()

    async def close(self):
        """역순 종료"""
        await self.sweeper.stop()
        await self.bus.close()
        await self.repository.close()
        if self.owns_redis:
            await close_redis(self.redis_client)
        logger.info("Room services closed")

    async def health(self) -> dict:
        """저장소/브로커 상태"""
        status = {
            "storage": self.settings.storage_backend,
            "broker": "redis" if self.bus.is_distributed else "local",
        }
        if self.redis_client is None:
            status["redis"] = {"status": "not_configured"}
            status["healthy"] = True
            return status

        redis_health = await health_check(self.redis_client)
        status["redis"] = redis_health
        status["healthy"] = redis_health["status"] == "healthy"
        return status


async def build_services(
    settings: Settings,
    redis_client: Optional[redis.Redis] = None,
    clock: Callable[[], int] = now_millis
) -> RoomServices:
    """
    설정에 따른 서비스 조립

    Args:
        settings: 애플리케이션 설정
        redis_client: 외부에서 생성한 클라이언트 (decode_responses=True). 없으면 settings로 생성
        clock: epoch millis 시계 (테스트 주입용)
    """
    owns_redis = False
    if settings.uses_redis and redis_client is None:
        redis_client = await init_redis(settings)
        owns_redis = True

    relay = None
    if settings.broker_enabled:
        relay = RedisPubSubRelay(redis_client, channel_prefix=f"{settings.redis_key_prefix}:events:")
    bus = EventBus(relay=relay)

    if settings.storage_backend == "redis":
        repository = RedisRoomRepository(
            redis_client,
            settings.room_ttl_seconds,
            bus=bus,
            clock=clock,
            key_prefix=settings.redis_key_prefix,
        )
    else:
        repository = InMemoryRoomRepository(settings.room_ttl_seconds, bus=bus, clock=clock)

    presence = PresenceTracker(repository, bus)
    lifecycle = RoomLifecycle(
        repository,
        bus,
        presence,
        keepalive_interval=settings.keepalive_interval_seconds,
        stream_queue_size=settings.stream_queue_size,
    )
    sweeper = RoomSweeper(lifecycle, interval_seconds=settings.sweep_interval_seconds)

    logger.info(
        f"Room services built (storage={settings.storage_backend}, broker={'redis' if relay else 'local'})"
    )
    return RoomServices(
        settings=settings,
        repository=repository,
        bus=bus,
        presence=presence,
        lifecycle=lifecycle,
        sweeper=sweeper,
        redis_client=redis_client,
        owns_redis=owns_redis,
    )
