"""
Redis Room Repository

방 하나 = 만료 키 하나에 직렬화된 레코드 (저장소 강제 TTL),
live 방 ID는 created_at 점수의 sorted set 인덱스로 관리합니다.

동시 변경은 WATCH/MULTI 낙관적 트랜잭션으로 처리하여
다른 프로세스의 갱신을 잃지 않습니다.
"""

from contextlib import contextmanager
from typing import Any, List, Optional, Tuple

import redis.asyncio as redis
from redis.exceptions import RedisError, WatchError

from roomcast.core.errors import TransientStoreException
from roomcast.core.logging import get_logger
from roomcast.repositories.base import (
    Commit, Mutation, ROOM_ID_BYTES, RoomRepository, generate_token
)
from roomcast.schemas.room import Room, RoomRecord, RoomSummary

logger = get_logger(__name__)

# Redis 키 패턴
ROOM_KEY = "{prefix}:room:{room_id}"
ROOM_INDEX_KEY = "{prefix}:rooms:index"

MAX_TRANSACTION_RETRIES = 10


class RedisRoomRepository(RoomRepository):
    """Redis 기반 채팅방 저장소"""

    def __init__(self, redis_client: redis.Redis, *args, key_prefix: str = "roomcast", **kwargs):
        super().__init__(*args, **kwargs)
        self.redis = redis_client
        self.key_prefix = key_prefix
        self.index_key = ROOM_INDEX_KEY.format(prefix=key_prefix)

    def _room_key(self, room_id: str) -> str:
        return ROOM_KEY.format(prefix=self.key_prefix, room_id=room_id)

    @staticmethod
    def _dump(record: RoomRecord) -> str:
        return record.model_dump_json(by_alias=True)

    @staticmethod
    def _load(raw: str) -> RoomRecord:
        return RoomRecord.model_validate_json(raw)

    @contextmanager
    def _store_errors(self, operation: str):
        """Redis 장애를 Transient 에러로 변환"""
        try:
            yield
        except RedisError as e:
            logger.error(f"Redis {operation} failed: {e}")
            raise TransientStoreException("redis", f"{operation} failed") from e

    async def _evict(self, room_ids: List[str]):
        """만료/유실 항목 정리 (best-effort)"""
        if not room_ids:
            return
        try:
            pipe = self.redis.pipeline()
            pipe.delete(*[self._room_key(room_id) for room_id in room_ids])
            pipe.zrem(self.index_key, *room_ids)
            await pipe.execute()
            logger.debug(f"Evicted {len(room_ids)} expired rooms")
        except RedisError as e:
            logger.warning(f"Failed to evict expired rooms: {e}")

    async def create(self, name: str, creator_name: str) -> Tuple[Room, str]:
        with self._store_errors("create"):
            while True:
                room_id = generate_token(ROOM_ID_BYTES)
                record = self.new_record(room_id, name, creator_name)
                # 레코드와 인덱스를 한 MULTI로 기록
                # NX: 기존 키가 있으면 다른 ID로 재시도 (기존 인덱스 점수도 유지)
                async with self.redis.pipeline(transaction=True) as pipe:
                    pipe.set(self._room_key(room_id), self._dump(record), px=self.ttl_ms, nx=True)
                    pipe.zadd(self.index_key, {room_id: record.created_at}, nx=True)
                    created, _ = await pipe.execute()
                if created:
                    break

        return record.to_room(), record.admin_secret

    async def get(self, room_id: str) -> Optional[Room]:
        with self._store_errors("get"):
            raw = await self.redis.get(self._room_key(room_id))
        if raw is None:
            return None

        record = self._load(raw)
        if self.is_expired(record):
            await self._evict([room_id])
            return None
        return record.to_room()

    async def list_all(self) -> List[RoomSummary]:
        with self._store_errors("list"):
            room_ids = await self.redis.zrevrange(self.index_key, 0, -1)
            if not room_ids:
                return []
            raws = await self.redis.mget([self._room_key(room_id) for room_id in room_ids])

        summaries = []
        stale = []
        for room_id, raw in zip(room_ids, raws):
            if raw is None:
                stale.append(room_id)
                continue
            record = self._load(raw)
            if self.is_expired(record):
                stale.append(room_id)
                continue
            summaries.append(record.to_summary())

        await self._evict(stale)
        # 인덱스 점수 순서를 신뢰하되 동일 점수 정렬을 위해 재정렬
        summaries.sort(key=lambda room: room.created_at, reverse=True)
        return summaries

    async def purge_expired(self) -> int:
        cutoff = self.clock() - self.ttl_ms
        with self._store_errors("purge"):
            expired = await self.redis.zrangebyscore(self.index_key, "-inf", cutoff)
        await self._evict(list(expired))
        return len(expired)

    async def _transaction(self, room_id: str, mutate: Mutation) -> Optional[Any]:
        key = self._room_key(room_id)

        with self._store_errors("update"):
            for attempt in range(MAX_TRANSACTION_RETRIES):
                async with self.redis.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            return None

                        record = self._load(raw)
                        if self.is_expired(record):
                            await pipe.unwatch()
                            await self._evict([room_id])
                            return None

                        result, commit = mutate(record)
                        if commit is Commit.SKIP:
                            return result

                        pipe.multi()
                        if commit is Commit.DELETE:
                            pipe.delete(key)
                            pipe.zrem(self.index_key, room_id)
                        else:
                            pipe.set(key, self._dump(record), px=self.remaining_ttl_ms(record))
                        await pipe.execute()
                        return result

                    except WatchError:
                        logger.debug(f"Concurrent update on room {room_id}, retry {attempt + 1}")
                        continue

        logger.error(f"Room {room_id} update aborted after {MAX_TRANSACTION_RETRIES} retries")
        raise TransientStoreException("redis", "too many concurrent updates")
