"""
In-process Room Repository

단일 프로세스용 저장소. 방 ID별 asyncio.Lock 으로 변경을 직렬화합니다.
프로세스 재시작 시 데이터는 유지되지 않습니다.
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple

from roomcast.core.logging import get_logger
from roomcast.repositories.base import (
    Commit, Mutation, ROOM_ID_BYTES, RoomRepository, generate_token
)
from roomcast.schemas.room import Room, RoomRecord, RoomSummary

logger = get_logger(__name__)


class InMemoryRoomRepository(RoomRepository):
    """dict 기반 채팅방 저장소"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        # {room_id: RoomRecord}
        self._rooms: Dict[str, RoomRecord] = {}
        # {room_id: asyncio.Lock}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, room_id: str) -> asyncio.Lock:
        lock = self._locks.get(room_id)
        if lock is None:
            lock = self._locks[room_id] = asyncio.Lock()
        return lock

    def _evict(self, room_id: str):
        self._rooms.pop(room_id, None)
        self._locks.pop(room_id, None)

    def _live_record(self, room_id: str) -> Optional[RoomRecord]:
        record = self._rooms.get(room_id)
        if record is None:
            return None
        if self.is_expired(record):
            logger.debug(f"Room {room_id} expired, evicting")
            self._evict(room_id)
            return None
        return record

    async def create(self, name: str, creator_name: str) -> Tuple[Room, str]:
        room_id = generate_token(ROOM_ID_BYTES)
        # 만료됐지만 아직 회수되지 않은 ID도 재사용하지 않음
        while room_id in self._rooms:
            room_id = generate_token(ROOM_ID_BYTES)

        record = self.new_record(room_id, name, creator_name)
        self._rooms[room_id] = record
        return record.to_room(), record.admin_secret

    async def get(self, room_id: str) -> Optional[Room]:
        record = self._live_record(room_id)
        return record.to_room() if record else None

    async def list_all(self) -> List[RoomSummary]:
        summaries = []
        for room_id in list(self._rooms):
            record = self._live_record(room_id)
            if record is not None:
                summaries.append(record.to_summary())
        summaries.sort(key=lambda room: room.created_at, reverse=True)
        return summaries

    async def purge_expired(self) -> int:
        expired = [room_id for room_id, record in self._rooms.items() if self.is_expired(record)]
        for room_id in expired:
            self._evict(room_id)
        return len(expired)

    async def _transaction(self, room_id: str, mutate: Mutation) -> Optional[Any]:
        async with self._lock_for(room_id):
            record = self._live_record(room_id)
            if record is None:
                self._locks.pop(room_id, None)
                return None

            # 변경 실패 시 원본 유지를 위해 사본에서 작업
            working = record.model_copy(deep=True)
            result, commit = mutate(working)

            if commit is Commit.WRITE:
                self._rooms[room_id] = working
            elif commit is Commit.DELETE:
                self._evict(room_id)
            return result
