"""
Room Repository 공통 계약

채팅방/메시지 상태를 TTL 범위 내에서 저장합니다. 모든 변경은
방 레코드 단위 read-modify-write 이며, 변경 규칙(_apply_*)은
백엔드와 무관하게 이 모듈에서 정의합니다. 백엔드는 레코드 단위
직렬화(_transaction)와 조회만 구현합니다.
"""

import hmac
import secrets
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from roomcast.core.errors import InvalidMessageException
from roomcast.core.logging import get_logger
from roomcast.events.bus import EventBus, MESSAGE_CHANNEL
from roomcast.schemas.room import (
    Message, MessageDraft, Room, RoomRecord, RoomSummary
)

logger = get_logger(__name__)

ROOM_ID_BYTES = 12
ADMIN_SECRET_BYTES = 32
MESSAGE_ID_BYTES = 9


class DeleteOutcome(str, Enum):
    DELETED = "deleted"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


class Commit(Enum):
    """_transaction 내 변경 결과 처리 방식"""
    WRITE = "write"
    DELETE = "delete"
    SKIP = "skip"


Mutation = Callable[[RoomRecord], Tuple[Any, Commit]]


def now_millis() -> int:
    return int(time.time() * 1000)


def generate_token(nbytes: int) -> str:
    return secrets.token_urlsafe(nbytes)


def secrets_match(expected: str, provided: Optional[str]) -> bool:
    """상수 시간 비교 (불일치 바이트에서 조기 종료하지 않음)"""
    return hmac.compare_digest(expected.encode("utf-8"), (provided or "").encode("utf-8"))


class RoomRepository(ABC):
    """채팅방 저장소 기본 클래스"""

    def __init__(
        self,
        ttl_seconds: int,
        bus: Optional[EventBus] = None,
        clock: Callable[[], int] = now_millis
    ):
        self.ttl_ms = ttl_seconds * 1000
        self.bus = bus
        self.clock = clock

    # -------------------------------------------------------------------------
    # 만료 판정
    # -------------------------------------------------------------------------

    def is_expired(self, record: RoomSummary) -> bool:
        """age >= TTL 이면 만료 (모든 조회 시점에 평가)"""
        return self.clock() - record.created_at >= self.ttl_ms

    def remaining_ttl_ms(self, record: RoomSummary) -> int:
        return max(1, record.created_at + self.ttl_ms - self.clock())

    def new_record(self, room_id: str, name: str, creator_name: str) -> RoomRecord:
        return RoomRecord(
            id=room_id,
            name=name,
            created_at=self.clock(),
            users=[creator_name],
            active_users=[creator_name],
            messages=[],
            admin_secret=generate_token(ADMIN_SECRET_BYTES),
        )

    # -------------------------------------------------------------------------
    # 백엔드 구현 대상
    # -------------------------------------------------------------------------

    @abstractmethod
    async def create(self, name: str, creator_name: str) -> Tuple[Room, str]:
        """채팅방 생성, (room, admin_secret) 반환. secret은 이 시점에만 노출"""

    @abstractmethod
    async def get(self, room_id: str) -> Optional[Room]:
        """만료되었거나 없으면 None"""

    @abstractmethod
    async def list_all(self) -> List[RoomSummary]:
        """만료 제외, created_at 내림차순, 만료 항목은 발견 즉시 제거"""

    @abstractmethod
    async def purge_expired(self) -> int:
        """만료 항목 물리 삭제 (best-effort 정리용)"""

    @abstractmethod
    async def _transaction(self, room_id: str, mutate: Mutation) -> Optional[Any]:
        """
        방 레코드 단위 직렬화된 read-modify-write

        Returns:
            mutate 결과, 방이 없거나 만료된 경우 None
        """

    async def close(self):
        """백엔드 리소스 정리"""

    # -------------------------------------------------------------------------
    # 공통 연산
    # -------------------------------------------------------------------------

    async def join(self, room_id: str, user_name: str) -> bool:
        result = await self._transaction(room_id, lambda record: self._apply_join(record, user_name))
        return result is not None

    async def append_message(self, room_id: str, draft: MessageDraft) -> Optional[Message]:
        if draft.is_empty():
            raise InvalidMessageException()

        message = await self._transaction(room_id, lambda record: self._apply_append(record, draft))
        if message is None:
            return None

        if self.bus is not None:
            await self.bus.publish(MESSAGE_CHANNEL.format(room_id=room_id), message.to_wire())
        return message

    async def set_active(self, room_id: str, user_name: str, active: bool) -> Optional[List[str]]:
        """activeUsers 갱신 후 스냅샷 반환, 방이 없으면 None"""
        return await self._transaction(
            room_id, lambda record: self._apply_presence(record, user_name, active)
        )

    async def delete(self, room_id: str, admin_secret: Optional[str]) -> DeleteOutcome:
        outcome = await self._transaction(
            room_id, lambda record: self._apply_delete(record, admin_secret)
        )
        return outcome or DeleteOutcome.NOT_FOUND

    async def get_messages(self, room_id: str) -> Optional[List[Message]]:
        room = await self.get(room_id)
        return room.messages if room else None

    # -------------------------------------------------------------------------
    # 변경 규칙
    # -------------------------------------------------------------------------

    @staticmethod
    def _apply_join(record: RoomRecord, user_name: str) -> Tuple[bool, Commit]:
        if user_name in record.users:
            return True, Commit.SKIP
        record.users.append(user_name)
        return True, Commit.WRITE

    def _apply_append(self, record: RoomRecord, draft: MessageDraft) -> Tuple[Message, Commit]:
        existing_ids = {message.id for message in record.messages}
        message_id = generate_token(MESSAGE_ID_BYTES)
        while message_id in existing_ids:
            message_id = generate_token(MESSAGE_ID_BYTES)

        # 프로세스 간 시계 차이가 있어도 방 내 timestamp는 감소하지 않음
        timestamp = self.clock()
        if record.messages:
            timestamp = max(timestamp, record.messages[-1].timestamp)

        message = Message(
            id=message_id,
            sender_id=draft.sender_id,
            sender_name=draft.sender_name,
            content=draft.content,
            attachment=draft.attachment,
            timestamp=timestamp,
        )
        record.messages.append(message)
        return message, Commit.WRITE

    @staticmethod
    def _apply_presence(record: RoomRecord, user_name: str, active: bool) -> Tuple[List[str], Commit]:
        if active and user_name not in record.active_users:
            record.active_users.append(user_name)
            return list(record.active_users), Commit.WRITE
        if not active and user_name in record.active_users:
            record.active_users.remove(user_name)
            return list(record.active_users), Commit.WRITE
        return list(record.active_users), Commit.SKIP

    @staticmethod
    def _apply_delete(record: RoomRecord, admin_secret: Optional[str]) -> Tuple[DeleteOutcome, Commit]:
        if not secrets_match(record.admin_secret, admin_secret):
            return DeleteOutcome.FORBIDDEN, Commit.SKIP
        return DeleteOutcome.DELETED, Commit.DELETE
