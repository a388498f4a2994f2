"""
RoomLifecycle 서비스

경계 계층(HTTP 라우트)이 호출하는 채팅방 연산 모음.
입력 검증, NotFound/Forbidden 매핑, 로그를 담당하며
상태 변경은 모두 RoomRepository 에 위임합니다.
"""

from typing import List, Optional

from roomcast.core.errors import (
    RoomNotFoundException, TransientStoreException, invalid_admin_secret_error
)
from roomcast.core.logging import get_logger, log_room_event, log_security_event
from roomcast.core.validators import Validator
from roomcast.events.bus import EventBus, TYPING_CHANNEL
from roomcast.repositories.base import DeleteOutcome, RoomRepository
from roomcast.schemas.room import (
    CreateRoomResponse, Message, MessageDraft, Room, RoomSummary, TypingEvent
)
from roomcast.services.presence import PresenceTracker
from roomcast.services.stream_session import StreamSession

logger = get_logger(__name__)

MAX_ROOM_NAME_LENGTH = 100
MAX_USER_NAME_LENGTH = 50


class RoomLifecycle:
    """채팅방 생성/참여/메시지/삭제/스트림 연산"""

    def __init__(
        self,
        repository: RoomRepository,
        bus: EventBus,
        presence: PresenceTracker,
        keepalive_interval: float = 15.0,
        stream_queue_size: int = 256
    ):
        self.repository = repository
        self.bus = bus
        self.presence = presence
        self.keepalive_interval = keepalive_interval
        self.stream_queue_size = stream_queue_size

    @staticmethod
    def _validate_user_name(user_name: Optional[str], field_name: str = "userName") -> str:
        return Validator.validate_display_name(user_name, field_name, MAX_USER_NAME_LENGTH)

    async def create(self, name: Optional[str], creator_name: Optional[str]) -> CreateRoomResponse:
        """채팅방 생성. admin_secret은 이 응답에서만 반환됩니다."""
        name = Validator.validate_display_name(name, "name", MAX_ROOM_NAME_LENGTH)
        creator_name = self._validate_user_name(creator_name, "creatorName")

        room, admin_secret = await self.repository.create(name, creator_name)
        log_room_event(logger, "created", room.id, creator=creator_name)
        return CreateRoomResponse(**room.model_dump(), admin_secret=admin_secret)

    async def get_room(self, room_id: str) -> Room:
        room = await self.repository.get(room_id)
        if room is None:
            raise RoomNotFoundException(room_id)
        return room

    async def list_rooms(self) -> List[RoomSummary]:
        return await self.repository.list_all()

    async def get_messages(self, room_id: str) -> List[Message]:
        messages = await self.repository.get_messages(room_id)
        if messages is None:
            raise RoomNotFoundException(room_id)
        return messages

    async def join(self, room_id: str, user_name: Optional[str]) -> bool:
        """방 참여자 목록에 추가 (멱등, activeUsers는 변경하지 않음)"""
        user_name = self._validate_user_name(user_name)
        if not await self.repository.join(room_id, user_name):
            raise RoomNotFoundException(room_id)
        log_room_event(logger, "joined", room_id, user_name=user_name)
        return True

    async def append_message(
        self,
        room_id: str,
        sender_id: Optional[str],
        sender_name: Optional[str],
        content: Optional[str] = None,
        attachment: Optional[str] = None
    ) -> Message:
        """
        메시지 추가 및 message 채널 발행

        Raises:
            ValidationException: 발신자 정보 누락
            InvalidMessageException: 본문과 첨부가 모두 비어 있음
            RoomNotFoundException: 방이 없거나 만료됨
        """
        Validator.validate_required(sender_id, "senderId")
        Validator.validate_required(sender_name, "senderName")

        draft = MessageDraft(
            sender_id=sender_id,
            sender_name=sender_name,
            content=content or "",
            attachment=attachment or None,
        )
        message = await self.repository.append_message(room_id, draft)
        if message is None:
            raise RoomNotFoundException(room_id)

        logger.debug(f"Message {message.id} appended to room {room_id}")
        return message

    async def set_typing(self, room_id: str, user_name: Optional[str], is_typing: bool) -> bool:
        """입력 중 상태 발행 (저장하지 않음, 발행 실패는 무시)"""
        user_name = self._validate_user_name(user_name)
        event = TypingEvent(room_id=room_id, user_name=user_name, is_typing=is_typing)
        await self.bus.publish(TYPING_CHANNEL.format(room_id=room_id), event.to_wire())
        return True

    async def delete_room(
        self,
        room_id: str,
        admin_secret: Optional[str],
        ip_address: Optional[str] = None
    ) -> bool:
        """
        관리자 시크릿 확인 후 삭제

        Raises:
            ForbiddenException: 시크릿 누락/불일치
            RoomNotFoundException: 방이 없거나 만료됨
        """
        outcome = await self.repository.delete(room_id, admin_secret)

        if outcome is DeleteOutcome.FORBIDDEN:
            log_security_event(
                logger, "invalid_admin_secret", severity="medium",
                ip_address=ip_address, room_id=room_id
            )
            raise invalid_admin_secret_error()
        if outcome is DeleteOutcome.NOT_FOUND:
            raise RoomNotFoundException(room_id)

        log_room_event(logger, "deleted", room_id)
        return True

    async def open_stream(self, room_id: str, user_name: Optional[str]) -> StreamSession:
        """ACTIVE 상태의 스트림 세션 반환"""
        if user_name is not None:
            user_name = self._validate_user_name(user_name)

        session = StreamSession(
            room_id,
            user_name,
            repository=self.repository,
            bus=self.bus,
            presence=self.presence,
            keepalive_interval=self.keepalive_interval,
            queue_size=self.stream_queue_size,
        )
        await session.open()
        return session

    async def sweep_expired(self) -> int:
        """만료 방 물리 삭제 (조회 결과와 무관한 정리 작업)"""
        try:
            removed = await self.repository.purge_expired()
        except TransientStoreException as e:
            logger.warning(f"Expiry sweep skipped: {e.message}")
            return 0

        if removed:
            logger.info(f"Swept {removed} expired rooms", extra={"event_type": "room_sweep", "removed": removed})
        return removed
