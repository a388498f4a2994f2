"""
SSE 스트림 세션

연결 하나당 하나의 세션이 채팅방의 message/typing/presence 채널을
구독하고, 수신 이벤트를 SSE 프레임으로 직렬화하여 outbox 큐에 넣습니다.

상태: CONNECTING → ACTIVE → CLOSING → CLOSED
정리(teardown)는 중복/동시 abort 신호에도 정확히 한 번만 수행됩니다.
"""

import asyncio
from enum import Enum
from typing import Dict, List, Optional, Set

from roomcast.core.errors import RoomNotFoundException
from roomcast.core.logging import get_logger, log_stream_event, set_stream_context
from roomcast.events.bus import (
    EventBus, Handler, MESSAGE_CHANNEL, PRESENCE_CHANNEL, TYPING_CHANNEL
)
from roomcast.events.framing import (
    encode_event_frame, encode_keepalive_frame, encode_message_frame
)
from roomcast.repositories.base import RoomRepository
from roomcast.schemas.room import PresenceEvent
from roomcast.services.presence import PresenceTracker

logger = get_logger(__name__)

_CLOSE = object()

# 취소된 연결에서 시작된 teardown 태스크 참조 유지
_pending_teardowns: Set[asyncio.Task] = set()


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"


class StreamSession:
    """연결 단위 SSE 세션"""

    def __init__(
        self,
        room_id: str,
        user_name: Optional[str],
        repository: RoomRepository,
        bus: EventBus,
        presence: PresenceTracker,
        keepalive_interval: float = 15.0,
        queue_size: int = 256
    ):
        self.room_id = room_id
        self.user_name = user_name
        self.repository = repository
        self.bus = bus
        self.presence = presence
        self.keepalive_interval = keepalive_interval

        self.state = SessionState.CONNECTING
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._keepalive_task: Optional[asyncio.Task] = None
        self._teardown_task: Optional[asyncio.Task] = None
        self._close_lock = asyncio.Lock()
        self._subscribed: List[str] = []
        self._handlers: Dict[str, Handler] = {
            MESSAGE_CHANNEL.format(room_id=room_id): self._on_message,
            TYPING_CHANNEL.format(room_id=room_id): self._on_typing,
            PRESENCE_CHANNEL.format(room_id=room_id): self._on_presence,
        }

    @property
    def is_active(self) -> bool:
        return self.state is SessionState.ACTIVE

    # -------------------------------------------------------------------------
    # 시작
    # -------------------------------------------------------------------------

    async def open(self):
        """
        CONNECTING → ACTIVE

        Raises:
            RoomNotFoundException: 연결 시점에 방이 없거나 만료된 경우 (ACTIVE 진입 안 함)
        """
        if self.state is not SessionState.CONNECTING:
            raise RuntimeError(f"Session already {self.state.value}")

        set_stream_context(self.room_id, self.user_name)

        room = await self.repository.get(self.room_id)
        if room is None:
            self.state = SessionState.CLOSED
            raise RoomNotFoundException(self.room_id)

        # 이후 단계에서 실패/취소되면 close()가 등록된 부분을 모두 정리
        self.state = SessionState.ACTIVE
        try:
            snapshot = room.active_users
            if self.user_name:
                snapshot = await self.presence.add_active_user(self.room_id, self.user_name)
                if snapshot is None:
                    # 조회와 등록 사이에 삭제/만료된 경우
                    raise RoomNotFoundException(self.room_id)

            # 다른 사용자의 입장을 기다리지 않도록 현재 접속자를 본인에게만 즉시 전송
            init_event = PresenceEvent(type="init", active_users=snapshot)
            self.push(encode_event_frame("presence", init_event.to_wire()))

            for channel, handler in self._handlers.items():
                self.bus.on(channel, handler)
                await self.bus.subscribe(channel)
                self._subscribed.append(channel)

            self._keepalive_task = asyncio.create_task(self._keepalive())
        except BaseException:
            await asyncio.shield(self.close())
            raise

        log_stream_event(logger, "opened", self.room_id, self.user_name or "anonymous")

    # -------------------------------------------------------------------------
    # 전송
    # -------------------------------------------------------------------------

    def push(self, frame: bytes) -> bool:
        """outbox에 프레임 추가. 실패는 로그만 남기고 무시"""
        if self.state is not SessionState.ACTIVE:
            logger.debug(f"Dropping frame for inactive session in room {self.room_id}")
            return False
        try:
            self._outbox.put_nowait(frame)
            return True
        except asyncio.QueueFull:
            logger.warning(
                f"Outbound queue full for {self.user_name} in room {self.room_id}, frame dropped"
            )
            return False

    def _on_message(self, event: dict):
        self.push(encode_message_frame(event))

    def _on_typing(self, event: dict):
        self.push(encode_event_frame("typing", event))

    def _on_presence(self, event: dict):
        self.push(encode_event_frame("presence", event))

    async def _keepalive(self):
        """중간 프록시의 유휴 타임아웃 방지용 주석 프레임"""
        while True:
            await asyncio.sleep(self.keepalive_interval)
            self.push(encode_keepalive_frame())

    async def frames(self):
        """
        SSE 프레임 스트림

        응답 스트림이 종료/취소되면 teardown을 시작합니다.
        """
        try:
            while True:
                frame = await self._outbox.get()
                if frame is _CLOSE:
                    break
                yield frame
        finally:
            await asyncio.shield(self.abort())

    # -------------------------------------------------------------------------
    # 종료
    # -------------------------------------------------------------------------

    def abort(self) -> asyncio.Task:
        """연결 취소 신호. 여러 번 호출되어도 같은 teardown 태스크를 반환"""
        if self._teardown_task is None:
            self._teardown_task = asyncio.create_task(self.close())
            _pending_teardowns.add(self._teardown_task)
            self._teardown_task.add_done_callback(_pending_teardowns.discard)
        return self._teardown_task

    async def close(self):
        """ACTIVE → CLOSING → CLOSED (정확히 한 번)"""
        async with self._close_lock:
            if self.state is SessionState.CONNECTING:
                self.state = SessionState.CLOSED
                return
            if self.state is not SessionState.ACTIVE:
                return

            self.state = SessionState.CLOSING

            # 1. keep-alive 중지
            if self._keepalive_task:
                self._keepalive_task.cancel()
                try:
                    await self._keepalive_task
                except asyncio.CancelledError:
                    pass
                self._keepalive_task = None

            # 2. 채널 구독 해제
            for channel, handler in self._handlers.items():
                self.bus.off(channel, handler)
            while self._subscribed:
                await self.bus.unsubscribe(self._subscribed.pop())

            # 3. 접속자 목록에서 제거 (leave 이벤트 발행)
            if self.user_name:
                try:
                    await self.presence.remove_active_user(self.room_id, self.user_name)
                except Exception as e:
                    logger.warning(f"Failed to deregister {self.user_name} from room {self.room_id}: {e}")

            self.state = SessionState.CLOSED
            self._wake_reader()
            log_stream_event(logger, "closed", self.room_id, self.user_name or "anonymous")

    def _wake_reader(self):
        """frames() 대기 해제"""
        while True:
            try:
                self._outbox.put_nowait(_CLOSE)
                return
            except asyncio.QueueFull:
                self._outbox.get_nowait()
