"""
Event Bus

채널 단위 Pub/Sub. 2계층 구조:
- LocalEventDispatcher: 프로세스 내 observer (핸들러 직접 호출)
- EventBus: 로컬 디스패처 + (선택) 외부 브로커 릴레이

브로커가 설정된 경우 publish는 브로커로만 전송하고, 각 프로세스는
자신의 구독을 통해 수신한 이벤트를 로컬 핸들러로 재전파합니다.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Protocol, Set

from roomcast.core.logging import get_logger

logger = get_logger(__name__)

# 채널 이름 패턴
MESSAGE_CHANNEL = "message:{room_id}"
TYPING_CHANNEL = "typing:{room_id}"
PRESENCE_CHANNEL = "presence:{room_id}"

Event = Dict[str, Any]
Handler = Callable[[Event], None]
Deliver = Callable[[str, Event], int]


def room_channels(room_id: str) -> List[str]:
    """채팅방의 message/typing/presence 채널 이름"""
    return [
        MESSAGE_CHANNEL.format(room_id=room_id),
        TYPING_CHANNEL.format(room_id=room_id),
        PRESENCE_CHANNEL.format(room_id=room_id),
    ]


class BrokerRelay(Protocol):
    """외부 브로드캐스트 계층 인터페이스"""

    async def start(self, deliver: Deliver) -> None: ...

    async def publish(self, channel: str, event: Event) -> None: ...

    async def subscribe(self, channel: str) -> None: ...

    async def unsubscribe(self, channel: str) -> None: ...

    async def close(self) -> None: ...


class LocalEventDispatcher:
    """프로세스 내 이벤트 디스패처"""

    def __init__(self):
        # {channel: [handler, ...]}
        self._handlers: Dict[str, List[Handler]] = {}

    def on(self, channel: str, handler: Handler):
        handlers = self._handlers.setdefault(channel, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, channel: str, handler: Handler):
        handlers = self._handlers.get(channel)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)
        if not handlers:
            del self._handlers[channel]

    def emit(self, channel: str, event: Event) -> int:
        """등록된 핸들러에 이벤트 전달, 전달된 핸들러 수 반환"""
        delivered = 0
        for handler in list(self._handlers.get(channel, ())):
            try:
                handler(event)
                delivered += 1
            except Exception as e:
                logger.warning(f"Handler failed on channel {channel}: {e}", exc_info=True)
        return delivered

    def listener_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, ()))


class EventBus:
    """로컬 디스패처 + 선택적 브로커 릴레이"""

    def __init__(
        self,
        dispatcher: Optional[LocalEventDispatcher] = None,
        relay: Optional[BrokerRelay] = None
    ):
        self.dispatcher = dispatcher or LocalEventDispatcher()
        self.relay = relay
        # 프로세스 단위 채널 구독 참조 카운트
        self._subscriptions: Dict[str, int] = {}
        # 브로커 구독이 실제로 성공한 채널
        self._broker_channels: Set[str] = set()
        self._lock = asyncio.Lock()
        self._started = False

    @property
    def is_distributed(self) -> bool:
        return self.relay is not None

    async def start(self):
        """릴레이 시작 (브로커 수신 → 로컬 재전파)"""
        if self._started:
            return
        if self.relay:
            await self.relay.start(self.dispatcher.emit)
            logger.info("Event bus started with broker relay")
        else:
            logger.info("Event bus started in local-only mode")
        self._started = True

    async def close(self):
        if self.relay:
            try:
                await self.relay.close()
            except Exception as e:
                logger.error(f"Error closing broker relay: {e}")
        self._subscriptions.clear()
        self._broker_channels.clear()
        self._started = False
        logger.info("Event bus closed")

    def on(self, channel: str, handler: Handler):
        self.dispatcher.on(channel, handler)

    def off(self, channel: str, handler: Handler):
        self.dispatcher.off(channel, handler)

    async def publish(self, channel: str, event: Event) -> bool:
        """
        이벤트 발행 (best-effort)

        Returns:
            발행 성공 여부. 실패는 경고 로그 후 무시됩니다.
        """
        if self.relay is None:
            self.dispatcher.emit(channel, event)
            return True

        try:
            await self.relay.publish(channel, event)
            return True
        except Exception as e:
            logger.warning(f"Failed to publish event to channel {channel}: {e}")
            return False

    async def subscribe(self, channel: str):
        """
        채널 구독 (프로세스 단위 참조 카운트)

        브로커 구독이 실패한 채널은 다음 subscribe 호출에서 다시 시도합니다.
        """
        async with self._lock:
            if self.relay is not None and channel not in self._broker_channels:
                try:
                    await self.relay.subscribe(channel)
                    self._broker_channels.add(channel)
                    logger.debug(f"Subscribed to broker channel {channel}")
                except Exception as e:
                    logger.warning(f"Failed to subscribe to broker channel {channel}: {e}")
            # 취소된 경우 카운트는 변경되지 않음
            self._subscriptions[channel] = self._subscriptions.get(channel, 0) + 1

    async def unsubscribe(self, channel: str):
        async with self._lock:
            count = self._subscriptions.get(channel, 0)
            if count == 0:
                return
            if count > 1:
                self._subscriptions[channel] = count - 1
                return
            del self._subscriptions[channel]
            if channel not in self._broker_channels:
                return
            self._broker_channels.discard(channel)
            try:
                await self.relay.unsubscribe(channel)
                logger.debug(f"Unsubscribed from broker channel {channel}")
            except Exception as e:
                logger.warning(f"Failed to unsubscribe from broker channel {channel}: {e}")

    def subscription_count(self, channel: str) -> int:
        return self._subscriptions.get(channel, 0)
