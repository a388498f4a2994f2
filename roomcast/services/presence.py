"""
접속자(Presence) 관리 서비스

채팅방별 activeUsers 집합을 저장소에 반영하고,
변화를 presence:{room_id} 채널로 발행합니다.
"""

from typing import List, Optional

from roomcast.core.logging import get_logger
from roomcast.events.bus import EventBus, PRESENCE_CHANNEL
from roomcast.repositories.base import RoomRepository
from roomcast.schemas.room import PresenceEvent

logger = get_logger(__name__)


class PresenceTracker:
    """activeUsers 관리 + presence 이벤트 발행"""

    def __init__(self, repository: RoomRepository, bus: EventBus):
        self.repository = repository
        self.bus = bus

    async def add_active_user(self, room_id: str, user_name: str) -> Optional[List[str]]:
        """
        사용자를 접속 상태로 설정

        Returns:
            갱신된 activeUsers 스냅샷, 방이 없으면 None (에러 아님)
        """
        return await self._update(room_id, user_name, active=True)

    async def remove_active_user(self, room_id: str, user_name: str) -> Optional[List[str]]:
        """
        사용자를 접속 해제 상태로 설정

        연결이 이미 끊긴 뒤에도 호출되며, 퇴장을 알리는 유일한 신호이므로
        방이 존재하면 항상 leave 이벤트를 발행합니다.
        """
        return await self._update(room_id, user_name, active=False)

    async def _update(self, room_id: str, user_name: str, active: bool) -> Optional[List[str]]:
        snapshot = await self.repository.set_active(room_id, user_name, active)
        if snapshot is None:
            logger.debug(f"Presence update ignored, room {room_id} not found")
            return None

        event = PresenceEvent(
            type="join" if active else "leave",
            user_name=user_name,
            active_users=snapshot,
        )
        await self.bus.publish(PRESENCE_CHANNEL.format(room_id=room_id), event.to_wire())

        logger.info(f"User {user_name} {'joined' if active else 'left'} room {room_id}", extra={
            "room_id": room_id,
            "user_name": user_name,
            "active_count": len(snapshot),
            "event_type": "presence_join" if active else "presence_leave"
        })
        return snapshot
