"""
만료 채팅방 정리 서비스

조회 시점의 만료 판정과 별개로, 주기적으로 만료된 방을
물리적으로 삭제하여 저장소 크기를 제한합니다.
"""

import asyncio
from typing import Optional

from roomcast.core.logging import get_logger
from roomcast.services.room_lifecycle import RoomLifecycle

logger = get_logger(__name__)


class RoomSweeper:
    """주기적 만료 정리"""

    def __init__(self, lifecycle: RoomLifecycle, interval_seconds: float = 60):
        self.lifecycle = lifecycle
        self.interval_seconds = interval_seconds
        self.running = False
        self.task: Optional[asyncio.Task] = None

    async def start(self):
        """정리 작업 시작"""
        if self.running:
            logger.warning("Room sweeper is already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Room sweeper started (interval {self.interval_seconds}s)")

    async def stop(self):
        """정리 작업 중지"""
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
            self.task = None
        logger.info("Room sweeper stopped")

    async def _sweep_loop(self):
        try:
            while self.running:
                await asyncio.sleep(self.interval_seconds)
                try:
                    await self.lifecycle.sweep_expired()
                except Exception as e:
                    logger.error(f"Error in room sweeper: {e}")

        except asyncio.CancelledError:
            logger.debug("Room sweeper cancelled")
            raise
