"""
Redis Pub/Sub 브로커 릴레이

프로세스당 하나의 pub/sub 연결을 공유하고, 수신한 이벤트를
로컬 디스패처로 재전파합니다.
"""

import asyncio
import json
from typing import Optional

import redis.asyncio as redis
from redis.exceptions import RedisError

from roomcast.core.logging import get_logger
from roomcast.events.bus import Deliver, Event

logger = get_logger(__name__)


class RedisPubSubRelay:
    """Redis Pub/Sub 기반 브로커 릴레이"""

    def __init__(
        self,
        redis_client: redis.Redis,
        channel_prefix: str = "roomcast:events:",
        poll_timeout: float = 1.0
    ):
        self.redis = redis_client
        self.channel_prefix = channel_prefix
        self.poll_timeout = poll_timeout
        self._deliver: Optional[Deliver] = None
        self._pubsub = None
        self._task: Optional[asyncio.Task] = None
        self._running = False

    def _broker_channel(self, channel: str) -> str:
        return f"{self.channel_prefix}{channel}"

    async def start(self, deliver: Deliver):
        if self._running:
            logger.warning("Redis relay already started")
            return
        self._deliver = deliver
        self._pubsub = self.redis.pubsub()
        self._running = True
        logger.info("Redis pub/sub relay started")

    async def publish(self, channel: str, event: Event):
        receivers = await self.redis.publish(self._broker_channel(channel), json.dumps(event))
        logger.debug(f"Published event to {channel}, {receivers} broker subscribers")

    async def subscribe(self, channel: str):
        if not self._running:
            raise RuntimeError("Relay not started. Call start() first.")
        await self._pubsub.subscribe(self._broker_channel(channel))
        # 연결은 첫 subscribe 시점에 생성되므로 리스너도 그 이후에 시작
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._listen())

    async def unsubscribe(self, channel: str):
        if self._pubsub is None:
            return
        await self._pubsub.unsubscribe(self._broker_channel(channel))

    async def close(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        if self._pubsub is not None:
            try:
                await self._pubsub.unsubscribe()
                await self._pubsub.aclose()
            except Exception as e:
                logger.error(f"Error closing pubsub: {e}")
            self._pubsub = None
        logger.info("Redis pub/sub relay stopped")

    async def _listen(self):
        """브로커 메시지 수신 루프"""
        logger.debug("Redis relay listener started")
        while self._running:
            try:
                if not self._pubsub.subscribed:
                    await asyncio.sleep(self.poll_timeout)
                    continue

                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self.poll_timeout
                )
                if message is None or message.get("type") != "message":
                    continue

                self._dispatch(message)

            except asyncio.CancelledError:
                raise
            except RedisError as e:
                logger.warning(f"Redis relay receive failed: {e}")
                await asyncio.sleep(self.poll_timeout)

    def _dispatch(self, message: dict):
        channel = message["channel"]
        data = message["data"]
        if isinstance(channel, bytes):
            channel = channel.decode("utf-8")
        if isinstance(data, bytes):
            data = data.decode("utf-8")

        try:
            event = json.loads(data)
        except json.JSONDecodeError as e:
            logger.error(f"Dropping malformed event on {channel}: {e}")
            return

        local_channel = channel[len(self.channel_prefix):]
        self._deliver(local_channel, event)
