from .bus import EventBus, LocalEventDispatcher, room_channels
from .redis_relay import RedisPubSubRelay

__all__ = [
    "EventBus",
    "LocalEventDispatcher",
    "RedisPubSubRelay",
    "room_channels",
]
