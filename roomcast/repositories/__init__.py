"""
Room storage backends.

- memory: single-process dict store with per-room locks
- redis: expiring keys + live-id index, optimistic transactions
"""

from .base import DeleteOutcome, RoomRepository
from .memory import InMemoryRoomRepository
from .redis import RedisRoomRepository

__all__ = [
    "DeleteOutcome",
    "RoomRepository",
    "InMemoryRoomRepository",
    "RedisRoomRepository",
]
