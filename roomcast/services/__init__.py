"""
Services layer for room state and real-time delivery.

This layer handles:
- Presence bookkeeping
- Per-connection stream sessions
- Room lifecycle operations and expiry sweep
"""

from .presence import PresenceTracker
from .room_lifecycle import RoomLifecycle
from .room_sweeper import RoomSweeper
from .stream_session import SessionState, StreamSession

__all__ = [
    "PresenceTracker",
    "RoomLifecycle",
    "RoomSweeper",
    "SessionState",
    "StreamSession",
]
