from .room import (
    CamelModel,
    CreateRoomRequest,
    CreateRoomResponse,
    DeleteRoomRequest,
    JoinRoomRequest,
    JoinRoomResponse,
    Message,
    MessageDraft,
    PresenceEvent,
    Room,
    RoomRecord,
    RoomSummary,
    SendMessageRequest,
    SuccessResponse,
    TypingEvent,
    TypingRequest,
)

__all__ = [
    "CamelModel",
    "CreateRoomRequest",
    "CreateRoomResponse",
    "DeleteRoomRequest",
    "JoinRoomRequest",
    "JoinRoomResponse",
    "Message",
    "MessageDraft",
    "PresenceEvent",
    "Room",
    "RoomRecord",
    "RoomSummary",
    "SendMessageRequest",
    "SuccessResponse",
    "TypingEvent",
    "TypingRequest",
]
