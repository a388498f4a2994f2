from typing import List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """camelCase 와이어 포맷 공통 설정"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        """경계 계층/저장소/브로커로 전달되는 JSON 호환 dict"""
        return self.model_dump(by_alias=True, exclude_none=True)


# =============================================================================
# 도메인 모델
# =============================================================================

class MessageDraft(CamelModel):
    """저장 전 메시지 (id/timestamp 미할당)"""
    sender_id: str
    sender_name: str
    content: str = ""
    attachment: Optional[str] = Field(None, description="전송용으로 인코딩된 첨부 (예: base64 이미지)")

    def is_empty(self) -> bool:
        return not self.content and not self.attachment


class Message(MessageDraft):
    """채팅방에 추가된 메시지 (불변)"""
    id: str
    timestamp: int = Field(..., description="epoch millis, 추가 시점에 할당")


class RoomSummary(CamelModel):
    """목록 조회용 채팅방 (메시지 제외)"""
    id: str
    name: str
    created_at: int = Field(..., description="epoch millis")
    users: List[str] = Field(default_factory=list)
    active_users: List[str] = Field(default_factory=list)


class Room(RoomSummary):
    """채팅방 (관리자 시크릿 제외)"""
    messages: List[Message] = Field(default_factory=list)


class RoomRecord(Room):
    """저장소 내부 레코드 - admin_secret 포함, 저장소 밖으로 노출 금지"""
    admin_secret: str

    def to_room(self) -> Room:
        return Room.model_validate(self.model_dump(exclude={"admin_secret"}))

    def to_summary(self) -> RoomSummary:
        return RoomSummary.model_validate(self.model_dump(exclude={"admin_secret", "messages"}))


# =============================================================================
# 이벤트 (발행 전용, 저장하지 않음)
# =============================================================================

class PresenceEvent(CamelModel):
    """접속자 변화 이벤트"""
    type: Literal["join", "leave", "init"]
    user_name: Optional[str] = None
    active_users: List[str]


class TypingEvent(CamelModel):
    """입력 중 표시 이벤트"""
    room_id: str
    user_name: str
    is_typing: bool


# =============================================================================
# 요청/응답 스키마
# =============================================================================

class CreateRoomRequest(CamelModel):
    name: Optional[str] = None
    creator_name: Optional[str] = None


class CreateRoomResponse(Room):
    """생성 직후 1회만 admin_secret 반환"""
    admin_secret: str


class JoinRoomRequest(CamelModel):
    user_name: Optional[str] = None


class JoinRoomResponse(CamelModel):
    success: bool = True
    room_id: str


class SendMessageRequest(CamelModel):
    sender_id: Optional[str] = None
    sender_name: Optional[str] = None
    content: Optional[str] = None
    attachment: Optional[str] = None


class TypingRequest(CamelModel):
    user_name: Optional[str] = None
    is_typing: bool = False


class DeleteRoomRequest(CamelModel):
    admin_secret: Optional[str] = None


class SuccessResponse(CamelModel):
    success: bool = True
