"""
Room API - 채팅방 관련 API 엔드포인트

라우트는 요청 파싱과 응답 변환만 담당하고, 모든 연산은 RoomLifecycle 에 위임합니다.
"""

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Header, Query, Request, status
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from roomcast.api.dependencies import get_lifecycle
from roomcast.core.logging import get_logger
from roomcast.middleware.logging_middleware import get_client_ip
from roomcast.schemas.room import (
    CreateRoomRequest, CreateRoomResponse, DeleteRoomRequest, JoinRoomRequest,
    JoinRoomResponse, Message, Room, RoomSummary, SendMessageRequest,
    SuccessResponse, TypingRequest
)
from roomcast.services.room_lifecycle import RoomLifecycle

logger = get_logger(__name__)

router = APIRouter(prefix="/rooms", tags=["Rooms"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Nginx 버퍼링 비활성화
}


@router.post(
    "",
    response_model=CreateRoomResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED
)
async def create_room(
    payload: CreateRoomRequest,
    lifecycle: RoomLifecycle = Depends(get_lifecycle)
) -> CreateRoomResponse:
    """
    채팅방 생성

    - **name**: 채팅방 이름
    - **creatorName**: 생성자 이름 (첫 참여자, 접속자로 등록)

    응답의 **adminSecret** 은 이 시점에만 반환됩니다.
    """
    return await lifecycle.create(payload.name, payload.creator_name)


@router.get("", response_model=List[RoomSummary])
async def list_rooms(lifecycle: RoomLifecycle = Depends(get_lifecycle)) -> List[RoomSummary]:
    """만료되지 않은 채팅방 목록 (최신순, 메시지 제외)"""
    return await lifecycle.list_rooms()


@router.get("/{room_id}", response_model=Room, response_model_exclude_none=True)
async def get_room(room_id: str, lifecycle: RoomLifecycle = Depends(get_lifecycle)) -> Room:
    return await lifecycle.get_room(room_id)


@router.delete("/{room_id}", response_model=SuccessResponse)
async def delete_room(
    room_id: str,
    request: Request,
    payload: Optional[DeleteRoomRequest] = Body(None),
    admin_secret_header: Optional[str] = Header(None, alias="X-Admin-Secret"),
    admin_secret_query: Optional[str] = Query(None, alias="adminSecret"),
    lifecycle: RoomLifecycle = Depends(get_lifecycle)
) -> SuccessResponse:
    """
    채팅방 삭제

    관리자 시크릿은 X-Admin-Secret 헤더, adminSecret 쿼리, 본문 순으로 확인합니다.
    """
    admin_secret = admin_secret_header or admin_secret_query
    if admin_secret is None and payload is not None:
        admin_secret = payload.admin_secret

    await lifecycle.delete_room(room_id, admin_secret, ip_address=get_client_ip(request))
    return SuccessResponse()


@router.post("/{room_id}/join", response_model=JoinRoomResponse)
async def join_room(
    room_id: str,
    payload: JoinRoomRequest,
    lifecycle: RoomLifecycle = Depends(get_lifecycle)
) -> JoinRoomResponse:
    await lifecycle.join(room_id, payload.user_name)
    return JoinRoomResponse(room_id=room_id)


@router.get("/{room_id}/messages", response_model=List[Message], response_model_exclude_none=True)
async def get_messages(room_id: str, lifecycle: RoomLifecycle = Depends(get_lifecycle)) -> List[Message]:
    """채팅방 메시지 조회 (추가 순서)"""
    return await lifecycle.get_messages(room_id)


@router.post(
    "/{room_id}/messages",
    response_model=Message,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED
)
async def send_message(
    room_id: str,
    payload: SendMessageRequest,
    lifecycle: RoomLifecycle = Depends(get_lifecycle)
) -> Message:
    """
    메시지 전송

    - **senderId** / **senderName**: 발신자
    - **content**: 메시지 내용 (첨부가 있으면 생략 가능)
    - **attachment**: 인코딩된 첨부 (선택사항)
    """
    return await lifecycle.append_message(
        room_id,
        sender_id=payload.sender_id,
        sender_name=payload.sender_name,
        content=payload.content,
        attachment=payload.attachment,
    )


@router.post("/{room_id}/typing", response_model=SuccessResponse)
async def set_typing(
    room_id: str,
    payload: TypingRequest,
    lifecycle: RoomLifecycle = Depends(get_lifecycle)
) -> SuccessResponse:
    """입력 중 상태 전송 (저장하지 않음)"""
    await lifecycle.set_typing(room_id, payload.user_name, payload.is_typing)
    return SuccessResponse()


@router.get("/{room_id}/sse")
async def stream_room_events(
    room_id: str,
    user_name: Optional[str] = Query(None, alias="userName"),
    lifecycle: RoomLifecycle = Depends(get_lifecycle)
):
    """
    채팅방 실시간 이벤트 스트림 (SSE)

    - 기본 이벤트: 새 메시지 (`data: <Message>`)
    - `event: typing`: 입력 중 상태
    - `event: presence`: 접속자 변화 (연결 직후 init 스냅샷 1회)

    연결 종료 시 EventSourceResponse가 스트림을 취소하고, 세션 정리는
    frames()의 finally에서 수행됩니다. keep-alive는 세션이 직접 전송합니다.

    Example:
        ```javascript
        const eventSource = new EventSource(`/rooms/${roomId}/sse?userName=${name}`);
        eventSource.addEventListener('presence', (e) => console.log(JSON.parse(e.data)));
        ```
    """
    session = await lifecycle.open_stream(room_id, user_name)
    return EventSourceResponse(
        session.frames(),
        headers=SSE_HEADERS,
        ping=3600,
        background=BackgroundTask(session.close)  # 본문 시작 전 종료된 경우 대비
    )
