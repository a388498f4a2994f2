"""SSE 프레임 인코딩 (text/event-stream)"""

import json

from sse_starlette.sse import ServerSentEvent

FRAME_SEPARATOR = "\n"
KEEPALIVE_COMMENT = "keep-alive"


def encode_message_frame(message: dict) -> bytes:
    """기본(이름 없는) 프레임: `data: <json>`"""
    return ServerSentEvent(json.dumps(message), sep=FRAME_SEPARATOR).encode()


def encode_event_frame(event: str, payload: dict) -> bytes:
    """이름 있는 프레임: `event: <name>` + `data: <json>`"""
    return ServerSentEvent(json.dumps(payload), event=event, sep=FRAME_SEPARATOR).encode()


def encode_keepalive_frame() -> bytes:
    return ServerSentEvent(comment=KEEPALIVE_COMMENT, sep=FRAME_SEPARATOR).encode()
