"""
구조화된 로깅 시스템

JSON 형식의 구조화된 로그를 제공하여 로그 분석과 모니터링을 용이하게 합니다.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# 컨텍스트 변수로 요청/스트림별 추적 정보 저장
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
room_id_var: ContextVar[Optional[str]] = ContextVar('room_id', default=None)
user_name_var: ContextVar[Optional[str]] = ContextVar('user_name', default=None)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'exc_info', 'exc_text', 'stack_info',
    'lineno', 'funcName', 'created', 'msecs', 'relativeCreated',
    'thread', 'threadName', 'processName', 'process', 'getMessage',
    'taskName', 'message', 'asctime',
}


class StructuredFormatter(logging.Formatter):
    """구조화된 JSON 로그 포매터"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        # 컨텍스트 정보 추가
        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        room_id = room_id_var.get()
        if room_id:
            log_data["room_id"] = room_id

        user_name = user_name_var.get()
        if user_name:
            log_data["user_name"] = user_name

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        # 추가 데이터 (extra 필드)
        extra_data = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith('_')
        }
        if extra_data:
            log_data["extra"] = extra_data

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", debug: bool = False, log_dir: Optional[str] = None):
    """로깅 시스템 초기화"""
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    # 기존 핸들러 제거
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if debug:
        # 개발 환경: 사람이 읽기 쉬운 형식
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    else:
        # 프로덕션 환경: 구조화된 JSON 형식
        console_handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(console_handler)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(path / "app.log", encoding='utf-8')
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

        # 에러 전용 파일 핸들러
        error_handler = logging.FileHandler(path / "error.log", encoding='utf-8')
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(error_handler)

    # 외부 라이브러리 로그 레벨 조정
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """구조화된 로거 인스턴스 반환"""
    return logging.getLogger(name)


def set_request_context(request_id: str):
    """요청 컨텍스트 설정"""
    request_id_var.set(request_id)


def clear_request_context():
    """요청 컨텍스트 초기화"""
    request_id_var.set(None)


def set_stream_context(room_id: str, user_name: Optional[str] = None):
    """스트림 컨텍스트 설정 (StreamSession 태스크 단위)"""
    room_id_var.set(room_id)
    if user_name:
        user_name_var.set(user_name)


def log_api_call(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    **extra
):
    """API 호출 로그"""
    logger.info(
        f"{method} {path} - {status_code}",
        extra={
            "event_type": "api_call",
            "method": method,
            "path": path,
            "status_code": status_code,
            "duration_ms": duration_ms,
            **extra
        }
    )


def log_room_event(
    logger: logging.Logger,
    event: str,
    room_id: str,
    **extra
):
    """채팅방 상태 변경 로그"""
    logger.info(
        f"Room {event} - {room_id}",
        extra={
            "event_type": "room",
            "event": event,
            "room_id": room_id,
            **extra
        }
    )


def log_stream_event(
    logger: logging.Logger,
    event: str,
    room_id: str,
    user_name: str,
    **extra
):
    """SSE 스트림 이벤트 로그"""
    logger.info(
        f"Stream {event} - {user_name} in Room {room_id}",
        extra={
            "event_type": "stream",
            "event": event,
            "room_id": room_id,
            "user_name": user_name,
            **extra
        }
    )


def log_security_event(
    logger: logging.Logger,
    event: str,
    severity: str = "medium",
    ip_address: Optional[str] = None,
    **extra
):
    """보안 이벤트 로그"""
    logger.warning(
        f"Security {event} - Severity: {severity}",
        extra={
            "event_type": "security",
            "event": event,
            "severity": severity,
            "ip_address": ip_address,
            **extra
        }
    )
