"""
API 요청 로깅 미들웨어

모든 API 요청과 응답을 구조화된 형태로 로깅합니다.
"""

import time
import uuid
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from roomcast.core.logging import get_logger, set_request_context, clear_request_context, log_api_call

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
SENSITIVE_HEADERS = {"authorization", "cookie", "x-admin-secret"}


def get_client_ip(request: Request) -> str:
    """클라이언트 IP 주소 추출"""
    # 프록시/로드밸런서 사용 시 첫 번째 IP가 실제 클라이언트 IP
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client is not None:
        return request.client.host

    return "unknown"


class LoggingMiddleware(BaseHTTPMiddleware):
    """API 요청/응답 로깅 미들웨어"""

    def __init__(self, app, log_requests: bool = True):
        super().__init__(app)
        self.log_requests = log_requests

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        start_time = time.time()

        set_request_context(request_id)

        if self.log_requests:
            self._log_request(request, request_id)

        try:
            response = await call_next(request)

            duration_ms = (time.time() - start_time) * 1000
            response.headers[REQUEST_ID_HEADER] = request_id

            # SSE 응답은 헤더 전송 시점까지의 시간
            log_api_call(
                logger,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                request_id=request_id,
                query_params=dict(request.query_params) if request.query_params else None,
                user_agent=request.headers.get("user-agent"),
                client_ip=get_client_ip(request)
            )

            return response

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000

            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={
                    "event_type": "api_error",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": duration_ms,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "client_ip": get_client_ip(request)
                },
                exc_info=True
            )

            raise

        finally:
            clear_request_context()

    def _log_request(self, request: Request, request_id: str):
        """요청 정보 로깅 (민감한 헤더 제외)"""
        filtered_headers = {
            name: "***REDACTED***" if name.lower() in SENSITIVE_HEADERS else value
            for name, value in request.headers.items()
        }

        logger.debug(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "event_type": "request_started",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "headers": filtered_headers,
                "client_ip": get_client_ip(request)
            }
        )
