import traceback
from typing import Callable
from fastapi import Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from roomcast.core.errors import (
    BaseCustomException,
    ValidationError,
    create_error_response,
    create_validation_error_response
)
from roomcast.core.logging import get_logger

logger = get_logger(__name__)


def _validation_errors(errors) -> list:
    validation_errors = []
    for error in errors:
        field_name = ".".join(str(loc) for loc in error["loc"])
        validation_errors.append(
            ValidationError(
                field=field_name,
                message=error["msg"],
                value=error.get("input")
            )
        )
    return validation_errors


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    통합 에러 처리 미들웨어

    라우트 밖으로 전파된 예외를 표준화된 에러 응답으로 변환합니다.
    """

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            response = await call_next(request)
            return response

        except BaseCustomException as e:
            return JSONResponse(
                status_code=e.status_code,
                content=e.to_dict()
            )

        except PydanticValidationError as e:
            error_response = create_validation_error_response(
                "Request validation failed",
                _validation_errors(e.errors())
            )
            return JSONResponse(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                content=error_response.model_dump(mode="json")
            )

        except RedisError as e:
            # 저장소 계층에서 변환되지 않은 Redis 장애
            logger.error(f"Redis error: {type(e).__name__}: {e}")
            error_response = create_error_response(
                "transient_error",
                "Storage temporarily unavailable",
                status.HTTP_503_SERVICE_UNAVAILABLE,
                {"detail": str(e) if self.debug else None}
            )
            return JSONResponse(
                status_code=error_response.status_code,
                content=error_response.model_dump()
            )

        except Exception as e:
            error_detail = None
            if self.debug:
                error_detail = {
                    "exception": str(e),
                    "type": type(e).__name__,
                    "traceback": traceback.format_exc()
                }

            error_response = create_error_response(
                "internal_server_error",
                "An unexpected error occurred",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                error_detail
            )

            logger.error(f"Unhandled exception: {type(e).__name__}: {e}", exc_info=True)

            return JSONResponse(
                status_code=error_response.status_code,
                content=error_response.model_dump()
            )


def create_http_exception_handler():
    """FastAPI HTTPException 핸들러 생성"""
    async def http_exception_handler(request: Request, exc):
        """HTTPException을 표준 형식으로 변환"""

        # 커스텀 예외인 경우 그대로 반환
        if isinstance(exc, BaseCustomException):
            return JSONResponse(
                status_code=exc.status_code,
                content=exc.to_dict()
            )

        # 일반 HTTPException인 경우 표준 형식으로 변환
        error_response = create_error_response(
            "http_error",
            exc.detail if isinstance(exc.detail, str) else "HTTP error occurred",
            exc.status_code,
            {"detail": exc.detail} if not isinstance(exc.detail, str) else None
        )

        return JSONResponse(
            status_code=exc.status_code,
            content=error_response.model_dump(),
            headers=getattr(exc, "headers", None)
        )

    return http_exception_handler


def create_request_validation_handler():
    """요청 본문/파라미터 검증 실패 핸들러"""
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        error_response = create_validation_error_response(
            "Request validation failed",
            _validation_errors(exc.errors())
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_response.model_dump(mode="json")
        )

    return request_validation_handler
