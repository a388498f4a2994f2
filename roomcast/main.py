"""
roomcast - FastAPI Application

익명 사용자의 단기 채팅방, 메시지 저장과 실시간 이벤트(SSE) 전송을 담당하는 서비스
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from roomcast.api import health, rooms
from roomcast.container import RoomServices, build_services
from roomcast.core.config import Settings, get_settings
from roomcast.core.logging import get_logger, setup_logging
from roomcast.middleware.error_handler import (
    ErrorHandlerMiddleware, create_http_exception_handler, create_request_validation_handler
)
from roomcast.middleware.logging_middleware import LoggingMiddleware

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[RoomServices] = None) -> FastAPI:
    """
    애플리케이션 생성

    Args:
        settings: 설정 (기본값: 환경 변수)
        services: 미리 조립된 서비스. 주어지면 lifespan 에서 생성/종료하지 않음
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifecycle management"""
        # Startup
        setup_logging(level=settings.log_level, debug=settings.debug, log_dir=settings.log_dir)
        logger.info(f"{settings.app_name} starting up...")

        owned = None
        if getattr(app.state, "services", None) is None:
            owned = await build_services(settings)
            await owned.start()
            app.state.services = owned

        yield

        # Shutdown
        logger.info(f"{settings.app_name} shutting down...")
        if owned is not None:
            await owned.close()
            app.state.services = None

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan
    )
    app.state.services = services

    # Middleware (마지막에 추가한 것이 가장 바깥)
    app.add_middleware(ErrorHandlerMiddleware, debug=settings.debug)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StarletteHTTPException, create_http_exception_handler())
    app.add_exception_handler(RequestValidationError, create_request_validation_handler())

    # Include routers
    app.include_router(health.router)
    app.include_router(rooms.router)

    # Prometheus metrics
    if settings.metrics_enabled:
        Instrumentator().instrument(app).expose(app)

    @app.get("/")
    async def root():
        return {
            "service": settings.app_name,
            "version": settings.version,
            "status": "running"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    _settings = get_settings()
    uvicorn.run(
        "roomcast.main:app",
        host=_settings.host,
        port=_settings.port,
        reload=_settings.debug
    )
