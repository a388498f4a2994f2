"""
roomcast Configuration

환경 변수(.env 포함)를 통한 설정 관리
"""

from functools import lru_cache
from typing import List, Literal, Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()  # .env 파일 로드


class Settings(BaseSettings):
    """roomcast 설정"""

    # Application
    app_name: str = "roomcast"
    version: str = "1.0.0"
    debug: bool = False

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    # Storage / Broker
    storage_backend: Literal["memory", "redis"] = "memory"
    broker_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 50
    redis_key_prefix: str = "roomcast"

    # Rooms
    room_ttl_seconds: int = 86400  # 24시간
    sweep_interval_seconds: int = 60

    # Streaming
    keepalive_interval_seconds: float = 15.0
    stream_queue_size: int = 256

    # Metrics
    metrics_enabled: bool = True

    # CORS
    cors_origins: List[str] = ["http://localhost:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # 추가 환경변수 무시

    @property
    def uses_redis(self) -> bool:
        return self.storage_backend == "redis" or self.broker_enabled


@lru_cache
def get_settings() -> Settings:
    """Settings 인스턴스 반환 (프로세스당 1회 생성)"""
    return Settings()
