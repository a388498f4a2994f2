"""
Redis 연결 설정 및 관리

채팅방 저장소와 이벤트 브로커가 공유하는 Redis 연결을 제공합니다.
클라이언트는 프로세스 시작 시 1회 생성되어 명시적으로 전달됩니다.
"""

import asyncio
from typing import Optional

import redis.asyncio as redis
from redis.asyncio import ConnectionPool
from redis.exceptions import ConnectionError

from roomcast.core.config import Settings
from roomcast.core.logging import get_logger

logger = get_logger(__name__)


def create_redis_pool(settings: Settings) -> ConnectionPool:
    """Redis 연결 풀 생성"""
    pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        decode_responses=True,  # 자동으로 bytes를 string으로 디코딩
        encoding='utf-8'
    )
    logger.info(f"Redis connection pool created with max {settings.redis_max_connections} connections")
    return pool


async def init_redis(settings: Settings) -> redis.Redis:
    """Redis 연결 초기화"""
    pool = create_redis_pool(settings)
    client = redis.Redis(connection_pool=pool)

    try:
        # 연결 테스트
        await client.ping()
    except ConnectionError as e:
        logger.error(f"Redis connection failed: {e}")
        await pool.aclose()
        raise

    info = await client.info()
    logger.info(f"Redis connection initialized, server version: {info.get('redis_version', 'unknown')}")
    return client


async def close_redis(client: Optional[redis.Redis]):
    """Redis 연결 종료"""
    if client is None:
        return
    try:
        await client.aclose()
        await client.connection_pool.aclose()
        logger.info("Redis client closed")
    except Exception as e:
        logger.error(f"Error closing Redis connections: {e}")


async def health_check(client: redis.Redis) -> dict:
    """Redis 헬스 체크"""
    try:
        start_time = asyncio.get_running_loop().time()
        await client.ping()
        ping_time = (asyncio.get_running_loop().time() - start_time) * 1000

        return {
            "status": "healthy",
            "ping_ms": round(ping_time, 2),
        }

    except Exception as e:
        logger.error(f"Redis health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": str(e)
        }
