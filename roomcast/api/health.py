from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from roomcast.api.dependencies import get_services
from roomcast.container import RoomServices

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(services: RoomServices = Depends(get_services)):
    """Application health check endpoint"""
    health = await services.health()

    return {
        "status": "healthy" if health["healthy"] else "unhealthy",
        "timestamp": datetime.now(timezone.utc),
        "storage": health["storage"],
        "broker": health["broker"],
        "redis": health["redis"],
        "service": services.settings.app_name,
        "version": services.settings.version
    }


@router.get("/health/ready")
async def readiness_check(services: RoomServices = Depends(get_services)):
    """Kubernetes readiness probe endpoint"""
    health = await services.health()

    if not health["healthy"]:
        raise HTTPException(
            status_code=503,
            detail="Service not ready - storage connection failed"
        )

    return {"status": "ready"}


@router.get("/health/live")
async def liveness_check():
    """Kubernetes liveness probe endpoint"""
    return {"status": "alive", "timestamp": datetime.now(timezone.utc)}
