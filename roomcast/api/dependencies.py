"""
API Dependencies

app.state 에 조립된 서비스를 라우트에 주입합니다.
"""

from fastapi import Depends, Request

from roomcast.container import RoomServices
from roomcast.services.room_lifecycle import RoomLifecycle


def get_services(request: Request) -> RoomServices:
    """lifespan 에서 생성된 RoomServices 반환"""
    return request.app.state.services


def get_lifecycle(services: RoomServices = Depends(get_services)) -> RoomLifecycle:
    return services.lifecycle
