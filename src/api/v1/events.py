from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends

from src.conf.container import Container
from src.schema.v1.storage_event import RouteResult, StorageEventBatch
from src.services.router import EventRouter

router = APIRouter()


@router.post("/events")
@inject
async def receive_storage_events(
    batch: StorageEventBatch,
    event_router: EventRouter = Depends(Provide[Container.event_router]),
) -> RouteResult:
    """스토리지 트리거 웹훅 - 실패 시 트리거가 배치를 재전송"""
    return await event_router.route(batch.to_events())
