"""스토리지 변경 이벤트 핸들러"""

import logging

from dependency_injector.wiring import Provide, inject

from src.conf.container import Container
from src.conf.kafka import broker
from src.conf.settings import settings
from src.exceptions import ClassificationError, StorageFailure
from src.schema.v1.storage_event import RouteResult, StorageEventBatch
from src.services.router import EventRouter

logger = logging.getLogger(__name__)


@broker.subscriber(settings.kafka_topic_storage_events, group_id=settings.kafka_consumer_group)
@inject
async def handle_storage_events(
    batch: StorageEventBatch,
    event_router: EventRouter = Provide[Container.event_router],
) -> RouteResult | None:
    """스토리지 이벤트 배치 처리

    분류 실패는 재시도해도 같으므로 기록 후 버리고,
    저장소 실패는 다시 발생시켜 배치가 재전달되게 합니다.
    """
    logger.info(f"Received storage event batch: {len(batch.messages)} messages")

    try:
        events = batch.to_events()
    except ClassificationError as e:
        logger.error(f"Dropping unclassifiable batch: {e}")
        return None

    try:
        return await event_router.route(events)
    except StorageFailure as e:
        logger.exception(f"Storage event batch failed: {e}")
        raise
