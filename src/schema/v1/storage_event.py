"""저장소 변경 이벤트 스키마"""

from enum import Enum

from pydantic import BaseModel, Field

from src.exceptions import ClassificationError


class EventType(str, Enum):
    CREATED = "created"
    DELETED = "deleted"


# 트리거가 보내는 이벤트 타입 -> 내부 타입
EVENT_TYPE_ALIASES = {
    "yandex.cloud.events.storage.ObjectCreate": EventType.CREATED,
    "yandex.cloud.events.storage.ObjectDelete": EventType.DELETED,
    "object_create": EventType.CREATED,
    "object_delete": EventType.DELETED,
    "created": EventType.CREATED,
    "deleted": EventType.DELETED,
}


class Event(BaseModel):
    """버킷 내 객체 생성/삭제 이벤트"""

    bucket: str
    object_id: str
    type: EventType


class EventMetadata(BaseModel):
    event_type: str
    event_id: str | None = None
    created_at: str | None = None


class ObjectDetails(BaseModel):
    bucket_id: str
    object_id: str


class StorageMessage(BaseModel):
    """스토리지 트리거 메시지 한 건"""

    event_metadata: EventMetadata
    details: ObjectDetails


class StorageEventBatch(BaseModel):
    """스토리지 트리거 요청 본문

    {"messages": [{"event_metadata": {"event_type": "..."},
                   "details": {"bucket_id": "...", "object_id": "..."}}]}
    """

    messages: list[StorageMessage] = Field(default_factory=list)

    def to_events(self) -> list[Event]:
        """메시지를 Event로 변환 - 알 수 없는 타입이 하나라도 있으면 배치 전체 실패"""
        events = []
        for msg in self.messages:
            event_type = EVENT_TYPE_ALIASES.get(msg.event_metadata.event_type)
            if event_type is None:
                raise ClassificationError(f"unknown event type {msg.event_metadata.event_type}")
            events.append(
                Event(
                    bucket=msg.details.bucket_id,
                    object_id=msg.details.object_id,
                    type=event_type,
                )
            )
        return events


class RouteResult(BaseModel):
    """이벤트 배치 처리 결과"""

    segments: list[str] = []
    compacted: list[str] = []
    ignored: int = 0
