"""메타데이터 스키마 (baseline / WAL 세그먼트)"""

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")

STAMPED_FIELDS = (
    "object_content_type",
    "last_modified",
    "preview_id",
    "preview_content_type",
    "deleted",
)


class Stamped(BaseModel, Generic[T]):
    """값과 그 값의 갱신 시각

    필드 자체가 None이면 "값 없음"이며, 삭제를 의미하지 않습니다.
    """

    value: T
    ts: datetime


class MetaRecord(BaseModel):
    """객체 하나의 메타데이터 (baseline 레코드 또는 부분 delta)"""

    # content 네임스페이스 프리픽스를 제외한 객체 이름
    object_id: str
    object_content_type: Stamped[str] | None = None
    last_modified: Stamped[datetime] | None = None
    # meta/preview/ 프리픽스를 제외한 프리뷰 ID
    preview_id: Stamped[str] | None = None
    preview_content_type: Stamped[str] | None = None
    deleted: Stamped[bool] | None = None

    def merge(self, delta: "MetaRecord") -> "MetaRecord":
        """필드별 LWW 병합 - 더 큰 timestamp만 반영"""
        updates = {}
        for name in STAMPED_FIELDS:
            incoming = getattr(delta, name)
            if incoming is None:
                continue
            current = getattr(self, name)
            if current is None or incoming.ts > current.ts:
                updates[name] = incoming
        if not updates:
            return self
        return self.model_copy(update=updates)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)
