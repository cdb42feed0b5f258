"""Compaction 이벤트 스키마"""

from datetime import datetime

from pydantic import BaseModel, Field

from src.utils.datetime import utc_now


class CompactEvent(BaseModel):
    """메타데이터 compaction 요청 이벤트"""

    bucket: str
    trigger: str = Field(default="manual", description="segment|manual|api")
    dry_run: bool = Field(default=False, description="True면 병합 결과만 계산, baseline 쓰기/세그먼트 삭제 건너뜀")
    timestamp: datetime = Field(default_factory=utc_now)


class CompactResult(BaseModel):
    """Compact 결과"""

    status: str
    bucket: str = ""
    merged: int
    records: int = 0
    deleted: int
    deleted_keys: list[str] = []
