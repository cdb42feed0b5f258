"""컨텐츠 레지스트리 스키마"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterator

from pydantic import BaseModel


class ObjectRef(BaseModel):
    """저장소 객체 참조"""

    id: str
    content_type: str
    last_modified: datetime


class Content(BaseModel):
    """원본과 썸네일 한 쌍"""

    original: ObjectRef
    thumbnail: ObjectRef


@dataclass
class ObjectHead:
    content_type: str
    content_length: int
    last_modified: datetime


@dataclass
class ObjectStream:
    """저장소 다운로드 결과 (본문은 호출자가 소비 후 닫아야 함)"""

    body: Any
    content_type: str | None = None
    content_length: int | None = None
    content_range: str | None = None
    last_modified: datetime | None = None

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        try:
            if hasattr(self.body, "iter_chunks"):
                yield from self.body.iter_chunks(chunk_size)
                return
            while chunk := self.body.read(chunk_size):
                yield chunk
        finally:
            self.close()

    def read(self) -> bytes:
        try:
            return self.body.read()
        finally:
            self.close()

    def close(self) -> None:
        close = getattr(self.body, "close", None)
        if close is not None:
            close()
