"""프리뷰 생성 워커 - content 이벤트를 메타데이터 delta로 변환"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from src.exceptions import NotFound, StorageFailure, UnsupportedMediaType
from src.external_service.s3 import S3Service
from src.external_service.thumbnail import ThumbnailService
from src.schema.v1.meta import MetaRecord, Stamped
from src.schema.v1.storage_event import Event, EventType
from src.services.compact import CompactService
from src.services.wal import MetaNamespace
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


@dataclass
class DerivationBatch:
    """배치 하나의 delta와, 세그먼트 기록 후 지울 이전 프리뷰 ID"""

    deltas: list[MetaRecord] = field(default_factory=list)
    stale_previews: list[str] = field(default_factory=list)


class DerivationService:
    """생성 이벤트 -> 프리뷰 생성 + delta, 삭제 이벤트 -> deleted delta + 프리뷰 삭제"""

    def __init__(
        self,
        s3_service: S3Service,
        thumbnail_service: ThumbnailService,
        compact_service: CompactService,
        namespace: MetaNamespace,
        content_prefix: str = "content",
        presign_ttl: int = 900,
    ):
        self._s3 = s3_service
        self._thumbnail = thumbnail_service
        self._compact = compact_service
        self._ns = namespace
        self._content_prefix = content_prefix.strip("/")
        self._presign_ttl = presign_ttl

    def object_name(self, key: str) -> str:
        """content/img1.jpg -> img1.jpg"""
        return key.removeprefix(f"{self._content_prefix}/")

    async def process(self, bucket: str, events: list[Event]) -> DerivationBatch:
        """한 버킷의 content 이벤트 처리 후 delta 반환

        UnsupportedMediaType 이벤트는 delta 없이 버립니다.
        StorageFailure는 그대로 전파되어 배치 재시도 대상이 됩니다.
        이전 프리뷰는 삭제하지 않고 stale_previews로 돌려주며, 호출자가
        세그먼트 기록 후 discard_previews로 삭제합니다.
        """
        view = await self._compact.current_view(bucket)
        # 객체 이름 -> 현재 프리뷰 ID (배치 안에서 새로 만든 프리뷰 포함)
        previews = {
            object_id: record.preview_id.value
            for object_id, record in view.items()
            if record.preview_id is not None and record.preview_id.value
        }

        batch = DerivationBatch()
        for event in events:
            name = self.object_name(event.object_id)

            if event.type == EventType.CREATED:
                delta = await self._created(bucket, event.object_id, name)
                if delta is None:
                    continue
            else:
                delta = MetaRecord(object_id=name, deleted=Stamped[bool](value=True, ts=utc_now()))

            stale = previews.pop(name, None)
            if stale:
                batch.stale_previews.append(stale)
            if delta.preview_id is not None:
                previews[name] = delta.preview_id.value

            batch.deltas.append(delta)

        return batch

    async def discard_previews(self, bucket: str, preview_ids: list[str]) -> None:
        """이전 프리뷰 삭제 (best-effort, 실패는 고아 객체로 남김)"""
        for preview_id in preview_ids:
            try:
                await self._s3.delete(self._ns.preview_key(preview_id), bucket=bucket)
            except StorageFailure as e:
                logger.warning(f"Failed to remove stale preview {preview_id} in {bucket}: {e}")
                continue
            logger.info(f"Stale preview removed: s3://{bucket}/{self._ns.preview_key(preview_id)}")

    async def _created(self, bucket: str, key: str, name: str) -> MetaRecord | None:
        try:
            head = await self._s3.head(key, bucket=bucket)
        except NotFound:
            logger.warning(f"Object s3://{bucket}/{key} vanished before preview, skipping")
            return None

        source_url = await self._s3.presign_read(key, ttl=self._presign_ttl, bucket=bucket)
        preview_id = uuid.uuid4().hex

        try:
            async with self._thumbnail.create(source_url, head.content_type) as artifact:
                await self._s3.upload_file(
                    artifact.path,
                    self._ns.preview_key(preview_id),
                    content_type=artifact.content_type,
                    bucket=bucket,
                )
                preview_content_type = artifact.content_type
        except UnsupportedMediaType as e:
            logger.warning(f"Dropping event for s3://{bucket}/{key}: {e}")
            return None

        now = utc_now()
        return MetaRecord(
            object_id=name,
            object_content_type=Stamped[str](value=head.content_type, ts=now),
            last_modified=Stamped[datetime](value=head.last_modified, ts=now),
            preview_id=Stamped[str](value=preview_id, ts=now),
            preview_content_type=Stamped[str](value=preview_content_type, ts=now),
            deleted=Stamped[bool](value=False, ts=now),
        )
