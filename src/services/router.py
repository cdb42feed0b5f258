"""이벤트 라우터 - 네임스페이스별 분류 후 프리뷰 생성 또는 compaction으로 전달"""

import logging
from collections import defaultdict

from src.exceptions import EventBatchError, StorageFailure
from src.schema.v1.storage_event import Event, EventType, RouteResult
from src.services.compact import CompactService
from src.services.derivation import DerivationService
from src.services.wal import MetaNamespace, WalSegmentWriter

logger = logging.getLogger(__name__)


class EventRouter:
    """저장소 변경 이벤트 배치 처리

    - content 네임스페이스: 프리뷰 생성 -> WAL 세그먼트 기록 -> 이전 프리뷰 삭제
    - 메타 네임스페이스: WAL 세그먼트 생성만 compaction 트리거.
      baseline(meta.json) 생성은 절대 다시 처리하지 않음 (compaction 무한 루프 방지)
    """

    def __init__(
        self,
        derivation_service: DerivationService,
        wal_writer: WalSegmentWriter,
        compact_service: CompactService,
        namespace: MetaNamespace,
        content_prefix: str = "content",
    ):
        self._derivation = derivation_service
        self._wal = wal_writer
        self._compact = compact_service
        self._ns = namespace
        self._content_prefix = content_prefix.strip("/")

    def _is_content(self, key: str) -> bool:
        return key.startswith(f"{self._content_prefix}/")

    def classify(self, events: list[Event]) -> tuple[dict[str, list[Event]], set[str], int]:
        """버킷별 content 이벤트, compaction 대상 버킷, 무시한 이벤트 수"""
        content_events = defaultdict(list)
        compact_buckets = set()
        ignored = 0

        for event in events:
            if self._is_content(event.object_id):
                content_events[event.bucket].append(event)
            elif (
                self._ns.contains(event.object_id)
                and event.type == EventType.CREATED
                and self._ns.is_segment(event.object_id)
            ):
                compact_buckets.add(event.bucket)
            else:
                logger.debug(f"Ignoring {event.type.value} s3://{event.bucket}/{event.object_id}")
                ignored += 1

        return dict(content_events), compact_buckets, ignored

    async def route(self, events: list[Event]) -> RouteResult:
        """배치 처리

        버킷 단위로 격리하여 처리하고, 실패한 버킷이 있으면 마지막에
        EventBatchError를 발생시켜 배치 전체를 재시도하게 합니다.
        재처리는 WAL 병합이 멱등이므로 안전합니다.
        """
        content_events, compact_buckets, ignored = self.classify(events)
        result = RouteResult(ignored=ignored)
        failed = {}

        for bucket, bucket_events in content_events.items():
            try:
                batch = await self._derivation.process(bucket, bucket_events)
                key = await self._wal.write(bucket, batch.deltas)
            except StorageFailure as e:
                logger.error(f"Event processing failed for {bucket}: {e}")
                failed[bucket] = str(e)
                continue
            # 세그먼트가 기록된 뒤에만 이전 프리뷰 삭제
            await self._derivation.discard_previews(bucket, batch.stale_previews)
            if key:
                result.segments.append(key)

        for bucket in sorted(compact_buckets):
            try:
                await self._compact.run(bucket)
            except StorageFailure as e:
                logger.error(f"Compaction failed for {bucket}: {e}")
                failed[bucket] = str(e)
                continue
            result.compacted.append(bucket)

        logger.info(
            f"Routed {len(events)} events: segments={len(result.segments)} "
            f"compacted={result.compacted} ignored={ignored}"
        )

        if failed:
            raise EventBatchError(failed)
        return result
