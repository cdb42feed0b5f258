"""Compact 서비스 - WAL 세그먼트를 baseline으로 병합"""

import logging
from typing import Iterable

from src.exceptions import CompactionConflict, NotFound
from src.external_service.s3 import S3Service
from src.schema.v1.meta import MetaRecord
from src.services.wal import MetaNamespace

logger = logging.getLogger(__name__)


def fold(baseline: dict[str, MetaRecord], deltas: Iterable[MetaRecord]) -> dict[str, MetaRecord]:
    """delta를 baseline에 필드별 LWW로 병합

    필드별 최대 timestamp 선택이므로 delta 순서와 무관하고,
    같은 delta를 다시 병합해도 결과가 변하지 않습니다.
    """
    merged = dict(baseline)
    for delta in deltas:
        current = merged.get(delta.object_id) or MetaRecord(object_id=delta.object_id)
        merged[delta.object_id] = current.merge(delta)
    return merged


class CompactService:
    """세그먼트 compaction 서비스

    동시에 여러 compaction이 돌 수 있습니다. baseline 덮어쓰기 경합은
    저장소의 last-writer-wins로 정리되며, 삭제 못 한 세그먼트는 다음 실행에서
    다시 병합되어도 무해합니다.
    """

    def __init__(self, s3_service: S3Service, namespace: MetaNamespace):
        self._s3 = s3_service
        self._ns = namespace

    async def load_baseline(self, bucket: str) -> dict[str, MetaRecord]:
        """baseline 로드 (없으면 빈 dict)"""
        try:
            document = await self._s3.get_json(self._ns.baseline_key, bucket=bucket)
        except NotFound:
            return {}
        records = [MetaRecord.model_validate(item) for item in document or []]
        return {record.object_id: record for record in records}

    async def _load_segment(self, bucket: str, key: str) -> list[MetaRecord]:
        try:
            document = await self._s3.get_json(key, bucket=bucket)
        except NotFound as e:
            raise CompactionConflict(f"segment {key} already consumed") from e
        return [MetaRecord.model_validate(item) for item in document or []]

    async def load_pending(self, bucket: str) -> tuple[list[str], list[MetaRecord]]:
        """대기 중인 세그먼트 키와 delta 목록

        Returns:
            (실제로 읽은 세그먼트 키, 이어 붙인 delta)
        """
        keys = [key for key in await self._s3.list_keys(self._ns.wal_prefix, bucket=bucket) if self._ns.is_segment(key)]

        consumed = []
        deltas = []
        for key in keys:
            try:
                deltas.extend(await self._load_segment(bucket, key))
            except CompactionConflict as e:
                logger.info(f"Skipping segment: {e}")
                continue
            consumed.append(key)
        return consumed, deltas

    async def current_view(self, bucket: str) -> dict[str, MetaRecord]:
        """baseline + 대기 세그먼트 병합 결과 (쓰기 없음)"""
        _, deltas = await self.load_pending(bucket)
        baseline = await self.load_baseline(bucket)
        return fold(baseline, deltas)

    async def run(self, bucket: str, dry_run: bool = False) -> dict:
        """Compact 실행"""
        # 1. 대기 세그먼트 로드
        consumed, deltas = await self.load_pending(bucket)
        if not consumed:
            logger.info(f"No pending segments in s3://{bucket}/{self._ns.wal_prefix}")
            return {"status": "completed", "bucket": bucket, "merged": 0, "deleted": 0}

        logger.info(f"Found {len(consumed)} segments ({len(deltas)} deltas) in {bucket}")

        # 2. baseline 로드 후 병합
        baseline = await self.load_baseline(bucket)
        merged = fold(baseline, deltas)

        if dry_run:
            return {
                "status": "dry_run",
                "bucket": bucket,
                "merged": len(deltas),
                "records": len(merged),
                "deleted": 0,
            }

        # 3. baseline 저장
        document = [merged[object_id].to_document() for object_id in sorted(merged)]
        await self._s3.put_json(self._ns.baseline_key, document, bucket=bucket)

        # 4. 소비한 세그먼트 삭제 (실패해도 다음 실행에서 다시 병합됨)
        delete_result = await self._s3.delete_objects(consumed, bucket=bucket)
        if not delete_result.get("success") or delete_result.get("errors"):
            logger.warning(f"Failed to prune segments in {bucket}: {delete_result.get('errors')}")

        deleted_keys = delete_result.get("deleted", [])
        return {
            "status": "completed",
            "bucket": bucket,
            "merged": len(deltas),
            "records": len(merged),
            "deleted": len(deleted_keys),
            "deleted_keys": deleted_keys,
        }
