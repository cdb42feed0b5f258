"""WAL 세그먼트 기록"""

import logging
import uuid

from src.external_service.s3 import S3Service
from src.schema.v1.meta import MetaRecord

logger = logging.getLogger(__name__)


class MetaNamespace:
    """파생 메타데이터 네임스페이스 키 규칙

    {prefix}/meta.json          baseline
    {prefix}/wal/{uuid}.json    WAL 세그먼트
    {prefix}/preview/{uuid}     프리뷰
    """

    def __init__(self, prefix: str = "meta"):
        self.prefix = prefix.strip("/")

    @property
    def baseline_key(self) -> str:
        return f"{self.prefix}/meta.json"

    @property
    def wal_prefix(self) -> str:
        return f"{self.prefix}/wal/"

    @property
    def preview_prefix(self) -> str:
        return f"{self.prefix}/preview/"

    def contains(self, key: str) -> bool:
        return key.startswith(f"{self.prefix}/")

    def is_segment(self, key: str) -> bool:
        return key.startswith(self.wal_prefix) and key.endswith(".json")

    def new_segment_key(self) -> str:
        return f"{self.wal_prefix}{uuid.uuid4().hex}.json"

    def preview_key(self, preview_id: str) -> str:
        return f"{self.preview_prefix}{preview_id}"


class WalSegmentWriter:
    """배치 하나의 delta를 새 세그먼트 문서 하나로 기록 (생성 후 불변)"""

    def __init__(self, s3_service: S3Service, namespace: MetaNamespace):
        self._s3 = s3_service
        self._ns = namespace

    async def write(self, bucket: str, deltas: list[MetaRecord]) -> str | None:
        """세그먼트 기록 후 키 반환 (delta 없으면 None)"""
        if not deltas:
            return None

        key = self._ns.new_segment_key()
        await self._s3.put_json(key, [delta.to_document() for delta in deltas], bucket=bucket)
        logger.info(f"WAL segment written: s3://{bucket}/{key} ({len(deltas)} deltas)")
        return key
