"""Kafka 이벤트 핸들러 테스트"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.events.v1.compact import handle_compact
from src.events.v1.storage import handle_storage_events
from src.exceptions import EventBatchError, StorageFailure
from src.schema.v1.compact_event import CompactEvent, CompactResult
from src.schema.v1.storage_event import RouteResult, StorageEventBatch


def batch(event_type: str = "yandex.cloud.events.storage.ObjectCreate") -> StorageEventBatch:
    return StorageEventBatch.model_validate(
        {
            "messages": [
                {
                    "event_metadata": {"event_type": event_type},
                    "details": {"bucket_id": "photos", "object_id": "content/img1.jpg"},
                }
            ]
        }
    )


class TestHandleCompact:
    """compact 토픽 핸들러"""

    async def test_completed(self):
        """서비스 결과를 CompactResult로 반환"""
        mock_service = MagicMock()
        mock_service.run = AsyncMock(
            return_value={
                "status": "completed",
                "bucket": "photos",
                "merged": 3,
                "records": 2,
                "deleted": 2,
                "deleted_keys": ["meta/wal/a.json", "meta/wal/b.json"],
            }
        )

        result = await handle_compact(CompactEvent(bucket="photos", dry_run=True), compact_service=mock_service)

        mock_service.run.assert_awaited_once_with("photos", dry_run=True)
        assert isinstance(result, CompactResult)
        assert result.merged == 3
        assert result.deleted_keys == ["meta/wal/a.json", "meta/wal/b.json"]

    async def test_no_segments(self):
        """세그먼트 없을 때 결과"""
        mock_service = MagicMock()
        mock_service.run = AsyncMock(return_value={"status": "completed", "bucket": "photos", "merged": 0, "deleted": 0})

        result = await handle_compact(CompactEvent(bucket="photos"), compact_service=mock_service)

        assert result.status == "completed"
        assert result.records == 0
        assert result.deleted_keys == []

    async def test_storage_failure(self):
        """저장소 실패는 failed 결과 (세그먼트는 다음 실행에서 재병합)"""
        mock_service = MagicMock()
        mock_service.run = AsyncMock(side_effect=StorageFailure("list meta/wal/: timeout"))

        result = await handle_compact(CompactEvent(bucket="photos"), compact_service=mock_service)

        assert result.status == "failed"
        assert result.bucket == "photos"


class TestHandleStorageEvents:
    """스토리지 이벤트 토픽 핸들러"""

    async def test_routes_batch(self):
        mock_router = MagicMock()
        mock_router.route = AsyncMock(return_value=RouteResult(segments=["meta/wal/a.json"]))

        result = await handle_storage_events(batch(), event_router=mock_router)

        assert result.segments == ["meta/wal/a.json"]
        mock_router.route.assert_awaited_once()

    async def test_unclassifiable_batch_dropped(self):
        """분류 실패는 재시도 없이 버림"""
        mock_router = MagicMock()
        mock_router.route = AsyncMock()

        result = await handle_storage_events(batch("unknown"), event_router=mock_router)

        assert result is None
        mock_router.route.assert_not_called()

    async def test_storage_failure_reraised(self):
        """저장소 실패는 다시 발생시켜 재전달 유도"""
        mock_router = MagicMock()
        mock_router.route = AsyncMock(side_effect=EventBatchError({"photos": "timeout"}))

        with pytest.raises(EventBatchError):
            await handle_storage_events(batch(), event_router=mock_router)
