"""테스트 공통 설정 및 모킹"""

import io
import json
import os
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from src.exceptions import NotFound, RangeNotSatisfiable, StorageFailure
from src.external_service.thumbnail import ThumbnailService
from src.schema.v1.content import ObjectHead, ObjectStream
from src.services.compact import CompactService
from src.services.derivation import DerivationService
from src.services.registry import ContentRegistry
from src.services.router import EventRouter
from src.services.wal import MetaNamespace, WalSegmentWriter

BUCKET = "test-bucket"


# =============================================================================
# 인메모리 저장소
# =============================================================================
class FakeS3Service:
    """S3Service와 같은 인터페이스의 인메모리 저장소

    fail_on에 연산 이름(upload, download, delete, move, list, presign, head)을
    넣으면 해당 연산이 StorageFailure를 발생시킵니다.
    """

    def __init__(self, bucket: str = BUCKET):
        self.bucket = bucket
        self.objects: dict[tuple[str, str], dict] = {}
        self.fail_on: set[str] = set()
        self.calls: list[tuple[str, str]] = []

    def _bucket(self, bucket):
        return bucket or self.bucket

    def _record(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        if operation in self.fail_on:
            raise StorageFailure(f"{operation} {key}: injected failure")

    def _get(self, bucket, key) -> dict:
        obj = self.objects.get((self._bucket(bucket), key))
        if obj is None:
            raise NotFound(f"{key}: not found")
        return obj

    # 테스트 헬퍼
    def put(self, key: str, body: bytes, content_type: str = "application/octet-stream", bucket: str | None = None):
        self.objects[(self._bucket(bucket), key)] = {
            "body": body,
            "content_type": content_type,
            "last_modified": datetime(2024, 1, 1, tzinfo=UTC),
        }

    def keys(self, prefix: str = "", bucket: str | None = None) -> list[str]:
        bucket = self._bucket(bucket)
        return sorted(k for b, k in self.objects if b == bucket and k.startswith(prefix))

    def load(self, key: str, bucket: str | None = None):
        return json.loads(self.objects[(self._bucket(bucket), key)]["body"])

    # S3Service 인터페이스
    async def head(self, key, bucket=None) -> ObjectHead:
        self._record("head", key)
        obj = self._get(bucket, key)
        return ObjectHead(
            content_type=obj["content_type"],
            content_length=len(obj["body"]),
            last_modified=obj["last_modified"],
        )

    async def download(self, key, bucket=None, byte_range=None) -> ObjectStream:
        self._record("download", key)
        obj = self._get(bucket, key)
        body = obj["body"]
        content_range = None
        if byte_range:
            start, end = byte_range.removeprefix("bytes=").split("-")
            start = int(start)
            if start >= len(body):
                raise RangeNotSatisfiable(f"download {key}: range not satisfiable")
            end = min(int(end) if end else len(body) - 1, len(body) - 1)
            content_range = f"bytes {start}-{end}/{len(body)}"
            body = body[start : end + 1]
        return ObjectStream(
            body=io.BytesIO(body),
            content_type=obj["content_type"],
            content_length=len(body),
            content_range=content_range,
            last_modified=obj["last_modified"],
        )

    async def get_document(self, key, bucket=None) -> bytes:
        stream = await self.download(key, bucket=bucket)
        return stream.read()

    async def get_json(self, key, bucket=None):
        return json.loads(await self.get_document(key, bucket=bucket))

    async def upload(self, key, content, content_type=None, bucket=None) -> str:
        self._record("upload", key)
        self.put(key, content, content_type or "application/octet-stream", bucket=bucket)
        return key

    async def put_json(self, key, document, bucket=None) -> str:
        return await self.upload(key, json.dumps(document).encode(), "application/json", bucket=bucket)

    async def upload_file(self, path, key, content_type=None, bucket=None) -> str:
        with open(path, "rb") as f:
            return await self.upload(key, f.read(), content_type, bucket=bucket)

    async def move(self, src, dst, bucket=None) -> None:
        self._record("move", src)
        obj = self._get(bucket, src)
        self.objects[(self._bucket(bucket), dst)] = obj
        del self.objects[(self._bucket(bucket), src)]

    async def delete(self, key, bucket=None) -> None:
        self._record("delete", key)
        self.objects.pop((self._bucket(bucket), key), None)

    async def delete_objects(self, keys, bucket=None) -> dict:
        try:
            for key in keys:
                self._record("delete", key)
        except StorageFailure as e:
            return {"success": False, "deleted": [], "errors": [str(e)]}
        for key in keys:
            self.objects.pop((self._bucket(bucket), key), None)
        return {"success": True, "deleted": list(keys), "errors": []}

    async def list_keys(self, prefix, bucket=None) -> list[str]:
        self._record("list", prefix)
        return self.keys(prefix, bucket=bucket)

    async def presign_read(self, key, ttl, bucket=None) -> str:
        self._record("presign", key)
        return f"https://storage.test/{self._bucket(bucket)}/{key}?X-Amz-Expires={ttl}"


class FakeThumbnailService(ThumbnailService):
    """외부 도구 대신 출력 파일만 만드는 ThumbnailService"""

    def __init__(self):
        super().__init__(ffmpeg_path="ffmpeg", magick_path="magick", timeout=5)
        self.commands: list[tuple[str, tuple[str, ...]]] = []
        self.fetched: list[str] = []

    async def _fetch(self, url: str, path: str) -> None:
        self.fetched.append(url)
        with open(path, "wb") as f:
            f.write(b"source")

    async def _run(self, prog: str, *args: str) -> None:
        self.commands.append((prog, args))
        output = args[-1]
        assert os.path.isdir(os.path.dirname(output))
        with open(output, "wb") as f:
            f.write(f"{prog}-preview".encode())


# =============================================================================
# 서비스 픽스처
# =============================================================================
@pytest.fixture
def fake_s3():
    return FakeS3Service()


@pytest.fixture
def thumbnail_service():
    return FakeThumbnailService()


@pytest.fixture
def namespace():
    return MetaNamespace("meta")


@pytest.fixture
def compact_service(fake_s3, namespace):
    return CompactService(s3_service=fake_s3, namespace=namespace)


@pytest.fixture
def wal_writer(fake_s3, namespace):
    return WalSegmentWriter(s3_service=fake_s3, namespace=namespace)


@pytest.fixture
def derivation_service(fake_s3, thumbnail_service, compact_service, namespace):
    return DerivationService(
        s3_service=fake_s3,
        thumbnail_service=thumbnail_service,
        compact_service=compact_service,
        namespace=namespace,
        content_prefix="content",
        presign_ttl=900,
    )


@pytest.fixture
def event_router(derivation_service, wal_writer, compact_service, namespace):
    return EventRouter(
        derivation_service=derivation_service,
        wal_writer=wal_writer,
        compact_service=compact_service,
        namespace=namespace,
        content_prefix="content",
    )


@pytest.fixture
def registry(fake_s3, thumbnail_service):
    return ContentRegistry(
        s3_service=fake_s3,
        thumbnail_service=thumbnail_service,
        registry_key="contents.json",
        content_prefix="content",
        thumbnail_prefix="thumbnail",
        trash_prefix="trash",
        staging_prefix="staging",
        presign_ttl=900,
    )


# =============================================================================
# 설정 모킹
# =============================================================================
@pytest.fixture
def mock_settings():
    """AppSettings 모킹"""
    with patch("src.conf.settings.settings") as mock:
        mock.debug = False
        mock.s3_bucket = BUCKET
        mock.content_prefix = "content"
        mock.meta_prefix = "meta"
        mock.thumbnail_prefix = "thumbnail"
        mock.trash_prefix = "trash"
        mock.staging_prefix = "staging"
        mock.registry_key = "contents.json"
        mock.aws_region = "ap-northeast-2"
        mock.aws_access_key_id = "test-key"
        mock.aws_secret_access_key = "test-secret"
        # Kafka 설정
        mock.kafka_bootstrap_servers = "localhost:9092"
        mock.kafka_use_iam = False
        mock.kafka_topic_storage_events = "photo.storage-events"
        mock.kafka_topic_compact = "photo.compact"
        mock.kafka_consumer_group = "photo-backup-pipeline-test"
        yield mock


# =============================================================================
# boto3 클라이언트 모킹
# =============================================================================
@pytest.fixture
def mock_boto3_s3_client():
    """boto3 S3 클라이언트 모킹"""
    with patch("boto3.client") as mock_client:
        mock_s3 = MagicMock()
        mock_s3.put_object.return_value = {}
        mock_client.return_value = mock_s3
        yield mock_s3


# =============================================================================
# Kafka 브로커 모킹
# =============================================================================
@pytest.fixture
def mock_broker():
    """Kafka 브로커 모킹"""
    mock = MagicMock()
    mock.start = AsyncMock()
    mock.stop = AsyncMock()
    mock.publish = AsyncMock()
    return mock


# =============================================================================
# API 테스트 클라이언트
# =============================================================================
@pytest.fixture
def mock_event_router():
    """EventRouter 모킹"""
    from src.schema.v1.storage_event import RouteResult

    mock = MagicMock()
    mock.route = AsyncMock(return_value=RouteResult(segments=["meta/wal/abc.json"], compacted=[], ignored=0))
    return mock


@pytest.fixture
async def client(registry, mock_event_router):
    """테스트 클라이언트 (인메모리 레지스트리, 라우터 모킹)"""
    with patch("src.main.broker") as mock_broker:
        mock_broker.start = AsyncMock()
        mock_broker.stop = AsyncMock()

        from src.main import app

        # 컨테이너 서비스 오버라이드
        app.container.content_registry.override(registry)
        app.container.event_router.override(mock_event_router)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac

        # 오버라이드 해제
        app.container.content_registry.reset_override()
        app.container.event_router.reset_override()


@pytest.fixture
async def client_no_mock():
    """테스트 클라이언트 (모킹 없음, 브로커만 모킹)"""
    with patch("src.main.broker") as mock_broker:
        mock_broker.start = AsyncMock()
        mock_broker.stop = AsyncMock()

        from src.main import app

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
