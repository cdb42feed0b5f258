"""컨텐츠 레지스트리 - 원본/썸네일 인덱스 (단일 프로세스)"""

import asyncio
import logging
import uuid
from datetime import datetime
from types import MappingProxyType
from typing import Mapping

from src.exceptions import NotFound, NotModified, PhotoBackupError, StorageFailure, UnsupportedMediaType
from src.external_service.s3 import S3Service
from src.external_service.thumbnail import ThumbnailService, resolve_content_type
from src.schema.v1.content import Content, ObjectRef, ObjectStream
from src.utils.datetime import utc_now_seconds

logger = logging.getLogger(__name__)


class ContentRegistry:
    """메모리 상의 컨텐츠 인덱스와 그 스냅샷 문서

    읽기는 불변 스냅샷을 잠금 없이 참조하고, 변경은 하나의 writer만
    잠금을 잡은 채 수행합니다. 변경 시마다 레지스트리 전체를 다시 직렬화해
    업로드하므로 변경 비용은 레지스트리 크기에 비례합니다 (이 설계의 확장 한계).
    스냅샷 저장에 성공한 뒤에만 메모리 스냅샷을 교체하므로 부분 커밋은 없습니다.
    """

    def __init__(
        self,
        s3_service: S3Service,
        thumbnail_service: ThumbnailService,
        registry_key: str = "contents.json",
        content_prefix: str = "content",
        thumbnail_prefix: str = "thumbnail",
        trash_prefix: str = "trash",
        staging_prefix: str = "staging",
        presign_ttl: int = 900,
    ):
        self._s3 = s3_service
        self._thumbnail = thumbnail_service
        self._registry_key = registry_key
        self._content_prefix = content_prefix.strip("/")
        self._thumbnail_prefix = thumbnail_prefix.strip("/")
        self._trash_prefix = trash_prefix.strip("/")
        self._staging_prefix = staging_prefix.strip("/")
        self._presign_ttl = presign_ttl

        self._entries: Mapping[str, Content] = MappingProxyType({})
        self._lock = asyncio.Lock()

    def _original_key(self, content_id: str) -> str:
        return f"{self._content_prefix}/{content_id}"

    def _thumbnail_key(self, thumbnail_id: str) -> str:
        return f"{self._thumbnail_prefix}/{thumbnail_id}"

    def _trash_key(self, content_id: str) -> str:
        return f"{self._trash_prefix}/{content_id}"

    def _staging_key(self, content_id: str) -> str:
        # 마지막 요소는 원본 ID (썸네일 생성 시 확장자로 타입 추정)
        return f"{self._staging_prefix}/{uuid.uuid4().hex}/{content_id}"

    async def load(self) -> None:
        """스냅샷 로드 (시작 시 1회, 없으면 빈 레지스트리)"""
        async with self._lock:
            try:
                document = await self._s3.get_json(self._registry_key)
            except NotFound:
                document = []
            entries = {}
            for item in document or []:
                content = Content.model_validate(item)
                entries[content.original.id] = content
            self._entries = MappingProxyType(entries)
        logger.info(f"Content registry loaded: {len(entries)} entries")

    async def _persist(self, entries: dict[str, Content]) -> None:
        document = [entries[content_id].model_dump(mode="json") for content_id in sorted(entries)]
        await self._s3.put_json(self._registry_key, document)

    def list(self) -> list[Content]:
        return list(self._entries.values())

    def get(self, content_id: str) -> Content:
        entry = self._entries.get(content_id)
        if entry is None:
            raise NotFound(f"content {content_id} not found")
        return entry

    async def get_original(
        self,
        content_id: str,
        if_modified_since: datetime | None = None,
        byte_range: str | None = None,
    ) -> ObjectStream:
        """원본 스트림 조회

        Raises:
            NotFound: 등록되지 않은 ID
            NotModified: if_modified_since가 저장된 last_modified와 같을 때
        """
        entry = self.get(content_id)
        if if_modified_since is not None and if_modified_since == entry.original.last_modified:
            raise NotModified(content_id)

        stream = await self._s3.download(self._original_key(content_id), byte_range=byte_range)
        stream.content_type = entry.original.content_type
        stream.last_modified = entry.original.last_modified
        return stream

    async def get_thumbnail(self, content_id: str, if_modified_since: datetime | None = None) -> ObjectStream:
        """썸네일 스트림 조회"""
        entry = self.get(content_id)
        if if_modified_since is not None and if_modified_since == entry.thumbnail.last_modified:
            raise NotModified(content_id)

        stream = await self._s3.download(self._thumbnail_key(entry.thumbnail.id))
        stream.content_type = entry.thumbnail.content_type
        stream.last_modified = entry.thumbnail.last_modified
        return stream

    async def upload(self, original: ObjectRef, content: bytes) -> Content:
        """원본 스테이징 -> 썸네일 생성/저장 -> 스냅샷 저장 -> 원본 이동 -> 엔트리 교체

        같은 ID가 있으면 교체합니다 (last writer wins).
        원본은 스냅샷 저장 전까지 content 네임스페이스 밖에 두므로, 중간 단계가
        실패해도 기존 원본과 엔트리는 그대로 남습니다.
        """
        content_type = resolve_content_type(original.content_type, original.id)
        if not self._thumbnail.supports(content_type):
            raise UnsupportedMediaType(content_type or "unknown")

        async with self._lock:
            staged_key = self._staging_key(original.id)
            thumbnail_id = uuid.uuid4().hex
            await self._s3.upload(staged_key, content, content_type=original.content_type)

            try:
                source_url = await self._s3.presign_read(staged_key, ttl=self._presign_ttl)
                async with self._thumbnail.create(source_url, content_type) as artifact:
                    await self._s3.upload_file(
                        artifact.path,
                        self._thumbnail_key(thumbnail_id),
                        content_type=artifact.content_type,
                    )
                    thumbnail = ObjectRef(
                        id=thumbnail_id,
                        content_type=artifact.content_type,
                        last_modified=utc_now_seconds(),
                    )

                entry = Content(original=original, thumbnail=thumbnail)
                entries = dict(self._entries)
                previous = entries.get(original.id)
                entries[original.id] = entry
                await self._persist(entries)
            except PhotoBackupError:
                await self._discard(staged_key, self._thumbnail_key(thumbnail_id))
                raise

            try:
                await self._s3.move(staged_key, self._original_key(original.id))
            except PhotoBackupError:
                await self._restore_snapshot()
                await self._discard(staged_key, self._thumbnail_key(thumbnail_id))
                raise

            self._entries = MappingProxyType(entries)

            if previous is not None:
                await self._discard(self._thumbnail_key(previous.thumbnail.id))

        logger.info(f"Content uploaded: {original.id} ({original.content_type})")
        return entry

    async def _discard(self, *keys: str) -> None:
        """best-effort 삭제 (실패는 고아 객체로 남김)"""
        for key in keys:
            try:
                await self._s3.delete(key)
            except StorageFailure as e:
                logger.warning(f"Failed to discard {key}: {e}")

    async def _restore_snapshot(self) -> None:
        try:
            await self._persist(dict(self._entries))
        except StorageFailure as e:
            logger.error(f"Failed to restore registry snapshot: {e}")

    async def delete(self, content_id: str) -> bool:
        """원본은 휴지통으로 이동, 엔트리 제거 후 스냅샷 저장, 마지막에 썸네일 삭제

        Returns:
            삭제 여부 (없는 ID면 False)
        """
        async with self._lock:
            entry = self._entries.get(content_id)
            if entry is None:
                return False

            original_key = self._original_key(content_id)
            trash_key = self._trash_key(content_id)
            moved = True
            try:
                await self._s3.move(original_key, trash_key)
            except NotFound:
                logger.warning(f"Original {content_id} already absent, removing entry only")
                moved = False

            entries = dict(self._entries)
            del entries[content_id]
            try:
                await self._persist(entries)
            except StorageFailure:
                if moved:
                    await self._move_back(trash_key, original_key)
                raise
            self._entries = MappingProxyType(entries)

            await self._discard(self._thumbnail_key(entry.thumbnail.id))

        logger.info(f"Content deleted: {content_id}")
        return True

    async def _move_back(self, src: str, dst: str) -> None:
        try:
            await self._s3.move(src, dst)
        except PhotoBackupError as e:
            logger.error(f"Failed to restore {dst} from {src}: {e}")
