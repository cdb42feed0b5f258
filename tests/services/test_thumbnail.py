"""ThumbnailService 테스트"""

import asyncio
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.exceptions import DerivationError, UnsupportedMediaType
from src.external_service.thumbnail import ThumbnailService, resolve_content_type


class TestResolveContentType:
    """resolve_content_type 테스트"""

    @pytest.mark.parametrize(
        "content_type,name,expected",
        [
            ("image/jpeg", "img1.jpg", "image/jpeg"),
            ("Image/PNG; charset=binary", "", "image/png"),
            ("application/octet-stream", "photo.heic", "image/heic"),
            ("application/x-www-form-urlencoded", "clip.mp4", "video/mp4"),
            ("", "photo.heif", "image/heif"),
            (None, "unknown", ""),
            ("application/octet-stream", "", "application/octet-stream"),
        ],
    )
    def test_resolve(self, content_type, name, expected):
        assert resolve_content_type(content_type, name) == expected

    def test_supports(self):
        service = ThumbnailService()

        assert service.supports("image/jpeg")
        assert service.supports("video/quicktime")
        assert service.supports("binary/octet-stream", "img1.png")
        assert not service.supports("text/plain")
        assert not service.supports("application/pdf", "doc.pdf")


class TestCreate:
    """create 테스트"""

    async def test_unsupported(self, thumbnail_service):
        """지원하지 않는 타입은 도구 실행 없이 실패"""
        with pytest.raises(UnsupportedMediaType) as exc_info:
            async with thumbnail_service.create("https://storage.test/b/content/doc.pdf", "application/pdf"):
                pass

        assert exc_info.value.content_type == "application/pdf"
        assert thumbnail_service.commands == []

    async def test_workdir_removed(self, thumbnail_service):
        """컨텍스트 종료 시 임시 파일 삭제"""
        async with thumbnail_service.create("https://storage.test/b/content/img1.jpg", "image/jpeg") as artifact:
            assert os.path.exists(artifact.path)
            workdir = os.path.dirname(artifact.path)

        assert not os.path.exists(workdir)

    async def test_workdir_removed_on_error(self, thumbnail_service):
        """도구 실패 시에도 임시 파일 삭제"""
        created = []

        async def failing_run(prog, *args):
            created.append(os.path.dirname(args[-1]))
            raise DerivationError(f"{prog} exit=1")

        thumbnail_service._run = failing_run

        with pytest.raises(DerivationError):
            async with thumbnail_service.create("https://storage.test/b/content/clip.mp4", "video/mp4"):
                pass

        assert created and not os.path.exists(created[0])


class TestRun:
    """외부 도구 실행 테스트"""

    async def test_nonzero_exit(self):
        """종료 코드가 0이 아니면 DerivationError (stderr 포함)"""
        proc = MagicMock()
        proc.returncode = 1
        proc.communicate = AsyncMock(return_value=(b"", b"invalid input"))

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            service = ThumbnailService(timeout=5)
            with pytest.raises(DerivationError) as exc_info:
                await service._run("ffmpeg", "-i", "source")

        assert "invalid input" in str(exc_info.value)

    async def test_missing_binary(self):
        """도구가 없으면 DerivationError"""
        with patch("asyncio.create_subprocess_exec", AsyncMock(side_effect=FileNotFoundError("ffmpeg"))):
            service = ThumbnailService(timeout=5)
            with pytest.raises(DerivationError):
                await service._run("ffmpeg")

    async def test_timeout_kills_process(self):
        """타임아웃 시 프로세스 종료"""

        async def hang():
            await asyncio.sleep(10)

        proc = MagicMock()
        proc.returncode = None
        proc.communicate = hang
        proc.wait = AsyncMock(return_value=-9)

        with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
            service = ThumbnailService(timeout=0.01)
            with pytest.raises(DerivationError):
                await service._run("magick", "in.jpg", "out.jpg")

        proc.kill.assert_called_once()
        proc.wait.assert_awaited_once()
