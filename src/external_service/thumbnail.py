"""썸네일(프리뷰) 생성 서비스 - ffmpeg / ImageMagick 호출"""

import asyncio
import logging
import mimetypes
import os
import shutil
import tempfile
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator
from urllib.parse import urlparse

import httpx

from src.exceptions import DerivationError, UnsupportedMediaType

logger = logging.getLogger(__name__)

mimetypes.add_type("image/heic", ".heic")
mimetypes.add_type("image/heif", ".heif")

# 업로드 클라이언트가 실제 타입 대신 보내는 값 - 확장자로 추정
UNRESOLVED_CONTENT_TYPES = {
    "",
    "application/x-www-form-urlencoded",
    "application/octet-stream",
    "binary/octet-stream",
}

MAX_DIMENSION = 256
CLIP_SECONDS = 3

# 긴 변을 256으로, 짧은 변은 짝수 유지
VIDEO_FILTER = (
    f"scale='if(gt(iw,ih),{MAX_DIMENSION},-2)':'if(gt(iw,ih),-2,{MAX_DIMENSION})'"
)


@dataclass
class DerivedArtifact:
    path: str
    content_type: str


def resolve_content_type(content_type: str | None, name: str = "") -> str:
    """선언된 content type 정리 (불명확하면 파일 확장자로 추정)"""
    content_type = (content_type or "").split(";")[0].strip().lower()
    if content_type in UNRESOLVED_CONTENT_TYPES and name:
        guessed, _ = mimetypes.guess_type(name)
        if guessed:
            return guessed
    return content_type


class ThumbnailService:
    """원본 URL과 content type으로 크기 제한 프리뷰 생성

    - video/*: 최대 3초, 무음, 긴 변 256px mp4
    - image/*: 긴 변 256px jpeg
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        magick_path: str = "magick",
        timeout: float = 120.0,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.magick_path = magick_path
        self.timeout = timeout

    def supports(self, content_type: str | None, name: str = "") -> bool:
        resolved = resolve_content_type(content_type, name)
        return resolved.startswith("video/") or resolved.startswith("image/")

    @asynccontextmanager
    async def create(self, source_url: str, content_type: str | None) -> AsyncIterator[DerivedArtifact]:
        """프리뷰 생성 - 컨텍스트 종료 시 임시 파일 삭제

        Raises:
            UnsupportedMediaType: image/*, video/* 외 타입
            DerivationError: 도구 실패 또는 타임아웃
        """
        name = os.path.basename(urlparse(source_url).path) or "source"
        resolved = resolve_content_type(content_type, name)
        if not (resolved.startswith("video/") or resolved.startswith("image/")):
            raise UnsupportedMediaType(resolved or "unknown")

        workdir = tempfile.mkdtemp(prefix="thumbnail-")
        try:
            if resolved.startswith("video/"):
                artifact = await self._video(source_url, workdir)
            else:
                artifact = await self._image(source_url, name, workdir)
            yield artifact
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    async def _video(self, source_url: str, workdir: str) -> DerivedArtifact:
        preview = os.path.join(workdir, "preview.mp4")
        await self._run(
            self.ffmpeg_path,
            "-nostdin",
            "-y",
            "-i", source_url,
            "-t", str(CLIP_SECONDS),
            "-an",
            "-vf", VIDEO_FILTER,
            preview,
        )  # fmt: skip
        return DerivedArtifact(path=preview, content_type="video/mp4")

    async def _image(self, source_url: str, name: str, workdir: str) -> DerivedArtifact:
        source = os.path.join(workdir, name)
        await self._fetch(source_url, source)

        preview = os.path.join(workdir, "preview.jpg")
        await self._run(
            self.magick_path,
            source,
            "-auto-orient",
            "-resize", f"{MAX_DIMENSION}x{MAX_DIMENSION}",
            preview,
        )  # fmt: skip
        return DerivedArtifact(path=preview, content_type="image/jpeg")

    async def _fetch(self, url: str, path: str) -> None:
        """원본을 임시 파일로 다운로드"""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            f.write(chunk)
        except httpx.HTTPError as e:
            raise DerivationError(f"download source: {e}") from e

    async def _run(self, prog: str, *args: str) -> None:
        """외부 도구 실행 - 타임아웃/취소 시 프로세스 종료"""
        try:
            proc = await asyncio.create_subprocess_exec(
                prog,
                *args,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DerivationError(f"{prog} start: {e}") from e

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            await self._kill(proc)
            raise DerivationError(f"{prog} timed out after {self.timeout}s") from e
        except asyncio.CancelledError:
            await self._kill(proc)
            raise

        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            raise DerivationError(f"{prog} exit={proc.returncode} stderr=`{message}`")

    @staticmethod
    async def _kill(proc: asyncio.subprocess.Process) -> None:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
