from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import StreamingResponse

from src.conf.container import Container
from src.schema.v1.content import Content, ObjectRef, ObjectStream
from src.services.registry import ContentRegistry

router = APIRouter()


def parse_http_date(value: str | None) -> datetime | None:
    """RFC 1123 날짜 헤더 파싱 (없으면 None)"""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        raise HTTPException(status_code=400, detail=f"invalid date header: {value}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_http_date(value: datetime) -> str:
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)


def _stream_response(stream: ObjectStream, accept_ranges: bool = False) -> StreamingResponse:
    headers = {}
    if accept_ranges:
        headers["Accept-Ranges"] = "bytes"
    if stream.last_modified is not None:
        headers["Last-Modified"] = format_http_date(stream.last_modified)

    status_code = 200
    if stream.content_range:
        headers["Content-Range"] = stream.content_range
        status_code = 206
    if stream.content_length is not None:
        headers["Content-Length"] = str(stream.content_length)

    return StreamingResponse(
        stream.iter_chunks(),
        status_code=status_code,
        media_type=stream.content_type,
        headers=headers,
    )


@router.get("/contents")
@inject
async def list_contents(
    registry: ContentRegistry = Depends(Provide[Container.content_registry]),
) -> list[Content]:
    """컨텐츠 목록"""
    return registry.list()


@router.get("/contents/{content_id}/original")
@inject
async def get_original(
    content_id: str,
    range_: str | None = Header(default=None, alias="Range"),
    if_modified_since: str | None = Header(default=None),
    registry: ContentRegistry = Depends(Provide[Container.content_registry]),
):
    """원본 조회 (Range, If-Modified-Since 지원)"""
    stream = await registry.get_original(
        content_id,
        if_modified_since=parse_http_date(if_modified_since),
        byte_range=range_,
    )
    return _stream_response(stream, accept_ranges=True)


@router.get("/contents/{content_id}/thumbnail")
@inject
async def get_thumbnail(
    content_id: str,
    if_modified_since: str | None = Header(default=None),
    registry: ContentRegistry = Depends(Provide[Container.content_registry]),
):
    """썸네일 조회 (If-Modified-Since 지원)"""
    stream = await registry.get_thumbnail(content_id, if_modified_since=parse_http_date(if_modified_since))
    return _stream_response(stream)


@router.post("/contents/{content_id}")
@inject
async def upload_content(
    content_id: str,
    request: Request,
    content_type: str = Header(...),
    last_modified: str = Header(...),
    registry: ContentRegistry = Depends(Provide[Container.content_registry]),
) -> Content:
    """
    원본 업로드

    - Content-Type: 원본 content type (image/*, video/*)
    - Last-Modified: 원본 수정 시각 (RFC 1123)
    """
    original = ObjectRef(
        id=content_id,
        content_type=content_type,
        last_modified=parse_http_date(last_modified),
    )
    body = await request.body()
    return await registry.upload(original, body)


@router.delete("/contents/{content_id}")
@inject
async def delete_content(
    content_id: str,
    registry: ContentRegistry = Depends(Provide[Container.content_registry]),
):
    """컨텐츠 삭제 (원본은 휴지통으로 이동)"""
    deleted = await registry.delete(content_id)
    return {"success": True, "deleted": deleted}
