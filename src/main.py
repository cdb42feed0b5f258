import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

import src.events  # noqa: F401 - 핸들러 등록
from src.api import api_router
from src.conf.container import create_container
from src.conf.kafka import broker, ensure_topics
from src.conf.settings import settings
from src.exceptions import (
    ClassificationError,
    NotFound,
    NotModified,
    RangeNotSatisfiable,
    StorageFailure,
    UnsupportedMediaType,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

container = create_container()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI 라이프사이클 관리"""
    settings.check()
    await ensure_topics(settings.kafka_topics)
    await broker.start()
    await app.container.content_registry().load()
    yield
    await broker.stop()


app = FastAPI(
    title="Photo Backup Pipeline",
    description="사진/영상 원본 저장, 프리뷰 생성, WAL 기반 메타데이터 동기화",
    version="0.2.0",
    lifespan=lifespan,
)

app.container = container
app.include_router(api_router)


@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"success": False, "error": str(exc)})


@app.exception_handler(NotModified)
async def not_modified_handler(request: Request, exc: NotModified):
    return Response(status_code=304)


@app.exception_handler(RangeNotSatisfiable)
async def range_not_satisfiable_handler(request: Request, exc: RangeNotSatisfiable):
    return JSONResponse(status_code=416, content={"success": False, "error": str(exc)})


@app.exception_handler(UnsupportedMediaType)
async def unsupported_media_type_handler(request: Request, exc: UnsupportedMediaType):
    return JSONResponse(status_code=415, content={"success": False, "error": str(exc)})


@app.exception_handler(ClassificationError)
async def classification_error_handler(request: Request, exc: ClassificationError):
    return JSONResponse(status_code=400, content={"success": False, "error": str(exc)})


@app.exception_handler(StorageFailure)
async def storage_failure_handler(request: Request, exc: StorageFailure):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=503, content={"success": False, "error": str(exc)})


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": app.version}
