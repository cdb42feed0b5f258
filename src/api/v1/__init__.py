from fastapi import APIRouter

from src.api.v1 import compact, contents, events

v1_router = APIRouter(prefix="/v1")

v1_router.include_router(contents.router, tags=["contents"])
v1_router.include_router(events.router, tags=["events"])
v1_router.include_router(compact.router, tags=["compact"])
