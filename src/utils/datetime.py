"""날짜/시간 유틸리티"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """현재 UTC 시간 반환 (메타데이터 필드 timestamp 용)"""
    return datetime.now(UTC)


def utc_now_seconds() -> datetime:
    """초 단위로 자른 현재 UTC 시간 (HTTP 날짜 헤더와 비교 가능)"""
    return utc_now().replace(microsecond=0)
