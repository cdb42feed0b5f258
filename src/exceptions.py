"""서비스 공통 예외

저장소/썸네일/이벤트 처리 경계에서 발생하는 실패를 분류합니다.
HTTP 계층과 이벤트 핸들러는 이 계층만 보고 응답을 결정합니다.
"""


class PhotoBackupError(Exception):
    """모든 서비스 예외의 기본 클래스"""


class NotFound(PhotoBackupError):
    """조회 대상 없음"""


class NotModified(PhotoBackupError):
    """조건부 조회 일치 (에러가 아닌 제어 결과)"""


class UnsupportedMediaType(PhotoBackupError):
    """썸네일 생성이 지원하지 않는 content type"""

    def __init__(self, content_type: str):
        super().__init__(f"unsupported content type `{content_type}`")
        self.content_type = content_type


class StorageFailure(PhotoBackupError):
    """저장소 일시 장애 - 호출자가 재시도해야 함"""


class EventBatchError(StorageFailure):
    """배치 중 일부 컬렉션 처리 실패"""

    def __init__(self, failed: dict[str, str]):
        details = ", ".join(f"{bucket}: {error}" for bucket, error in failed.items())
        super().__init__(f"event batch failed for {len(failed)} bucket(s): {details}")
        self.failed = failed


class CompactionConflict(PhotoBackupError):
    """다른 compaction이 먼저 세그먼트를 소비함 (자가 복구, 사용자에게 노출하지 않음)"""


class ClassificationError(PhotoBackupError):
    """알 수 없는 이벤트 타입 - 배치 전체 실패, 자동 재시도 없음"""


class ConfigurationError(PhotoBackupError):
    """설정 누락/오류"""

    def __init__(self, problems: list[str]):
        super().__init__("invalid configuration: " + "; ".join(problems))
        self.problems = problems


class DerivationError(StorageFailure):
    """썸네일 생성 도구 실패/타임아웃 - 재시도 대상"""


class RangeNotSatisfiable(PhotoBackupError):
    """요청한 Range가 객체 크기를 벗어남 (재시도해도 같은 결과)"""
