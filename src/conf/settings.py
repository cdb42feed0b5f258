from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.exceptions import ConfigurationError


class AppSettings(BaseSettings):
    """애플리케이션 설정"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 앱 설정
    debug: bool = False
    log_level: str = "INFO"

    # S3 설정
    s3_endpoint_url: str | None = None
    s3_bucket: str = ""
    s3_timeout_seconds: float = 30.0
    s3_max_attempts: int = 5

    # 네임스페이스 (버킷 내 키 프리픽스)
    content_prefix: str = "content"
    meta_prefix: str = "meta"
    thumbnail_prefix: str = "thumbnail"
    trash_prefix: str = "trash"
    staging_prefix: str = "staging"
    registry_key: str = "contents.json"

    # 썸네일 생성 설정
    ffmpeg_path: str = "ffmpeg"
    magick_path: str = "magick"
    thumbnail_timeout_seconds: float = 120.0
    presign_ttl_seconds: int = 900

    # AWS 설정 (로컬: 환경변수로 키 입력, 원격: IRSA)
    aws_region: str = "ap-northeast-2"
    aws_access_key_id: str | None = None
    aws_secret_access_key: str | None = None

    # Kafka/MSK 설정
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_use_iam: bool = False  # True for MSK Serverless with IAM auth

    # Topic 설정
    kafka_topic_storage_events: str = "photo.storage-events"
    kafka_topic_compact: str = "photo.compact"
    kafka_consumer_group: str = "photo-backup-pipeline"

    @field_validator("content_prefix", "meta_prefix", "thumbnail_prefix", "trash_prefix", "staging_prefix", "registry_key")
    @classmethod
    def _strip_slashes(cls, value: str) -> str:
        return value.strip().strip("/")

    @property
    def kafka_topics(self) -> list[str]:
        return [self.kafka_topic_storage_events, self.kafka_topic_compact]

    def check(self) -> None:
        """시작 시 1회 검증 - 문제가 있으면 ConfigurationError"""
        problems = []

        if not self.s3_bucket:
            problems.append("S3_BUCKET is required")

        prefixes = {
            "CONTENT_PREFIX": self.content_prefix,
            "META_PREFIX": self.meta_prefix,
            "THUMBNAIL_PREFIX": self.thumbnail_prefix,
            "TRASH_PREFIX": self.trash_prefix,
            "STAGING_PREFIX": self.staging_prefix,
        }
        for name, value in prefixes.items():
            if not value:
                problems.append(f"{name} must not be empty")
        values = [v for v in prefixes.values() if v]
        if len(set(values)) != len(values):
            problems.append("namespace prefixes must be distinct")

        if not self.registry_key:
            problems.append("REGISTRY_KEY must not be empty")
        if self.s3_timeout_seconds <= 0:
            problems.append("S3_TIMEOUT_SECONDS must be positive")
        if self.thumbnail_timeout_seconds <= 0:
            problems.append("THUMBNAIL_TIMEOUT_SECONDS must be positive")
        if self.presign_ttl_seconds <= 0:
            problems.append("PRESIGN_TTL_SECONDS must be positive")

        if problems:
            raise ConfigurationError(problems)


settings = AppSettings()
