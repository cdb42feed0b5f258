from dependency_injector import containers, providers

from src.conf.settings import settings
from src.external_service.s3 import S3Service
from src.external_service.thumbnail import ThumbnailService
from src.services.compact import CompactService
from src.services.derivation import DerivationService
from src.services.registry import ContentRegistry
from src.services.router import EventRouter
from src.services.wal import MetaNamespace, WalSegmentWriter


class Container(containers.DeclarativeContainer):
    """DI 컨테이너 - 애플리케이션 서비스 관리"""

    wiring_config = containers.WiringConfiguration(
        modules=[
            "src.api.v1.contents",
            "src.api.v1.events",
            "src.events.v1.compact",
            "src.events.v1.storage",
        ]
    )

    # External Services
    s3_service = providers.Singleton(
        S3Service,
        bucket=settings.s3_bucket,
        region=settings.aws_region,
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        endpoint_url=settings.s3_endpoint_url,
        timeout=settings.s3_timeout_seconds,
        max_attempts=settings.s3_max_attempts,
    )

    thumbnail_service = providers.Singleton(
        ThumbnailService,
        ffmpeg_path=settings.ffmpeg_path,
        magick_path=settings.magick_path,
        timeout=settings.thumbnail_timeout_seconds,
    )

    # Services
    meta_namespace = providers.Singleton(MetaNamespace, prefix=settings.meta_prefix)

    wal_writer = providers.Singleton(
        WalSegmentWriter,
        s3_service=s3_service,
        namespace=meta_namespace,
    )

    compact_service = providers.Singleton(
        CompactService,
        s3_service=s3_service,
        namespace=meta_namespace,
    )

    derivation_service = providers.Singleton(
        DerivationService,
        s3_service=s3_service,
        thumbnail_service=thumbnail_service,
        compact_service=compact_service,
        namespace=meta_namespace,
        content_prefix=settings.content_prefix,
        presign_ttl=settings.presign_ttl_seconds,
    )

    event_router = providers.Singleton(
        EventRouter,
        derivation_service=derivation_service,
        wal_writer=wal_writer,
        compact_service=compact_service,
        namespace=meta_namespace,
        content_prefix=settings.content_prefix,
    )

    content_registry = providers.Singleton(
        ContentRegistry,
        s3_service=s3_service,
        thumbnail_service=thumbnail_service,
        registry_key=settings.registry_key,
        content_prefix=settings.content_prefix,
        thumbnail_prefix=settings.thumbnail_prefix,
        trash_prefix=settings.trash_prefix,
        staging_prefix=settings.staging_prefix,
        presign_ttl=settings.presign_ttl_seconds,
    )


def create_container() -> Container:
    """컨테이너 생성"""
    return Container()
