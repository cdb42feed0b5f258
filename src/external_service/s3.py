import asyncio
import json
import logging

import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from src.exceptions import NotFound, RangeNotSatisfiable, StorageFailure
from src.schema.v1.content import ObjectHead, ObjectStream

logger = logging.getLogger(__name__)

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
INVALID_RANGE_CODES = {"InvalidRange", "416"}


def _error_code(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Code", "")


class S3Service:
    """S3 호환 오브젝트 스토리지 서비스

    boto3 호출은 블로킹이므로 스레드에서 실행하고, 클라이언트 타임아웃으로
    호출 시간을 제한합니다. 모든 메서드는 bucket을 생략하면 기본 버킷을 사용합니다.
    """

    def __init__(
        self,
        bucket: str,
        region: str = "ap-northeast-2",
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
        endpoint_url: str | None = None,
        timeout: float = 30.0,
        max_attempts: int = 5,
    ):
        self.bucket = bucket
        self.region = region
        # 빈 문자열은 None으로 처리 (기본 credentials chain 사용)
        self.client = boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url or None,
            aws_access_key_id=aws_access_key_id or None,
            aws_secret_access_key=aws_secret_access_key or None,
            config=BotoConfig(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": max_attempts, "mode": "standard"},
            ),
        )

    def _bucket(self, bucket: str | None) -> str:
        return bucket or self.bucket

    async def _call(self, operation: str, key: str, func, *args, **kwargs):
        """boto3 호출 실행 및 예외 변환

        NoSuchKey -> NotFound, InvalidRange -> RangeNotSatisfiable, 나머지 -> StorageFailure
        """
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except ClientError as e:
            code = _error_code(e)
            if code in NOT_FOUND_CODES:
                raise NotFound(f"{operation} {key}: not found") from e
            if code in INVALID_RANGE_CODES:
                raise RangeNotSatisfiable(f"{operation} {key}: range not satisfiable") from e
            raise StorageFailure(f"{operation} {key}: {e}") from e
        except (BotoCoreError, Boto3Error) as e:
            raise StorageFailure(f"{operation} {key}: {e}") from e

    async def head(self, key: str, bucket: str | None = None) -> ObjectHead:
        """객체 메타데이터 조회"""
        response = await self._call(
            "head",
            key,
            self.client.head_object,
            Bucket=self._bucket(bucket),
            Key=key,
        )
        return ObjectHead(
            content_type=response.get("ContentType", ""),
            content_length=response.get("ContentLength", 0),
            last_modified=response["LastModified"],
        )

    async def download(
        self,
        key: str,
        bucket: str | None = None,
        byte_range: str | None = None,
    ) -> ObjectStream:
        """객체 스트림 조회

        Args:
            key: S3 객체 키
            byte_range: HTTP Range 헤더 값 (예: "bytes=0-99")

        Raises:
            NotFound: 키가 없을 때
            RangeNotSatisfiable: byte_range가 객체 크기를 벗어날 때
            StorageFailure: 그 외 조회 실패
        """
        params = {"Bucket": self._bucket(bucket), "Key": key}
        if byte_range:
            params["Range"] = byte_range

        response = await self._call("download", key, self.client.get_object, **params)
        return ObjectStream(
            body=response["Body"],
            content_type=response.get("ContentType"),
            content_length=response.get("ContentLength"),
            content_range=response.get("ContentRange"),
            last_modified=response.get("LastModified"),
        )

    async def get_document(self, key: str, bucket: str | None = None) -> bytes:
        """객체 전체 내용 조회"""
        stream = await self.download(key, bucket=bucket)
        try:
            return await asyncio.to_thread(stream.read)
        except (BotoCoreError, OSError) as e:
            raise StorageFailure(f"read {key}: {e}") from e

    async def get_json(self, key: str, bucket: str | None = None):
        content = await self.get_document(key, bucket=bucket)
        try:
            return json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageFailure(f"decode {key}: {e}") from e

    async def upload(
        self,
        key: str,
        content: bytes,
        content_type: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """바이트 내용을 업로드하고 키 반환"""
        extra_args = {}
        if content_type:
            extra_args["ContentType"] = content_type

        await self._call(
            "upload",
            key,
            self.client.put_object,
            Bucket=self._bucket(bucket),
            Key=key,
            Body=content,
            **extra_args,
        )
        return key

    async def put_json(self, key: str, document, bucket: str | None = None) -> str:
        body = json.dumps(document, ensure_ascii=False, indent=2).encode("utf-8")
        return await self.upload(key, body, content_type="application/json", bucket=bucket)

    async def upload_file(
        self,
        path: str,
        key: str,
        content_type: str | None = None,
        bucket: str | None = None,
    ) -> str:
        """로컬 파일 업로드 (multipart 자동 처리)"""
        extra_args = {"ContentType": content_type} if content_type else None
        await self._call(
            "upload",
            key,
            self.client.upload_file,
            Filename=path,
            Bucket=self._bucket(bucket),
            Key=key,
            ExtraArgs=extra_args,
        )
        return key

    async def move(self, src: str, dst: str, bucket: str | None = None) -> None:
        """copy -> 존재 확인 -> 원본 삭제"""
        bucket = self._bucket(bucket)
        await self._call(
            "move",
            src,
            self.client.copy_object,
            Bucket=bucket,
            CopySource={"Bucket": bucket, "Key": src},
            Key=dst,
        )
        waiter = self.client.get_waiter("object_exists")
        await self._call("move", dst, waiter.wait, Bucket=bucket, Key=dst)
        await self.delete(src, bucket=bucket)

    async def delete(self, key: str, bucket: str | None = None) -> None:
        """객체 삭제 (없는 키도 성공)"""
        try:
            await self._call(
                "delete",
                key,
                self.client.delete_object,
                Bucket=self._bucket(bucket),
                Key=key,
            )
        except NotFound:
            logger.debug(f"Delete skipped, {key} already absent")

    async def delete_objects(self, keys: list[str], bucket: str | None = None) -> dict:
        """여러 객체 삭제

        Returns:
            {success, deleted, errors}
        """
        if not keys:
            return {"success": True, "deleted": [], "errors": []}

        try:
            response = await self._call(
                "delete",
                keys[0],
                self.client.delete_objects,
                Bucket=self._bucket(bucket),
                Delete={"Objects": [{"Key": key} for key in keys]},
            )
        except StorageFailure as e:
            return {
                "success": False,
                "deleted": [],
                "errors": [str(e)],
            }

        return {
            "success": True,
            "deleted": [d["Key"] for d in response.get("Deleted", [])],
            "errors": response.get("Errors", []),
        }

    async def list_keys(self, prefix: str, bucket: str | None = None) -> list[str]:
        """프리픽스 아래 키 목록"""
        bucket = self._bucket(bucket)

        def _list() -> list[str]:
            keys = []
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    keys.append(obj["Key"])
            return keys

        return await self._call("list", prefix, _list)

    async def presign_read(self, key: str, ttl: int, bucket: str | None = None) -> str:
        """기간 제한 읽기 URL 생성"""
        return await self._call(
            "presign",
            key,
            self.client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self._bucket(bucket), "Key": key},
            ExpiresIn=ttl,
        )
