"""
Object store client for CV files.
S3 when AWS credentials are configured, local upload directory otherwise.
Keys look like cv/{user_id}/v{n}_{token}.pdf; callers never build URLs themselves.
"""
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

import boto3
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from cvfolio.app.core.config import settings
from cvfolio.app.core.errors import StorageError, TransientNetworkError
from cvfolio.app.core.logging_config import get_logger

logger = get_logger("services.storage")

_NETWORK_ERRORS = (ConnectTimeoutError, ReadTimeoutError, EndpointConnectionError)


class S3ObjectStore:
    """Object store backed by a single S3 bucket."""

    def __init__(self, bucket: str | None = None, client=None):
        self.bucket = bucket or settings.aws_bucket_name
        self._client = client

    @property
    def client(self):
        if self._client is None:
            if not settings.aws_access_key_id or not settings.aws_secret_access_key:
                raise StorageError("AWS credentials not configured (AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY)")
            self._client = boto3.client(
                "s3",
                aws_access_key_id=settings.aws_access_key_id,
                aws_secret_access_key=settings.aws_secret_access_key,
                region_name=settings.aws_region,
                config=Config(
                    connect_timeout=settings.storage_connect_timeout,
                    read_timeout=settings.storage_read_timeout,
                    retries={"max_attempts": settings.storage_max_attempts, "mode": "standard"},
                ),
            )
        return self._client

    def _fail(self, op: str, key: str, exc: Exception):
        if isinstance(exc, _NETWORK_ERRORS):
            logger.error("S3 %s timed out bucket=%s key=%s error=%s", op, self.bucket, key, exc)
            return TransientNetworkError(f"S3 {op} timed out: {exc}")
        code = exc.response.get("Error", {}).get("Code", "")
        msg = exc.response.get("Error", {}).get("Message", str(exc))
        logger.error(
            "S3 %s failed bucket=%s key=%s error_code=%s error_message=%s",
            op,
            self.bucket,
            key,
            code,
            msg,
        )
        return StorageError(f"S3 {op} failed - {code}: {msg}")

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        logger.info("S3 upload started bucket=%s key=%s size_bytes=%d", self.bucket, key, len(data))
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (ClientError, *_NETWORK_ERRORS) as e:
            raise self._fail("upload", key, e) from e
        logger.info("S3 upload success bucket=%s key=%s", self.bucket, key)

    def get(self, key: str) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket, Key=key)
            return obj["Body"].read()
        except (ClientError, *_NETWORK_ERRORS) as e:
            raise self._fail("download", key, e) from e

    def delete(self, key: str) -> None:
        """Idempotent: S3 reports success for keys that do not exist."""
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (ClientError, *_NETWORK_ERRORS) as e:
            raise self._fail("delete", key, e) from e
        logger.info("S3 delete success bucket=%s key=%s", self.bucket, key)

    def resolve_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{settings.aws_region}.amazonaws.com/{key}"

    def list_objects(self, prefix: str) -> list[tuple[str, datetime]]:
        """(key, last modified in UTC) for every object under prefix."""
        objects = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=f"{prefix}/"):
                objects.extend((item["Key"], item["LastModified"]) for item in page.get("Contents", []))
        except (ClientError, *_NETWORK_ERRORS) as e:
            raise self._fail("list", prefix, e) from e
        return objects

    def list_keys(self, prefix: str) -> list[str]:
        return [key for key, _ in self.list_objects(prefix)]


class LocalObjectStore:
    """Object store on the local filesystem, served by the app under upload_url_prefix."""

    def __init__(self, root: str | Path | None = None, url_prefix: str | None = None):
        self.root = Path(root or settings.upload_dir)
        self.url_prefix = (url_prefix or settings.upload_url_prefix).rstrip("/")

    def _path(self, key: str) -> Path:
        parts = PurePosixPath(key).parts
        if not parts or any(p in ("..", "") or p.startswith("/") for p in parts):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.root.joinpath(*parts)

    def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error("Local upload failed path=%s error=%s", path, e)
            raise StorageError(f"Local upload failed: {e}") from e
        logger.info("Local upload success path=%s size_bytes=%d", path, len(data))

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Local download failed: {e}") from e

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Failed to delete local file %s: %s", path, e)
            raise StorageError(f"Local delete failed: {e}") from e
        logger.info("Deleted local file path=%s", path)

    def resolve_url(self, key: str) -> str:
        return f"{self.url_prefix}/{key}"

    def list_objects(self, prefix: str) -> list[tuple[str, datetime]]:
        """(key, file mtime in UTC) for every file under prefix, sorted by key."""
        base = self.root / prefix
        if not base.exists():
            return []
        return sorted(
            (
                p.relative_to(self.root).as_posix(),
                datetime.fromtimestamp(p.stat().st_mtime, tz=timezone.utc),
            )
            for p in base.rglob("*")
            if p.is_file()
        )

    def list_keys(self, prefix: str) -> list[str]:
        return [key for key, _ in self.list_objects(prefix)]


def get_object_store() -> S3ObjectStore | LocalObjectStore:
    """Pick the configured backend. "auto" means S3 when credentials are present."""
    backend = settings.storage_backend.lower()
    if backend == "s3":
        return S3ObjectStore()
    if backend == "auto" and settings.aws_access_key_id and settings.aws_secret_access_key:
        return S3ObjectStore()
    return LocalObjectStore()
