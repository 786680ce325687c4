from __future__ import annotations

import time
from pathlib import Path
from typing import Optional, Protocol

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from meeting_pipeline.core.errors import ConfigurationError, StorageError
from meeting_pipeline.core.settings import Settings, get_settings


class Storage(Protocol):
    def presign_download(self, key: str) -> str: ...
    def presign_upload(self, key: str, content_type: Optional[str] = None) -> str: ...
    def delete_object(self, key: str) -> None: ...


class FSStorage:
    """DEV-ONLY filesystem storage."""

    def __init__(self, base_dir: str = "storage", ttl: int = 900):
        self.base = Path(base_dir)
        self.base.mkdir(parents=True, exist_ok=True)
        self.ttl = ttl

    def _path(self, key: str) -> Path:
        return self.base / key

    def presign_download(self, key: str) -> str:
        return f"{self._path(key).resolve().as_uri()}?t={int(time.time()) + self.ttl}"

    def presign_upload(self, key: str, content_type: Optional[str] = None) -> str:
        self._path(key).parent.mkdir(parents=True, exist_ok=True)
        return self.presign_download(key)

    def delete_object(self, key: str) -> None:
        # S3 DeleteObject is a no-op for missing keys; mirror that.
        self._path(key).unlink(missing_ok=True)


class S3Storage:
    def __init__(
        self,
        bucket: str,
        endpoint: Optional[str],
        region: str = "us-east-1",
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        force_path_style: bool = True,
        download_ttl: int = 900,
        upload_ttl: int = 900,
        client=None,
    ):
        self.bucket = bucket
        self.download_ttl = download_ttl
        self.upload_ttl = upload_ttl
        if client is None:
            session = boto3.session.Session(
                aws_access_key_id=access_key,
                aws_secret_access_key=secret_key,
                region_name=region,
            )
            client = session.client(
                "s3",
                endpoint_url=endpoint,
                config=Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path" if force_path_style else "auto"},
                ),
            )
        self.client = client

    def presign_download(self, key: str) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.download_ttl,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"presign download failed for {key!r}: {exc}") from exc

    def presign_upload(self, key: str, content_type: Optional[str] = None) -> str:
        params: dict[str, str] = {"Bucket": self.bucket, "Key": key}
        if content_type:
            params["ContentType"] = content_type
        try:
            return self.client.generate_presigned_url(
                "put_object", Params=params, ExpiresIn=self.upload_ttl
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"presign upload failed for {key!r}: {exc}") from exc

    def delete_object(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"delete failed for {key!r}: {exc}") from exc


def choose_storage(settings: Settings | None = None) -> Storage:
    settings = settings or get_settings()

    if settings.STORAGE_BACKEND == "fs":
        if settings.APP_ENV == "prod":
            raise ConfigurationError("STORAGE_BACKEND=fs is not allowed in prod")
        return FSStorage(
            base_dir=settings.FS_STORAGE_DIR,
            ttl=settings.S3_SIGNED_DOWNLOAD_EXPIRES_SEC,
        )

    if not (settings.S3_BUCKET and settings.S3_ACCESS_KEY_ID and settings.S3_SECRET_ACCESS_KEY):
        raise ConfigurationError(
            "Missing S3 worker configuration. "
            "Set S3_BUCKET, S3_ACCESS_KEY_ID, and S3_SECRET_ACCESS_KEY."
        )

    return S3Storage(
        bucket=settings.S3_BUCKET,
        endpoint=settings.S3_ENDPOINT,
        region=settings.S3_REGION,
        access_key=settings.S3_ACCESS_KEY_ID,
        secret_key=settings.S3_SECRET_ACCESS_KEY,
        force_path_style=settings.S3_FORCE_PATH_STYLE,
        download_ttl=settings.S3_SIGNED_DOWNLOAD_EXPIRES_SEC,
        upload_ttl=settings.S3_SIGNED_UPLOAD_EXPIRES_SEC,
    )
