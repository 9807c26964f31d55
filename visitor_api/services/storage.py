from __future__ import annotations

import io
import uuid
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import BinaryIO, Optional

from botocore.exceptions import BotoCoreError, ClientError

from ..config import settings
from .aws import boto3_client


class StorageError(Exception):
    pass


@dataclass
class StoredFile:
    key: str
    storage_url: str
    size: int


class StorageService:
    """Documents are opaque blobs addressed by key inside one bucket."""

    def __init__(self, bucket: Optional[str] = None) -> None:
        self.bucket = bucket or settings.aws.s3_bucket
        self._client = boto3_client("s3")

    def build_key(self, document_id: str | uuid.UUID, original_name: str) -> str:
        suffix = Path(original_name).suffix.lower() or ".bin"
        return f"documents/{document_id}/{uuid.uuid4()}{suffix}"

    def upload_bytes(
        self,
        key: str,
        file_obj: BinaryIO | bytes,
        content_type: str,
    ) -> StoredFile:
        buffer: BinaryIO
        if isinstance(file_obj, (bytes, bytearray)):
            buffer = io.BytesIO(file_obj)
        else:
            buffer = file_obj
            buffer.seek(0)

        size = len(buffer.getbuffer()) if isinstance(buffer, io.BytesIO) else None
        try:
            self._client.upload_fileobj(buffer, self.bucket, key, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to upload to S3: {exc}") from exc

        return StoredFile(key=key, storage_url=f"s3://{self.bucket}/{key}", size=size or 0)

    def public_url(self, key: str, ttl: timedelta = timedelta(hours=1)) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(ttl.total_seconds()),
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to generate presigned URL: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"Failed to delete S3 object: {exc}") from exc


def get_storage_service() -> StorageService:
    return StorageService()
