"""
Object Storage

Attachment and secure-message blobs. Uses an S3 compatible bucket (AWS, B2,
MinIO) when credentials are configured, otherwise a local directory so that
development works without a bucket.
"""
import logging
from pathlib import Path
from typing import Optional, Union

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

Body = Union[bytes, str]


class ObjectStorage:
    """
    Put/get/delete blobs by key.

    Args:
        bucket: S3 bucket (None selects the local backend)
        client: boto3 S3 client, created from settings when omitted
        local_path: Root directory for the local backend
    """

    def __init__(self, bucket: Optional[str] = None, client=None, local_path: Union[str, Path] = ".storage",
                 signed_url_expiry: int = 3600):
        self.bucket = bucket
        self.client = client
        self.local_path = Path(local_path)
        self.signed_url_expiry = signed_url_expiry

    @classmethod
    def from_settings(cls, settings) -> "ObjectStorage":
        if not settings.s3_configured:
            logger.info(f"S3 not configured - using local storage at {settings.local_storage_path}")
            return cls(local_path=settings.local_storage_path, signed_url_expiry=settings.signed_url_expiry)

        client = boto3.client(
            "s3",
            endpoint_url=settings.s3_endpoint,
            region_name=settings.s3_region,
            aws_access_key_id=settings.s3_access_key,
            aws_secret_access_key=settings.s3_secret_key,
        )
        return cls(bucket=settings.s3_bucket, client=client, signed_url_expiry=settings.signed_url_expiry)

    @property
    def is_remote(self) -> bool:
        return self.bucket is not None and self.client is not None

    def _local_file(self, key: str) -> Path:
        path = (self.local_path / key).resolve()
        root = self.local_path.resolve()
        if root not in path.parents and path != root:
            raise ValueError(f"Storage key escapes storage root: {key}")
        return path

    def upload(self, key: str, body: Body, content_type: str = "application/octet-stream") -> str:
        """
        Store a blob.

        Returns:
            The key
        """
        data = body.encode('utf-8') if isinstance(body, str) else body

        if self.is_remote:
            try:
                self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
            except ClientError as e:
                logger.error(f"Error uploading {key} to storage: {e}")
                raise
            return key

        path = self._local_file(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug(f"Saved locally: {path}")
        return key

    def get(self, key: str) -> Optional[bytes]:
        """Fetch a blob, None if it does not exist."""
        if self.is_remote:
            try:
                obj = self.client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code")
                if code in ("NoSuchKey", "404"):
                    return None
                logger.error(f"Error reading {key} from storage: {e}")
                raise
            return obj["Body"].read()

        path = self._local_file(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def delete(self, key: str) -> None:
        if self.is_remote:
            self.client.delete_object(Bucket=self.bucket, Key=key)
            return

        path = self._local_file(key)
        if path.exists():
            path.unlink()

    def get_signed_url(self, key: str) -> str:
        """Presigned download URL (local backend returns a file:// URL)."""
        if self.is_remote:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.signed_url_expiry,
            )
        return self._local_file(key).as_uri()


# Global storage instance
_storage: Optional[ObjectStorage] = None


def get_storage() -> ObjectStorage:
    global _storage
    if _storage is None:
        from backend.core.config import get_settings
        _storage = ObjectStorage.from_settings(get_settings())
    return _storage


def reset_storage() -> None:
    global _storage
    _storage = None


def upload_to_storage(key: str, body: Body, content_type: str = "application/octet-stream") -> str:
    return get_storage().upload(key, body, content_type)


def get_from_storage(key: str) -> Optional[bytes]:
    return get_storage().get(key)


def delete_from_storage(key: str) -> None:
    get_storage().delete(key)
