import logging
from typing import BinaryIO, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError, EndpointConnectionError

from swingscore.core.config import settings
from swingscore.core.errors import PermanentStorage, TransientStorage

logger = logging.getLogger(__name__)

_TRANSIENT_CODES = {
    "Throttling",
    "ThrottlingException",
    "SlowDown",
    "RequestTimeout",
    "RequestTimeTooSkewed",
    "ServiceUnavailable",
    "InternalError",
}


def _storage_error(exc: Exception):
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0)
        if code in _TRANSIENT_CODES or status >= 500:
            return TransientStorage(f"Object store unavailable: {code or status}")
        return PermanentStorage(f"Object store error: {code or exc}")
    if isinstance(exc, EndpointConnectionError):
        return TransientStorage(f"Object store unreachable: {exc}")
    return PermanentStorage(f"Object store error: {exc}")


class S3ObjectStore:
    """Durable storage for self-owned swing videos."""

    def __init__(self, client=None, bucket: Optional[str] = None):
        self.s3_client = client or boto3.client("s3", region_name=settings.aws_region)
        self.bucket = bucket or settings.s3_bucket

    def put(self, path: str, blob: BinaryIO, content_type: str = "application/octet-stream") -> str:
        """Upload a file object and return its path."""
        try:
            self.s3_client.upload_fileobj(
                blob,
                self.bucket,
                path,
                ExtraArgs={"ContentType": content_type},
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error uploading to S3: {e}")
            raise _storage_error(e) from e
        logger.info(f"Uploaded file to s3://{self.bucket}/{path}")
        return path

    def url(self, path: str, expiration: Optional[int] = None) -> str:
        """Generate presigned URL for S3 object."""
        if expiration is None:
            expiration = settings.presigned_url_ttl
        try:
            return self.s3_client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=expiration,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error generating presigned URL: {e}")
            raise _storage_error(e) from e

    def delete(self, path: str) -> None:
        try:
            self.s3_client.delete_object(Bucket=self.bucket, Key=path)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Error deleting s3://{self.bucket}/{path}: {e}")
            raise _storage_error(e) from e
        logger.info(f"Deleted s3://{self.bucket}/{path}")
