"""
S3-compatible object storage for rendered PDFs.

Works against AWS S3 or any S3 API (Cloudflare R2, MinIO) through
``endpoint_url``. Credentials come from the standard AWS environment
variables (``AWS_ACCESS_KEY_ID``, ``AWS_SECRET_ACCESS_KEY``).
"""

from typing import Optional

import boto3
from botocore.config import Config

from ..config.loader import WorkerConfig
from ..utils.logger import get_logger

logger = get_logger(__name__)

PDF_CONTENT_TYPE = "application/pdf"


def create_s3_client(endpoint_url: Optional[str] = None, region_name: Optional[str] = None):
    """boto3 S3 client that signs download URLs with SigV4."""
    session = boto3.session.Session()
    return session.client(
        "s3",
        endpoint_url=endpoint_url,
        region_name=region_name,
        config=Config(signature_version="s3v4"),
    )


class S3ObjectStore:
    """Uploads objects to one bucket and hands out presigned download URLs."""

    def __init__(self, bucket: str, client=None):
        """Initialize the store.

        Args:
            bucket: Bucket that holds rendered PDFs
            client: boto3 S3 client (a default one is created if omitted)

        Raises:
            ValueError: If the bucket name is empty
        """
        if not bucket:
            raise ValueError("bucket is required")
        self.bucket = bucket
        self.client = client or create_s3_client()

    def put(self, key: str, data: bytes, content_type: str = PDF_CONTENT_TYPE) -> str:
        """Upload ``data`` under ``key``, replacing any existing object."""
        self.client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
        logger.debug("Uploaded %d bytes to s3://%s/%s", len(data), self.bucket, key)
        return key

    def signed_url(self, key: str, ttl_seconds: int) -> str:
        """Download URL for ``key`` that stops working after ``ttl_seconds``."""
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=ttl_seconds,
        )


def build_object_store(config: WorkerConfig) -> Optional[S3ObjectStore]:
    """Object store for ``config``, or None when no bucket is configured."""
    if not config.storage_enabled:
        return None
    client = create_s3_client(config.endpoint_url, config.region)
    return S3ObjectStore(config.bucket, client=client)
