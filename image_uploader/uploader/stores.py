"""
Object store backends.

Each backend implements the narrow ``upload_fileobj`` boundary the upload
stage calls through: stream a readable body to bucket/key with the merged
destination options and return the retrieval location.

- S3ObjectStore: Amazon S3 and S3-compatible stores (MinIO, R2) via boto3
- GCSObjectStore: Google Cloud Storage via google-cloud-storage

Destination options use S3 names (ACL, StorageClass, ContentType, Metadata,
CacheControl, ...); the GCS backend translates them.
"""

from typing import Any, Dict, Mapping, Optional, Protocol
from urllib.parse import quote

import boto3
from botocore.config import Config as BotoConfig
from google.cloud import storage

from image_uploader.utils.config import PipelineConfig
from image_uploader.utils.logging import get_logger

logger = get_logger(__name__)

# Destination options that map to boto3 upload ExtraArgs
S3_EXTRA_ARGS = frozenset(
    [
        "ACL",
        "CacheControl",
        "ContentDisposition",
        "ContentEncoding",
        "ContentLanguage",
        "ContentType",
        "Expires",
        "Metadata",
        "ServerSideEncryption",
        "SSEKMSKeyId",
        "StorageClass",
        "Tagging",
        "WebsiteRedirectLocation",
    ]
)

# S3 canned ACL -> GCS predefined ACL
GCS_PREDEFINED_ACLS = {
    "private": "private",
    "public-read": "publicRead",
    "public-read-write": "publicReadWrite",
    "authenticated-read": "authenticatedRead",
    "bucket-owner-read": "bucketOwnerRead",
    "bucket-owner-full-control": "bucketOwnerFullControl",
}

# S3 storage class -> GCS storage class
GCS_STORAGE_CLASSES = {
    "STANDARD": "STANDARD",
    "REDUCED_REDUNDANCY": "STANDARD",
    "STANDARD_IA": "NEARLINE",
    "ONEZONE_IA": "NEARLINE",
    "INTELLIGENT_TIERING": "STANDARD",
    "GLACIER_IR": "COLDLINE",
    "GLACIER": "ARCHIVE",
    "DEEP_ARCHIVE": "ARCHIVE",
    "NEARLINE": "NEARLINE",
    "COLDLINE": "COLDLINE",
    "ARCHIVE": "ARCHIVE",
}


class ObjectStore(Protocol):
    """Streaming upload boundary of an object store."""

    name: str

    def upload_fileobj(
        self,
        stream: Any,
        bucket: str,
        key: str,
        options: Mapping[str, Any],
    ) -> str:
        """Upload ``stream`` to bucket/key and return its retrieval location."""
        ...


class S3ObjectStore:
    """
    Amazon S3 (or S3-compatible) store.

    Uses boto3's managed transfer, which switches to multipart uploads for
    large bodies on its own.
    """

    name = "s3"

    def __init__(
        self,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client: Any = None,
    ) -> None:
        self.region = region
        self.endpoint_url = endpoint_url.rstrip("/") if endpoint_url else None
        if client is None:
            client = boto3.client(
                "s3",
                region_name=region,
                endpoint_url=endpoint_url,
                config=BotoConfig(retries={"mode": "standard"}),
            )
        self._client = client

    def upload_fileobj(
        self,
        stream: Any,
        bucket: str,
        key: str,
        options: Mapping[str, Any],
    ) -> str:
        extra_args = {k: v for k, v in options.items() if k in S3_EXTRA_ARGS}
        ignored = sorted(set(options) - S3_EXTRA_ARGS - {"Bucket", "Key"})
        if ignored:
            logger.warning(f"Ignoring destination options not supported by S3: {ignored}")

        self._client.upload_fileobj(
            Fileobj=stream,
            Bucket=bucket,
            Key=key,
            ExtraArgs=extra_args,
        )
        return self.location(bucket, key)

    def location(self, bucket: str, key: str) -> str:
        """Public URL of bucket/key."""
        quoted_key = quote(key, safe="/~")
        if self.endpoint_url:
            return f"{self.endpoint_url}/{bucket}/{quoted_key}"
        if self.region and self.region != "us-east-1":
            return f"https://{bucket}.s3.{self.region}.amazonaws.com/{quoted_key}"
        return f"https://{bucket}.s3.amazonaws.com/{quoted_key}"


class GCSObjectStore:
    """Google Cloud Storage store."""

    name = "gcs"

    def __init__(self, client: Any = None, timeout_seconds: int = 300) -> None:
        self._client = client if client is not None else storage.Client()
        self.timeout_seconds = timeout_seconds

    def upload_fileobj(
        self,
        stream: Any,
        bucket: str,
        key: str,
        options: Mapping[str, Any],
    ) -> str:
        blob = self._client.bucket(bucket).blob(key)

        storage_class = options.get("StorageClass")
        if storage_class:
            blob.storage_class = GCS_STORAGE_CLASSES.get(storage_class, storage_class)
        if options.get("Metadata"):
            blob.metadata = dict(options["Metadata"])
        if options.get("CacheControl"):
            blob.cache_control = options["CacheControl"]

        kwargs: Dict[str, Any] = {
            "content_type": options.get("ContentType"),
            "timeout": self.timeout_seconds,
        }
        acl = options.get("ACL")
        if acl:
            kwargs["predefined_acl"] = GCS_PREDEFINED_ACLS.get(acl, acl)

        logger.debug(f"Uploading to gs://{bucket}/{key} (timeout: {self.timeout_seconds}s)")
        blob.upload_from_file(stream, **kwargs)
        return blob.public_url


def create_store(config: PipelineConfig) -> ObjectStore:
    """Build the object store backend selected by ``config.storage_backend``."""
    if config.storage_backend == "gcs":
        return GCSObjectStore(timeout_seconds=config.upload_timeout_seconds)
    return S3ObjectStore(region=config.aws_region, endpoint_url=config.s3_endpoint_url)
