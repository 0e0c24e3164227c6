"""
Upload stage.

Pushes the final stream to the object store under the destination
bucket/key, with the caller's options merged over the process defaults.

Example usage:
    >>> from image_uploader.uploader import destination_options, upload_stream
    >>> options = destination_options(config.destination_defaults(), {}, "images", "cats/1.jpg")
    >>> with open("cat.jpg", "rb") as f:
    ...     location = upload_stream(f, options, store)
"""

import time
from typing import Any, Dict, Mapping, Optional

from image_uploader.errors import UnreadableSource, UploadFailed, UpstreamFetchFailed
from image_uploader.uploader.stores import ObjectStore
from image_uploader.utils.logging import get_logger, log_function_call
from image_uploader.utils.metrics import get_metrics
from image_uploader.utils.streams import is_readable, response_status

# Module logger
logger = get_logger(__name__)

# Module metrics
metrics = get_metrics()


def destination_options(
    defaults: Mapping[str, Any],
    overrides: Optional[Mapping[str, Any]],
    bucket: str,
    key: str,
) -> Dict[str, Any]:
    """
    Merge per-call destination options over the defaults.

    Returns a new dict; ``defaults`` is never modified. Later layers win:
    defaults < overrides < bucket/key.

    Example:
        >>> destination_options({"ACL": "public-read"}, {"ACL": "private"}, "b", "k")
        {'ACL': 'private', 'Bucket': 'b', 'Key': 'k'}
    """
    merged: Dict[str, Any] = dict(defaults)
    if overrides:
        merged.update(overrides)
    merged["Bucket"] = bucket
    merged["Key"] = key
    return merged


@log_function_call
def upload_stream(stream: Any, options: Mapping[str, Any], store: ObjectStore) -> str:
    """
    Upload ``stream`` to the object store.

    Args:
        stream: Final readable stream
        options: Merged destination options including Bucket and Key
        store: Object store backend

    Returns:
        Retrieval location of the uploaded object

    Raises:
        UnreadableSource: Stream is closed or not readable
        UpstreamFetchFailed: Stream proxies an HTTP response with a non-200 status
        UploadFailed: The store transfer failed, including mid-transfer read errors
    """
    if not is_readable(stream):
        raise UnreadableSource("Non-readable stream for upload")

    status = response_status(stream)
    if status is not None and status != 200:
        raise UpstreamFetchFailed(status)

    bucket = options["Bucket"]
    key = options["Key"]
    backend = getattr(store, "name", type(store).__name__)
    store_options = {k: v for k, v in options.items() if k not in ("Bucket", "Key")}

    logger.info(f"Uploading to {backend}://{bucket}/{key}")
    start_time = time.time()
    try:
        location = store.upload_fileobj(stream, bucket, key, store_options)
    except Exception as e:
        # boto3, botocore and google-api-core raise unrelated hierarchies
        metrics.record_upload("failure", backend)
        raise UploadFailed(bucket, key, e) from e

    if not location:
        metrics.record_upload("failure", backend)
        raise UploadFailed(bucket, key, ValueError("object store returned no location"))

    metrics.record_upload("success", backend)
    logger.info(f"Upload successful: {location} ({time.time() - start_time:.2f}s)")
    return location
