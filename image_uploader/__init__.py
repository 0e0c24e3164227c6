"""
Image Upload Pipeline

Fetches an image from a stream, a local file, or a URL, optionally resizes it
with ImageMagick, uploads it to an object store (Amazon S3 or Google Cloud
Storage) and removes every temp file it created, whatever the outcome.

This package provides modular components for each stage of the pipeline:
- source: stream / path / URL acquisition
- resizer: WIDTHxHEIGHT resizing through an external filter
- uploader: object store upload and backends
- pipeline: stage sequencing, cleanup, exactly-once completion
- utils: logging, configuration, metrics

Example usage:
    >>> from image_uploader import upload_image
    >>> result = upload_image("cat.png", "images", "cats/1.jpg", "100x200")
    >>> print(result.location or result.error)
"""

__version__ = "0.1.0"

from image_uploader.errors import (
    BadRemoteStatus,
    BadSizeSpec,
    CleanupWarning,
    DownloadFailed,
    EmptyDownload,
    ErrorCode,
    ImageUploadError,
    InvalidBucket,
    InvalidConfiguration,
    InvalidKey,
    InvalidSource,
    PipelineInternalError,
    ResizeFailed,
    ResizeStreamUnavailable,
    SourceNotFound,
    UnreadableSource,
    UploadFailed,
    UpstreamFetchFailed,
)
from image_uploader.models import JobParams, PipelineResult, ResizeSpec
from image_uploader.pipeline import PipelineRunner, upload_batch, upload_image
from image_uploader.utils.config import PipelineConfig
from image_uploader.utils.logging import setup_logging

# Initialize default logging configuration
setup_logging()

__all__ = [
    "BadRemoteStatus",
    "BadSizeSpec",
    "CleanupWarning",
    "DownloadFailed",
    "EmptyDownload",
    "ErrorCode",
    "ImageUploadError",
    "InvalidBucket",
    "InvalidConfiguration",
    "InvalidKey",
    "InvalidSource",
    "JobParams",
    "PipelineConfig",
    "PipelineInternalError",
    "PipelineResult",
    "PipelineRunner",
    "ResizeFailed",
    "ResizeSpec",
    "ResizeStreamUnavailable",
    "SourceNotFound",
    "UnreadableSource",
    "UploadFailed",
    "UpstreamFetchFailed",
    "upload_batch",
    "upload_image",
]
