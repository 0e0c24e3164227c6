"""
Object store upload stage.

Provides the upload stage and the object store backends it delegates to
(Amazon S3 via boto3, Google Cloud Storage via google-cloud-storage).
"""

from .stores import GCSObjectStore, ObjectStore, S3ObjectStore, create_store
from .uploader import destination_options, upload_stream

__all__ = [
    "GCSObjectStore",
    "ObjectStore",
    "S3ObjectStore",
    "create_store",
    "destination_options",
    "upload_stream",
]
