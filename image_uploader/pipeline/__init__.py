"""
Pipeline orchestration.

Runs source acquisition, resize, upload and cleanup for each job and hands
the caller exactly one result per invocation. The cleanup stage lives in
``image_uploader.pipeline.cleanup``.
"""

from image_uploader.pipeline.runner import PipelineRunner, once, upload_batch, upload_image

__all__ = [
    "PipelineRunner",
    "once",
    "upload_batch",
    "upload_image",
]
