"""
Source acquisition stage.

Resolves a stream, local path, or URL into a readable byte stream, fetching
remote images into a temp file owned by the running pipeline.
"""

from image_uploader.source.resolver import make_temp_path, resolve_source

__all__ = ["make_temp_path", "resolve_source"]
