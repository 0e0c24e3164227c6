"""
Resize stage.

Validates WIDTHxHEIGHT resize targets and pipes the active stream through an
external ImageMagick filter into a temp file owned by the running pipeline.
"""

from image_uploader.resizer.resizer import ImageMagickFilter, parse_size, resize_stream

__all__ = ["ImageMagickFilter", "parse_size", "resize_stream"]
