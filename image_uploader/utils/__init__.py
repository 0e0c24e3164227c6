"""
Utility modules for the image upload pipeline.

This package provides shared utilities used across all pipeline stages:
- logging: Structured logging with entry/exit decorators
- config: Process-wide configuration and YAML settings loading
- metrics: Prometheus instrumentation
"""

from image_uploader.utils.logging import get_logger, log_function_call

__all__ = ["get_logger", "log_function_call"]
