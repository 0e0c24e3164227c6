"""Cleanup stage: release every handle and temp file an invocation created."""

import errno
import os
from typing import Any, List

from image_uploader.errors import CleanupWarning
from image_uploader.models import PipelineState
from image_uploader.utils.logging import get_logger, report_error
from image_uploader.utils.metrics import get_metrics
from image_uploader.utils.streams import close_quietly

logger = get_logger(__name__)

metrics = get_metrics()


def remove_temp_file(path: str, error_logger: Any) -> List[CleanupWarning]:
    """
    Delete one temp file. A file that is already gone counts as removed.

    Returns:
        A one-element list holding the CleanupWarning on failure, else []
    """
    try:
        os.unlink(path)
    except FileNotFoundError:
        logger.debug(f"Temp file already absent: {path}")
        return []
    except OSError as e:
        if e.errno == errno.ENOENT:
            return []
        warning = CleanupWarning(path, e)
        report_error(error_logger, f"cleanup: {path}: {e}")
        metrics.record_cleanup_warning()
        return [warning]

    logger.debug(f"Removed temp file: {path}")
    return []


def cleanup(state: PipelineState, error_logger: Any) -> List[CleanupWarning]:
    """
    Close owned streams, then remove temp file #1 and temp file #2.

    Never raises: every problem becomes a CleanupWarning reported through
    ``error_logger.error`` and the remaining steps still run.

    Returns:
        Warnings collected during this call (also appended to state.warnings)
    """
    warnings: List[CleanupWarning] = []

    for stream in state.owned_streams:
        error = close_quietly(stream)
        if error is not None:
            logger.debug(f"Closing pipeline stream failed: {error}")
    state.owned_streams.clear()

    for path in state.temp_files():
        warnings.extend(remove_temp_file(path, error_logger))

    state.warnings.extend(warnings)
    return warnings
