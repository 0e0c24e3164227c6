"""
Error hierarchy for the image upload pipeline.

Every pipeline error inherits from :class:`ImageUploadError` and carries a
machine-readable ``code`` (from :class:`ErrorCode`), a human-readable
``message``, a structured ``context`` dict (offending status code, size
string, path, ...) and an optional ``cause`` (the chained library error).

Fatal errors are raised by the stage that detects them and turned into the
single completion result by the pipeline runner. :class:`CleanupWarning` is
the exception: it is created and logged during cleanup but never raised.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes for every pipeline failure."""

    INVALID_SOURCE = "INVALID_SOURCE"
    INVALID_BUCKET = "INVALID_BUCKET"
    INVALID_KEY = "INVALID_KEY"
    SOURCE_NOT_FOUND = "SOURCE_NOT_FOUND"
    BAD_REMOTE_STATUS = "BAD_REMOTE_STATUS"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    EMPTY_DOWNLOAD = "EMPTY_DOWNLOAD"
    BAD_SIZE_SPEC = "BAD_SIZE_SPEC"
    RESIZE_STREAM_UNAVAILABLE = "RESIZE_STREAM_UNAVAILABLE"
    RESIZE_FAILED = "RESIZE_FAILED"
    UNREADABLE_SOURCE = "UNREADABLE_SOURCE"
    UPSTREAM_FETCH_FAILED = "UPSTREAM_FETCH_FAILED"
    UPLOAD_FAILED = "UPLOAD_FAILED"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    CLEANUP_WARNING = "CLEANUP_WARNING"


class ImageUploadError(Exception):
    """
    Base exception for all pipeline errors.

    Attributes:
        code: Value from ErrorCode identifying the error category
        message: Developer-friendly description of what went wrong
        context: Structured diagnostic detail, documented per subclass
        cause: The underlying exception, if this error wraps another
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.message = message
        self.context: Dict[str, Any] = context or {}
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    def __repr__(self) -> str:
        ctx = f", context={self.context!r}" if self.context else ""
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r}{ctx})"


# ---------------------------------------------------------------------------
# Boundary validation
# ---------------------------------------------------------------------------

class InvalidSource(ImageUploadError):
    """Source is neither a readable stream, a path, nor an http(s) URL.

    Context keys: ``source_type``.
    """

    code = ErrorCode.INVALID_SOURCE


class InvalidBucket(ImageUploadError):
    """Destination bucket is missing or empty. Context keys: ``bucket``."""

    code = ErrorCode.INVALID_BUCKET

    def __init__(self, bucket: Any) -> None:
        super().__init__(f"Bad bucket name: {bucket!r}", context={"bucket": bucket})


class InvalidKey(ImageUploadError):
    """Destination key is missing or empty. Context keys: ``key``."""

    code = ErrorCode.INVALID_KEY

    def __init__(self, key: Any) -> None:
        super().__init__(f"Bad object key: {key!r}", context={"key": key})


class BadSizeSpec(ImageUploadError):
    """Resize string does not match ``<digits>x<digits>``. Context keys: ``size``."""

    code = ErrorCode.BAD_SIZE_SPEC

    def __init__(self, size: Any) -> None:
        self.size = size
        super().__init__(f"Bad size string: {size!r}", context={"size": size})


# ---------------------------------------------------------------------------
# Source acquisition
# ---------------------------------------------------------------------------

class SourceNotFound(ImageUploadError):
    """Local source path could not be stat'ed or opened. Context keys: ``path``."""

    code = ErrorCode.SOURCE_NOT_FOUND

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Source file not found: {path}", context={"path": path}, cause=cause)


class BadRemoteStatus(ImageUploadError):
    """Remote fetch answered outside the 2xx range.

    Context keys: ``status_code``, ``url``.
    """

    code = ErrorCode.BAD_REMOTE_STATUS

    def __init__(self, status_code: int, url: str) -> None:
        self.status_code = status_code
        super().__init__(
            f"Bad status code: {status_code} fetching {url}",
            context={"status_code": status_code, "url": url},
        )


class DownloadFailed(ImageUploadError):
    """Network or local write error while fetching a URL. Context keys: ``url``."""

    code = ErrorCode.DOWNLOAD_FAILED

    def __init__(self, url: str, cause: BaseException) -> None:
        super().__init__(
            f"Download of {url} failed: {type(cause).__name__}: {cause}",
            context={"url": url},
            cause=cause,
        )


class EmptyDownload(ImageUploadError):
    """Download finished but produced no bytes (or no regular file).

    Context keys: ``url``, ``path``.
    """

    code = ErrorCode.EMPTY_DOWNLOAD

    def __init__(self, url: str, path: str) -> None:
        super().__init__(f"No image downloaded from {url}", context={"url": url, "path": path})


# ---------------------------------------------------------------------------
# Resize
# ---------------------------------------------------------------------------

class ResizeStreamUnavailable(ImageUploadError):
    """The resize filter could not be started or cannot accept input.

    Context keys: ``command``.
    """

    code = ErrorCode.RESIZE_STREAM_UNAVAILABLE


class ResizeFailed(ImageUploadError):
    """The resize filter reported an error. Context keys: ``size``, ``detail``."""

    code = ErrorCode.RESIZE_FAILED


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

class UnreadableSource(ImageUploadError):
    """The final stream is not readable when the upload starts."""

    code = ErrorCode.UNREADABLE_SOURCE


class UpstreamFetchFailed(ImageUploadError):
    """The stream proxies an HTTP response whose status is not 200.

    Context keys: ``status_code``.
    """

    code = ErrorCode.UPSTREAM_FETCH_FAILED

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(
            f"Failed to download: {status_code} error.",
            context={"status_code": status_code},
        )


class UploadFailed(ImageUploadError):
    """The object store rejected or aborted the transfer.

    Context keys: ``bucket``, ``key``.
    """

    code = ErrorCode.UPLOAD_FAILED

    def __init__(self, bucket: str, key: str, cause: BaseException) -> None:
        super().__init__(
            f"Upload to {bucket}/{key} failed: {type(cause).__name__}: {cause}",
            context={"bucket": bucket, "key": key},
            cause=cause,
        )


class InvalidConfiguration(ImageUploadError):
    """Process configuration could not be loaded from the environment."""

    code = ErrorCode.INVALID_CONFIGURATION


class PipelineInternalError(ImageUploadError):
    """An unexpected exception escaped a stage. Context keys: ``stage``."""

    code = ErrorCode.INTERNAL_ERROR


# ---------------------------------------------------------------------------
# Non-fatal
# ---------------------------------------------------------------------------

class CleanupWarning(ImageUploadError):
    """A temp file could not be removed. Logged, never raised to the caller.

    Context keys: ``path``.
    """

    code = ErrorCode.CLEANUP_WARNING

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"cleanup: {cause}", context={"path": path}, cause=cause)
