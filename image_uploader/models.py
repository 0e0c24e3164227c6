"""
Data model for one pipeline invocation.

JobParams is the validated, immutable description of a job. PipelineState is
the mutable record the stages thread through an invocation; only the stage
currently executing writes to it. PipelineResult is what the caller gets back.
"""

import os
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Union
from urllib.parse import urlsplit

from image_uploader.errors import (
    BadSizeSpec,
    CleanupWarning,
    ImageUploadError,
    InvalidBucket,
    InvalidKey,
    InvalidSource,
)

SIZE_PATTERN = re.compile(r"([0-9]+)x([0-9]+)")
URL_SCHEMES = ("http", "https")


class SourceKind(str, Enum):
    """Where the image bytes come from."""

    STREAM = "stream"
    PATH = "path"
    URL = "url"


class Stage(str, Enum):
    """Pipeline states, in execution order."""

    ACQUIRING = "acquiring"
    RESIZING = "resizing"
    UPLOADING = "uploading"
    CLEANING_UP = "cleaning_up"
    DONE = "done"


@dataclass(frozen=True)
class ResizeSpec:
    """Target dimensions for the resize stage."""

    width: int
    height: int

    @classmethod
    def parse(cls, text: Any) -> "ResizeSpec":
        """
        Parse a ``WIDTHxHEIGHT`` string.

        Raises:
            BadSizeSpec: If text is not two positive integers joined by "x"
        """
        if not isinstance(text, str):
            raise BadSizeSpec(text)
        match = SIZE_PATTERN.fullmatch(text)
        if match is None:
            raise BadSizeSpec(text)
        width, height = int(match.group(1)), int(match.group(2))
        if width == 0 or height == 0:
            raise BadSizeSpec(text)
        return cls(width, height)

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


def is_url(value: Any) -> bool:
    """Return True for http(s) URL strings with a host."""
    if not isinstance(value, str):
        return False
    parts = urlsplit(value)
    return parts.scheme.lower() in URL_SCHEMES and bool(parts.netloc)


def classify_source(source: Any) -> SourceKind:
    """
    Decide which kind of source reference ``source`` is.

    Raises:
        InvalidSource: If source is not a stream, a path, or a URL
    """
    try:
        url = is_url(source)
    except ValueError as e:
        # urlsplit rejects malformed hosts such as "http://[::1/img.jpg"
        raise InvalidSource(
            f"Malformed URL source: {source!r}: {e}",
            context={"source_type": type(source).__name__},
            cause=e,
        ) from e
    if url:
        return SourceKind.URL
    if callable(getattr(source, "read", None)):
        return SourceKind.STREAM
    if isinstance(source, os.PathLike) or (isinstance(source, str) and source):
        return SourceKind.PATH
    raise InvalidSource(
        f"Unsupported source reference: {source!r}",
        context={"source_type": type(source).__name__},
    )


@dataclass(frozen=True)
class JobParams:
    """
    Validated parameters of one upload job.

    Attributes:
        source: Readable stream, local path, or http(s) URL
        bucket: Destination bucket
        key: Destination object key
        size: Resize target, None to upload the source unchanged
        metadata: Per-job destination option overrides
        job_id: Identifier used as the log correlation id
    """

    source: Any
    bucket: str
    key: str
    size: Optional[ResizeSpec] = None
    metadata: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    job_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    source_kind: SourceKind = field(init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.bucket, str) or not self.bucket.strip():
            raise InvalidBucket(self.bucket)
        if not isinstance(self.key, str) or not self.key.strip():
            raise InvalidKey(self.key)
        if self.size is not None and not isinstance(self.size, ResizeSpec):
            raise BadSizeSpec(self.size)
        object.__setattr__(self, "source_kind", classify_source(self.source))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def create(
        cls,
        source: Any,
        bucket: Any,
        key: Any,
        size: Union[str, ResizeSpec, None] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> "JobParams":
        """
        Build JobParams from loosely typed caller input.

        The bucket is checked first so an empty bucket is reported before
        anything else; a size string is parsed into a ResizeSpec.
        """
        if not isinstance(bucket, str) or not bucket.strip():
            raise InvalidBucket(bucket)
        spec = size if isinstance(size, ResizeSpec) or size is None else ResizeSpec.parse(size)
        return cls(source=source, bucket=bucket, key=key, size=spec, metadata=metadata or {})

    @property
    def source_label(self) -> str:
        if self.source_kind is SourceKind.STREAM:
            return f"<stream {getattr(self.source, 'name', type(self.source).__name__)}>"
        return os.fspath(self.source)


@dataclass
class PipelineState:
    """
    Mutable state of one running invocation.

    Attributes:
        stage: Stage currently executing
        stream: Active readable handle (most recent artifact)
        tmp_download: Temp file holding a downloaded URL source
        tmp_resized: Temp file holding the resize output
        owned_streams: Handles the pipeline opened and must close
        location: Retrieval location returned by the object store
        warnings: Non-fatal cleanup problems
    """

    stage: Stage = Stage.ACQUIRING
    stream: Any = None
    tmp_download: Optional[str] = None
    tmp_resized: Optional[str] = None
    owned_streams: List[Any] = field(default_factory=list)
    location: Optional[str] = None
    warnings: List[CleanupWarning] = field(default_factory=list)

    def adopt(self, stream: Any) -> Any:
        """Make ``stream`` the active handle and take ownership of it."""
        self.owned_streams.append(stream)
        self.stream = stream
        return stream

    def temp_files(self) -> List[str]:
        return [path for path in (self.tmp_download, self.tmp_resized) if path]


@dataclass(frozen=True)
class PipelineResult:
    """
    Outcome of one invocation: exactly one of location and error is set.

    Attributes:
        location: Retrieval location of the uploaded object
        error: First fatal error encountered
        warnings: Cleanup warnings (never fatal)
    """

    location: Optional[str] = None
    error: Optional[ImageUploadError] = None
    warnings: List[CleanupWarning] = field(default_factory=list)

    def __post_init__(self) -> None:
        if (self.location is None) == (self.error is None):
            raise ValueError("PipelineResult needs exactly one of location or error")

    @property
    def success(self) -> bool:
        return self.error is None
