"""
Source acquisition stage.

Turns the job's source reference into a readable binary stream positioned at
the start of the image bytes:

- stream: used as-is, no temp file
- local path: stat'ed and opened for reading
- URL: fetched with httpx into a temp file, which is then opened for reading

Example usage:
    >>> import httpx
    >>> from image_uploader.models import JobParams, PipelineState
    >>> job = JobParams.create("https://example.com/cat.jpg", "images", "cats/1.jpg")
    >>> state = PipelineState()
    >>> with httpx.Client() as client:
    ...     resolve_source(job, state, client)
"""

import os
import stat
import tempfile
from typing import Any, Optional

import httpx

from image_uploader.errors import (
    BadRemoteStatus,
    DownloadFailed,
    EmptyDownload,
    SourceNotFound,
    UnreadableSource,
)
from image_uploader.models import JobParams, PipelineState, SourceKind
from image_uploader.utils.logging import get_logger, log_function_call
from image_uploader.utils.metrics import get_metrics
from image_uploader.utils.streams import is_readable

# Module logger
logger = get_logger(__name__)

# Module metrics
metrics = get_metrics()

TEMP_SUFFIX = ".jpg"
TEMP_PREFIX = "image-upload-"
DOWNLOAD_CHUNK_BYTES = 64 * 1024


def make_temp_path(temp_dir: Optional[str] = None) -> str:
    """
    Reserve a unique ``.jpg`` temp file path.

    The file is created empty (so the name cannot be taken by anyone else)
    and left for the caller to overwrite.
    """
    fd, path = tempfile.mkstemp(suffix=TEMP_SUFFIX, prefix=TEMP_PREFIX, dir=temp_dir)
    os.close(fd)
    return path


@log_function_call
def resolve_source(
    job: JobParams,
    state: PipelineState,
    http_client: httpx.Client,
    temp_dir: Optional[str] = None,
) -> Any:
    """
    Acquire the source image and make it the active stream.

    Args:
        job: Validated job parameters
        state: Pipeline state; receives the stream and, for URLs, temp file #1
        http_client: Client used for URL sources
        temp_dir: Directory for the download temp file (OS default if None)

    Returns:
        The readable stream now set as ``state.stream``

    Raises:
        UnreadableSource: Stream source is closed or not readable
        SourceNotFound: Local path cannot be stat'ed or opened
        BadRemoteStatus: URL answered outside 2xx
        DownloadFailed: Transport or local write error during the fetch
        EmptyDownload: URL fetch produced no bytes
    """
    if job.source_kind is SourceKind.STREAM:
        if not is_readable(job.source):
            raise UnreadableSource("Source stream is not readable")
        logger.debug("Using caller-supplied stream as source")
        state.stream = job.source
        return state.stream

    if job.source_kind is SourceKind.PATH:
        return _open_local(os.fspath(job.source), state)

    return _download(job.source, state, http_client, temp_dir)


def _open_local(path: str, state: PipelineState) -> Any:
    try:
        st = os.stat(path)
    except OSError as e:
        raise SourceNotFound(path, cause=e) from e
    if not stat.S_ISREG(st.st_mode):
        raise SourceNotFound(path)

    try:
        stream = open(path, "rb")
    except OSError as e:
        raise SourceNotFound(path, cause=e) from e

    logger.info(f"Reading source file: {path} ({st.st_size} bytes)")
    return state.adopt(stream)


def _download(
    url: str,
    state: PipelineState,
    http_client: httpx.Client,
    temp_dir: Optional[str],
) -> Any:
    # Slot is recorded before any I/O so a partial download is always cleaned up
    state.tmp_download = tmp_path = make_temp_path(temp_dir)
    logger.info(f"Downloading {url} -> {tmp_path}")

    try:
        with open(tmp_path, "wb") as out:
            with http_client.stream("GET", url) as response:
                if not 200 <= response.status_code < 300:
                    metrics.record_download("bad_status")
                    raise BadRemoteStatus(response.status_code, url)
                for chunk in response.iter_bytes(DOWNLOAD_CHUNK_BYTES):
                    out.write(chunk)
    except httpx.HTTPError as e:
        metrics.record_download("error")
        raise DownloadFailed(url, e) from e
    except OSError as e:
        metrics.record_download("error")
        raise DownloadFailed(url, e) from e

    try:
        st = os.stat(tmp_path)
    except OSError as e:
        metrics.record_download("error")
        raise DownloadFailed(url, e) from e
    if st.st_size == 0 or not stat.S_ISREG(st.st_mode):
        metrics.record_download("empty")
        raise EmptyDownload(url, tmp_path)

    try:
        stream = open(tmp_path, "rb")
    except OSError as e:
        metrics.record_download("error")
        raise DownloadFailed(url, e) from e

    metrics.record_download("success")
    logger.info(f"Downloaded {st.st_size} bytes from {url}")
    return state.adopt(stream)
