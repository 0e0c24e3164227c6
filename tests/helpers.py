"""Test doubles for the pipeline's external collaborators."""

import errno
import io
import sys
from typing import Any, Dict, List, Mapping, Optional

import httpx

from image_uploader.resizer import ImageMagickFilter

# Stand-in for ImageMagick: tags stdin with the requested size on stdout
RESIZE_SCRIPT = (
    "import sys\n"
    "data = sys.stdin.buffer.read()\n"
    "size = sys.argv[sys.argv.index('-resize') + 1]\n"
    "sys.stdout.buffer.write(b'RESIZED[' + size.encode() + b']' + data)\n"
)

FAILING_RESIZE_SCRIPT = (
    "import sys\n"
    "sys.stdin.buffer.read()\n"
    "sys.stderr.write('convert: improper image header')\n"
    "sys.exit(1)\n"
)

SILENT_RESIZE_SCRIPT = "import sys\nsys.stdin.buffer.read()\n"

# Exits without touching stdin, like convert rejecting its arguments
EARLY_EXIT_RESIZE_SCRIPT = (
    "import sys\n"
    "sys.stderr.write('convert: unable to open image')\n"
    "sys.exit(1)\n"
)

IMAGE_BYTES = b"\xff\xd8\xff\xe0" + b"fake jpeg payload" * 64
UPLOAD_CHUNK_BYTES = 8192


class FakeStore:
    """Object store double recording what it received."""

    name = "fake"

    def __init__(self, fail_with: Optional[Exception] = None) -> None:
        self.fail_with = fail_with
        self.uploads: List[Dict[str, Any]] = []

    def upload_fileobj(self, stream: Any, bucket: str, key: str, options: Mapping[str, Any]) -> str:
        if self.fail_with is not None:
            raise self.fail_with
        # Read in chunks like the boto3 transfer manager
        body = b"".join(iter(lambda: stream.read(UPLOAD_CHUNK_BYTES), b""))
        self.uploads.append(
            {"body": body, "bucket": bucket, "key": key, "options": dict(options)}
        )
        return f"https://{bucket}.s3.amazonaws.com/{key}"


class RecordingLogger:
    """Injected logger double capturing error() reports."""

    def __init__(self) -> None:
        self.errors: List[str] = []

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.errors.append(message)


class FailingReadStream(io.BytesIO):
    """Stream whose read() raises once the first chunk has been consumed."""

    def read(self, size: Optional[int] = -1) -> bytes:
        if self.tell() > 0:
            raise OSError(errno.EIO, "Input/output error")
        return super().read(size)


class RaisingLogger:
    """Injected logger double whose error() itself fails."""

    def __init__(self) -> None:
        self.calls = 0

    def error(self, message: str, *args: Any, **kwargs: Any) -> None:
        self.calls += 1
        raise RuntimeError("log sink unavailable")


def python_filter(script: str = RESIZE_SCRIPT) -> ImageMagickFilter:
    """Resize filter running ``script`` under the current interpreter."""
    return ImageMagickFilter(command=(sys.executable, "-c", script), quality=90)


def mock_http_client(status_code: int = 200, content: bytes = IMAGE_BYTES) -> httpx.Client:
    """httpx client answering every request with one canned response."""
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(status_code, content=content)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    client.calls = calls  # type: ignore[attr-defined]
    return client


def failing_http_client(error: Exception) -> httpx.Client:
    """httpx client whose transport raises ``error`` for every request."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise error

    return httpx.Client(transport=httpx.MockTransport(handler))
