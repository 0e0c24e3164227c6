"""
Resize stage backed by an external ImageMagick process.

The active stream is piped through ``convert`` (or any compatible command)
into a second temp file, which then becomes the active stream. Without a
resize target the stage is a no-op.

The pixel work is entirely ImageMagick's; this module only builds the command
line, moves bytes, and reports failures.

Example usage:
    >>> spec = parse_size("100x200")
    >>> resize_filter = ImageMagickFilter(command=("convert",), quality=90)
    >>> resize_stream(state, spec, resize_filter)
"""

import os
import shutil
import subprocess
import tempfile
from typing import Any, List, Optional, Sequence

from image_uploader.errors import ResizeFailed, ResizeStreamUnavailable
from image_uploader.models import PipelineState, ResizeSpec
from image_uploader.source import make_temp_path
from image_uploader.utils.logging import get_logger, log_function_call
from image_uploader.utils.metrics import get_metrics
from image_uploader.utils.streams import close_quietly

# Module logger
logger = get_logger(__name__)

# Module metrics
metrics = get_metrics()

DEFAULT_QUALITY = 90
PIPE_CHUNK_BYTES = 64 * 1024
MAX_STDERR_BYTES = 4096


def parse_size(text: Any) -> ResizeSpec:
    """
    Validate a ``WIDTHxHEIGHT`` resize string.

    Raises:
        BadSizeSpec: If text does not match ``<digits>x<digits>`` with both > 0

    Example:
        >>> parse_size("100x200")
        ResizeSpec(width=100, height=200)
    """
    return ResizeSpec.parse(text)


class ImageMagickFilter:
    """
    Resize filter running an ImageMagick-compatible command.

    The command reads the image on stdin and writes a JPEG to stdout:
    ``convert - -quiet -resize WxH -quality 90 jpg:-``.

    Args:
        command: Argv prefix of the filter ("convert", or ("magick", "convert"))
        quality: JPEG output quality
        quiet: Suppress ImageMagick warnings
    """

    def __init__(
        self,
        command: Sequence[str] = ("convert",),
        quality: int = DEFAULT_QUALITY,
        quiet: bool = True,
    ) -> None:
        self.command = tuple(command)
        self.quality = quality
        self.quiet = quiet

    def build_args(self, spec: ResizeSpec) -> List[str]:
        args = list(self.command) + ["-"]
        if self.quiet:
            args.append("-quiet")
        args += ["-resize", str(spec), "-quality", str(self.quality), "jpg:-"]
        return args

    def spawn(self, spec: ResizeSpec, stdout: Any, stderr: Any) -> subprocess.Popen:
        """
        Start the filter process writing into ``stdout``.

        Raises:
            ResizeStreamUnavailable: If the process cannot be started or has no stdin
        """
        args = self.build_args(spec)
        logger.debug(f"Starting resize filter: {' '.join(args)}")
        try:
            process = subprocess.Popen(
                args,
                stdin=subprocess.PIPE,
                stdout=stdout,
                stderr=stderr,
            )
        except (OSError, ValueError) as e:
            raise ResizeStreamUnavailable(
                f"Cannot start resize filter {self.command[0]!r}: {e}",
                context={"command": list(self.command)},
                cause=e,
            ) from e

        if process.stdin is None or process.stdin.closed:
            process.kill()
            process.wait()
            raise ResizeStreamUnavailable(
                "Resize filter does not accept input",
                context={"command": list(self.command)},
            )
        return process

    def __repr__(self) -> str:
        return f"ImageMagickFilter(command={self.command!r}, quality={self.quality})"


@log_function_call
def resize_stream(
    state: PipelineState,
    spec: Optional[ResizeSpec],
    resize_filter: ImageMagickFilter,
    temp_dir: Optional[str] = None,
) -> Any:
    """
    Resize the active stream into temp file #2 and make it the active stream.

    The input stream is read to the end exactly once and never read again.
    Handles the pipeline opened itself are closed once consumed; a
    caller-supplied stream is left open for its owner.

    Args:
        state: Pipeline state holding the active stream
        spec: Target size, or None to skip resizing
        resize_filter: Filter used to resize the image
        temp_dir: Directory for the output temp file (OS default if None)

    Returns:
        The active stream after this stage

    Raises:
        ResizeStreamUnavailable: Filter cannot be started
        ResizeFailed: Filter reported an error or produced no output
    """
    if spec is None:
        return state.stream

    source = state.stream
    state.tmp_resized = tmp_path = make_temp_path(temp_dir)
    logger.info(f"Resizing to {spec} -> {tmp_path}")

    with open(tmp_path, "wb") as out, tempfile.TemporaryFile() as err:
        process = resize_filter.spawn(spec, stdout=out, stderr=err)
        try:
            shutil.copyfileobj(source, process.stdin, PIPE_CHUNK_BYTES)
            process.stdin.close()
        except OSError as e:
            # BrokenPipeError: the filter exited before reading all input
            close_quietly(process.stdin)
            process.wait()
            metrics.record_resize("failure")
            raise ResizeFailed(
                f"Resize to {spec} failed: {_stderr_text(err) or e}",
                context={"size": str(spec), "detail": _stderr_text(err)},
                cause=e,
            ) from e
        except Exception:
            close_quietly(process.stdin)
            process.kill()
            process.wait()
            raise
        finally:
            _release_input(state, source)

        returncode = process.wait()
        out.flush()

        if returncode != 0:
            detail = _stderr_text(err)
            metrics.record_resize("failure")
            raise ResizeFailed(
                f"Resize to {spec} failed with exit code {returncode}: {detail}",
                context={"size": str(spec), "detail": detail, "returncode": returncode},
            )

    # Output file is closed here: the write is complete
    if os.path.getsize(tmp_path) == 0:
        metrics.record_resize("failure")
        raise ResizeFailed(
            f"Resize to {spec} produced no output",
            context={"size": str(spec), "detail": "empty output"},
        )

    metrics.record_resize("success")
    return state.adopt(open(tmp_path, "rb"))


def _release_input(state: PipelineState, source: Any) -> None:
    """Retire the consumed input so it can never be handed downstream again."""
    state.stream = None
    if source in state.owned_streams:
        state.owned_streams.remove(source)
        error = close_quietly(source)
        if error is not None:
            logger.debug(f"Closing consumed source stream failed: {error}")


def _stderr_text(err: Any) -> str:
    err.seek(0)
    return err.read(MAX_STDERR_BYTES).decode("utf-8", errors="replace").strip()
