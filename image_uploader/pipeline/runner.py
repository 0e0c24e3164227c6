"""
Pipeline runner.

Sequences the four stages of one upload job

    ACQUIRING -> RESIZING -> UPLOADING -> CLEANING_UP -> DONE

on the calling thread. The first failure skips straight to CLEANING_UP;
cleanup always runs and never replaces the original error. Every invocation
produces exactly one PipelineResult, and ``upload_image`` delivers it to the
caller's callback exactly once.

Example usage:
    >>> from image_uploader import upload_image
    >>> def done(error, location):
    ...     print(error or location)
    >>> upload_image("https://example.com/cat.jpg", "images", "cats/1.jpg", "100x200", done)
"""

import functools
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple

import httpx

from image_uploader.errors import ImageUploadError, InvalidConfiguration, PipelineInternalError
from image_uploader.models import JobParams, PipelineResult, PipelineState, Stage
from image_uploader.pipeline.cleanup import cleanup
from image_uploader.resizer import ImageMagickFilter, resize_stream
from image_uploader.source import resolve_source
from image_uploader.uploader import ObjectStore, create_store, destination_options, upload_stream
from image_uploader.utils.config import PipelineConfig, get_config
from image_uploader.utils.logging import (
    clear_correlation_id,
    get_logger,
    report_error,
    set_correlation_id,
)
from image_uploader.utils.metrics import get_metrics

logger = get_logger(__name__)

metrics = get_metrics()

Callback = Callable[[Optional[ImageUploadError], Optional[str]], Any]
StageStep = Callable[[JobParams, PipelineState], None]


def once(callback: Callable[..., Any]) -> Callable[..., Any]:
    """
    Wrap ``callback`` so it runs at most once, whichever thread calls it.

    Repeat calls are ignored and return None.
    """
    lock = threading.Lock()
    fired = False

    @functools.wraps(callback)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        nonlocal fired
        with lock:
            if fired:
                logger.warning("Completion callback already fired; ignoring repeat call")
                return None
            fired = True
        return callback(*args, **kwargs)

    return wrapper


class PipelineRunner:
    """
    Runs upload jobs against one configuration and set of collaborators.

    Runners hold no per-job state, so one runner may serve concurrent
    invocations from several threads.

    Args:
        config: Process-wide configuration (loaded from the environment if None)
        store: Object store backend (built from config on first use if None)
        http_client: Client for URL sources (created and owned if None)
        resize_filter: External resize filter (ImageMagick from config if None)
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        store: Optional[ObjectStore] = None,
        http_client: Optional[httpx.Client] = None,
        resize_filter: Optional[ImageMagickFilter] = None,
    ) -> None:
        self.config = config if config is not None else get_config()
        self._store = store
        self._store_lock = threading.Lock()
        self._owns_client = http_client is None
        self.http_client = http_client if http_client is not None else httpx.Client(
            timeout=httpx.Timeout(self.config.http_timeout_seconds),
            follow_redirects=True,
        )
        self.resize_filter = resize_filter if resize_filter is not None else ImageMagickFilter(
            command=self.config.resize_command,
            quality=self.config.resize_quality,
            quiet=True,
        )

    @property
    def store(self) -> ObjectStore:
        with self._store_lock:
            if self._store is None:
                self._store = create_store(self.config)
            return self._store

    def close(self) -> None:
        if self._owns_client:
            self.http_client.close()

    def __enter__(self) -> "PipelineRunner":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _stages(self) -> Tuple[Tuple[Stage, StageStep], ...]:
        return (
            (Stage.ACQUIRING, self._acquire),
            (Stage.RESIZING, self._resize),
            (Stage.UPLOADING, self._upload),
        )

    def _acquire(self, job: JobParams, state: PipelineState) -> None:
        resolve_source(job, state, self.http_client, self.config.temp_dir)

    def _resize(self, job: JobParams, state: PipelineState) -> None:
        resize_stream(state, job.size, self.resize_filter, self.config.temp_dir)

    def _upload(self, job: JobParams, state: PipelineState) -> None:
        options = destination_options(
            self.config.destination_defaults(), job.metadata, job.bucket, job.key
        )
        state.location = upload_stream(state.stream, options, self.store)

    def run(self, job: JobParams) -> PipelineResult:
        """
        Execute one job and return its single result.

        Never raises for pipeline failures: they are returned in
        ``PipelineResult.error``.
        """
        state = PipelineState()
        error: Optional[ImageUploadError] = None
        failed_stage: Optional[Stage] = None

        set_correlation_id(job.job_id)
        logger.info(f"Starting upload of {job.source_label} to {job.bucket}/{job.key}")
        try:
            with metrics.track_active():
                try:
                    for stage, step in self._stages():
                        state.stage = stage
                        with metrics.track_stage(stage.value):
                            step(job, state)
                except ImageUploadError as e:
                    error, failed_stage = e, state.stage
                except Exception as e:
                    failed_stage = state.stage
                    error = PipelineInternalError(
                        f"Unexpected {type(e).__name__} while {failed_stage.value}: {e}",
                        context={"stage": failed_stage.value},
                        cause=e,
                    )
                finally:
                    state.stage = Stage.CLEANING_UP
                    with metrics.track_stage(Stage.CLEANING_UP.value):
                        cleanup(state, self.config.logger)
                    state.stage = Stage.DONE

            if error is not None:
                report_error(
                    self.config.logger,
                    f"Upload of {job.source_label} to {job.bucket}/{job.key} failed "
                    f"while {failed_stage.value if failed_stage else 'starting'}: {error}"
                )
                metrics.record_run("failure", error.code.value)
                return PipelineResult(error=error, warnings=list(state.warnings))

            metrics.record_run("success")
            logger.info(f"Upload complete: {state.location}")
            return PipelineResult(location=state.location, warnings=list(state.warnings))
        finally:
            clear_correlation_id()


def _resolve_config(config: Optional[PipelineConfig]) -> PipelineConfig:
    """Return ``config``, or the process-wide one loaded from the environment."""
    if config is not None:
        return config
    try:
        return get_config()
    except ValueError as e:
        raise InvalidConfiguration(str(e), cause=e) from e


def _reject(error: ImageUploadError, error_logger: Any) -> PipelineResult:
    report_error(error_logger, f"Rejected upload job: {error}")
    metrics.record_run("failure", error.code.value)
    return PipelineResult(error=error)


def upload_image(
    source: Any,
    bucket: Any,
    key: Any,
    size: Any = None,
    callback: Optional[Callback] = None,
    *,
    metadata: Optional[Mapping[str, Any]] = None,
    config: Optional[PipelineConfig] = None,
    runner: Optional[PipelineRunner] = None,
) -> PipelineResult:
    """
    Fetch, optionally resize, and upload one image.

    Args:
        source: Readable binary stream, local file path, or http(s) URL
        bucket: Destination bucket (non-empty)
        key: Destination object key (non-empty)
        size: "WIDTHxHEIGHT" resize target, or None to upload unchanged.
            A callable here is taken as the callback.
        callback: Called exactly once as ``callback(error, location)``
        metadata: Per-call destination options (ACL, ContentType, Metadata, ...)
        config: Configuration for a runner created for this call
        runner: Existing runner to execute on (its config wins)

    Returns:
        The same PipelineResult the callback receives

    Example:
        >>> result = upload_image("cat.png", "images", "cats/1.jpg")
        >>> result.location
        'https://images.s3.amazonaws.com/cats/1.jpg'
    """
    if callable(size) and callback is None:
        size, callback = None, size
    notify = once(callback) if callback is not None else None

    try:
        active_config = runner.config if runner is not None else _resolve_config(config)
    except InvalidConfiguration as e:
        result = _reject(e, logger)
    else:
        try:
            job = JobParams.create(source, bucket, key, size, metadata)
        except ImageUploadError as e:
            result = _reject(e, active_config.logger)
        else:
            if runner is not None:
                result = runner.run(job)
            else:
                with PipelineRunner(active_config) as own_runner:
                    result = own_runner.run(job)

    if notify is not None:
        notify(result.error, result.location)
    return result


def upload_batch(
    jobs: Iterable[JobParams],
    config: Optional[PipelineConfig] = None,
    max_workers: int = 4,
    runner: Optional[PipelineRunner] = None,
) -> List[PipelineResult]:
    """
    Run independent jobs concurrently on a thread pool.

    Jobs share only the runner's read-only configuration and collaborators.

    Args:
        jobs: Validated jobs (see JobParams.create)
        config: Configuration for a runner created for this batch
        max_workers: Maximum number of jobs in flight
        runner: Existing runner to execute on

    Returns:
        One PipelineResult per job, in input order
    """
    job_list = list(jobs)
    if max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {max_workers}")
    if not job_list:
        return []

    logger.info(f"Starting batch upload: {len(job_list)} jobs, max_workers={max_workers}")

    own_runner = runner is None
    active = runner if runner is not None else PipelineRunner(config)
    try:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(job_list))) as pool:
            results = list(pool.map(active.run, job_list))
    finally:
        if own_runner:
            active.close()

    successful = sum(1 for r in results if r.success)
    logger.info(f"Batch upload complete: {successful}/{len(results)} successful")
    return results
