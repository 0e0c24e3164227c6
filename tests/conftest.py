"""Shared fixtures for the pipeline tests."""

from pathlib import Path

import pytest

from image_uploader.resizer import ImageMagickFilter
from image_uploader.utils.config import PipelineConfig
from tests.helpers import IMAGE_BYTES, FakeStore, RecordingLogger, python_filter


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Directory the pipeline writes its temp files into."""
    directory = tmp_path / "pipeline-tmp"
    directory.mkdir()
    return directory


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    """A local image file outside the pipeline temp dir."""
    path = tmp_path / "cat.png"
    path.write_bytes(IMAGE_BYTES)
    return path


@pytest.fixture
def error_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture
def config(temp_dir: Path, error_logger: RecordingLogger) -> PipelineConfig:
    return PipelineConfig(temp_dir=str(temp_dir), logger=error_logger)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def resize_filter() -> ImageMagickFilter:
    return python_filter()
