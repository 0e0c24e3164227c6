"""
Process-wide configuration for the image upload pipeline.

Built once at process start (from code, the environment, or a YAML settings
file) and passed into the pipeline runner. Instances are frozen, so concurrent
invocations can share one without synchronization.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from dotenv import load_dotenv

from image_uploader.utils.logging import get_logger

# Defaults merged under every upload's destination options
DEFAULT_DESTINATION_OPTIONS: Mapping[str, str] = MappingProxyType(
    {
        "ACL": "public-read",
        "StorageClass": "STANDARD",
        "ContentType": "image/jpeg",
    }
)

DEFAULT_RESIZE_COMMAND: Tuple[str, ...] = ("convert",)
DEFAULT_RESIZE_QUALITY = 90
SUPPORTED_BACKENDS = ("s3", "gcs")

ENV_PREFIX = "IMAGE_UPLOADER_"


@dataclass(frozen=True)
class PipelineConfig:
    """
    Pipeline configuration.

    Attributes:
        default_metadata: Destination options every upload starts from
        extra_options: Overrides merged over default_metadata
        logger: Object exposing error() for stage failures and cleanup reports
        temp_dir: Directory for temp files (OS temp dir when None)
        storage_backend: Object store backend, "s3" or "gcs"
        aws_region: Region for the S3 client and location URLs
        s3_endpoint_url: Custom S3-compatible endpoint (MinIO, R2, ...)
        resize_command: Argv prefix of the external resize filter
        resize_quality: Output quality passed to the resize filter
        http_timeout_seconds: Timeout for remote source fetches
        upload_timeout_seconds: Timeout for object store transfers
    """

    default_metadata: Mapping[str, str] = field(
        default_factory=lambda: DEFAULT_DESTINATION_OPTIONS
    )
    extra_options: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    logger: Any = field(default_factory=lambda: get_logger("image_uploader"))
    temp_dir: Optional[str] = None
    storage_backend: str = "s3"
    aws_region: Optional[str] = None
    s3_endpoint_url: Optional[str] = None
    resize_command: Tuple[str, ...] = DEFAULT_RESIZE_COMMAND
    resize_quality: int = DEFAULT_RESIZE_QUALITY
    http_timeout_seconds: float = 30.0
    upload_timeout_seconds: int = 300

    def __post_init__(self) -> None:
        if self.storage_backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"Unsupported storage backend '{self.storage_backend}' "
                f"(supported: {', '.join(SUPPORTED_BACKENDS)})"
            )
        if not callable(getattr(self.logger, "error", None)):
            raise ValueError("logger must expose an error() method")
        # Freeze caller-supplied mappings so shared config stays read-only
        object.__setattr__(self, "default_metadata", MappingProxyType(dict(self.default_metadata)))
        object.__setattr__(self, "extra_options", MappingProxyType(dict(self.extra_options)))
        object.__setattr__(self, "resize_command", tuple(self.resize_command))

    def destination_defaults(self) -> Dict[str, Any]:
        """Return a new dict of default metadata with extra_options merged over it."""
        merged: Dict[str, Any] = dict(self.default_metadata)
        merged.update(self.extra_options)
        return merged

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "PipelineConfig":
        """
        Load configuration from environment variables.

        Loads a .env file first (explicit path, or ./.env when present), then
        reads IMAGE_UPLOADER_* variables from os.environ.

        Returns:
            PipelineConfig instance with loaded values

        Raises:
            ValueError: If a numeric variable cannot be parsed
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path)

        def env(name: str, default: Optional[str] = None) -> Optional[str]:
            return os.getenv(ENV_PREFIX + name, default)

        extra: Dict[str, str] = {}
        for option, var in (
            ("ACL", "ACL"),
            ("StorageClass", "STORAGE_CLASS"),
            ("ContentType", "CONTENT_TYPE"),
            ("CacheControl", "CACHE_CONTROL"),
        ):
            value = env(var)
            if value:
                extra[option] = value

        resize_command = env("RESIZE_COMMAND")

        try:
            return cls(
                extra_options=extra,
                temp_dir=env("TEMP_DIR"),
                storage_backend=(env("STORAGE_BACKEND", "s3") or "s3").lower(),
                aws_region=env("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"),
                s3_endpoint_url=env("S3_ENDPOINT_URL"),
                resize_command=(
                    tuple(resize_command.split()) if resize_command else DEFAULT_RESIZE_COMMAND
                ),
                resize_quality=int(env("RESIZE_QUALITY", str(DEFAULT_RESIZE_QUALITY))),
                http_timeout_seconds=float(env("HTTP_TIMEOUT_SECONDS", "30")),
                upload_timeout_seconds=int(env("UPLOAD_TIMEOUT_SECONDS", "300")),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid {ENV_PREFIX}* environment configuration: {e}") from e

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path], logger: Any = None) -> "PipelineConfig":
        """
        Build configuration from a YAML settings file.

        Raises:
            ValueError: If the file fails validation
        """
        from image_uploader.utils.config_loader import load_config, validate_config

        raw = load_config(config_path)
        errors = validate_config(raw)
        if errors:
            raise ValueError(
                "Invalid configuration file: " + "; ".join(str(e) for e in errors)
            )

        storage = raw.get("storage", {}) or {}
        resize = raw.get("resize", {}) or {}
        http = raw.get("http", {}) or {}
        kwargs: Dict[str, Any] = {
            "extra_options": raw.get("destination", {}) or {},
            "temp_dir": raw.get("temp_dir"),
            "storage_backend": storage.get("backend", "s3"),
            "aws_region": storage.get("region"),
            "s3_endpoint_url": storage.get("endpoint_url"),
            "upload_timeout_seconds": int(storage.get("timeout_seconds", 300)),
            "resize_quality": int(resize.get("quality", DEFAULT_RESIZE_QUALITY)),
            "http_timeout_seconds": float(http.get("timeout_seconds", 30)),
        }
        if resize.get("command"):
            command = resize["command"]
            kwargs["resize_command"] = tuple(command.split() if isinstance(command, str) else command)
        if logger is not None:
            kwargs["logger"] = logger
        return cls(**kwargs)


# Global config instance (lazy-loaded, read-only once built)
_config: Optional[PipelineConfig] = None


def get_config() -> PipelineConfig:
    """
    Get or create the process-wide pipeline configuration.

    Returns:
        PipelineConfig instance loaded from environment
    """
    global _config
    if _config is None:
        _config = PipelineConfig.from_env()
    return _config
