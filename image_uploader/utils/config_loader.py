"""
Settings file loader and validator.

Loads YAML settings for the upload pipeline and checks them against the
expected schema before a PipelineConfig is built from them.

Example settings file (config/uploader.yaml):
    ```yaml
    version: "1.0"
    temp_dir: /var/tmp/image-uploads

    destination:
      ACL: private
      CacheControl: max-age=86400

    storage:
      backend: s3
      region: eu-west-1
      timeout_seconds: 120

    resize:
      command: magick
      quality: 85

    http:
      timeout_seconds: 15
    ```

Usage:
    >>> from image_uploader.utils.config_loader import load_config, validate_config
    >>> settings = load_config("config/uploader.yaml")
    >>> errors = validate_config(settings)
    >>> if not errors:
    ...     print(settings["storage"]["backend"])
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from image_uploader.utils.logging import get_logger

logger = get_logger(__name__)


# Supported settings versions
SUPPORTED_VERSIONS = ["1.0"]

VALID_BACKENDS = ["s3", "gcs"]

# Canned ACLs accepted for the destination ACL option
VALID_ACLS = [
    "private",
    "public-read",
    "public-read-write",
    "authenticated-read",
    "bucket-owner-read",
    "bucket-owner-full-control",
]

KNOWN_SECTIONS = ["version", "temp_dir", "destination", "storage", "resize", "http"]


@dataclass
class ConfigError:
    """Validation error in a settings file."""

    field: str
    message: str
    value: Optional[Any] = None

    def __str__(self) -> str:
        if self.value is not None:
            return f"{self.field}: {self.message} (got: {self.value})"
        return f"{self.field}: {self.message}"


def load_config(config_path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load settings from a YAML file.

    Args:
        config_path: Path to YAML settings file

    Returns:
        Dictionary containing parsed settings

    Raises:
        FileNotFoundError: If settings file doesn't exist
        ValueError: If the path is not a file, or the file is empty or not a mapping
        yaml.YAMLError: If YAML is malformed
    """
    path = Path(config_path)
    logger.info(f"Loading settings from: {path}")

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    if not path.is_file():
        raise ValueError(f"Configuration path is not a file: {path}")

    try:
        with open(path, "r") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML: {e}")
        raise

    if config is None:
        raise ValueError("Configuration file is empty")
    if not isinstance(config, dict):
        raise ValueError(f"Configuration root must be a mapping, got {type(config).__name__}")

    logger.info(f"Settings loaded: {sorted(config)}")
    return dict(config)


def validate_config(config: Dict[str, Any]) -> List[ConfigError]:
    """
    Validate settings against the expected schema.

    Args:
        config: Settings dictionary to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors: List[ConfigError] = []

    if "version" not in config:
        errors.append(ConfigError("version", "Missing required field"))
    elif str(config["version"]) not in SUPPORTED_VERSIONS:
        errors.append(
            ConfigError(
                "version",
                f"Unsupported version (supported: {SUPPORTED_VERSIONS})",
                config["version"],
            )
        )

    for section in config:
        if section not in KNOWN_SECTIONS:
            logger.warning(f"Ignoring unknown settings section: {section}")

    temp_dir = config.get("temp_dir")
    if temp_dir is not None and not isinstance(temp_dir, str):
        errors.append(ConfigError("temp_dir", "Must be a string path", temp_dir))

    errors.extend(_validate_destination(config.get("destination")))
    errors.extend(_validate_storage(config.get("storage")))
    errors.extend(_validate_resize(config.get("resize")))
    errors.extend(_validate_timeout("http", config.get("http")))

    if errors:
        logger.warning(f"Settings validation failed with {len(errors)} errors")
    else:
        logger.info("Settings validation passed")

    return errors


def _validate_destination(section: Any) -> List[ConfigError]:
    if section is None:
        return []
    if not isinstance(section, dict):
        return [ConfigError("destination", "Must be a mapping", section)]

    errors: List[ConfigError] = []
    for option, value in section.items():
        if option in ("Bucket", "Key", "Body"):
            errors.append(
                ConfigError(f"destination.{option}", "Set per upload, not in settings")
            )
        elif option == "ACL" and value not in VALID_ACLS:
            errors.append(ConfigError("destination.ACL", f"Invalid ACL (valid: {VALID_ACLS})", value))
    return errors


def _validate_storage(section: Any) -> List[ConfigError]:
    if section is None:
        return []
    if not isinstance(section, dict):
        return [ConfigError("storage", "Must be a mapping", section)]

    errors: List[ConfigError] = []
    backend = section.get("backend", "s3")
    if backend not in VALID_BACKENDS:
        errors.append(
            ConfigError("storage.backend", f"Invalid backend (valid: {VALID_BACKENDS})", backend)
        )
    errors.extend(_validate_timeout("storage", section))
    return errors


def _validate_resize(section: Any) -> List[ConfigError]:
    if section is None:
        return []
    if not isinstance(section, dict):
        return [ConfigError("resize", "Must be a mapping", section)]

    errors: List[ConfigError] = []
    quality = section.get("quality")
    if quality is not None and (not isinstance(quality, int) or not 1 <= quality <= 100):
        errors.append(ConfigError("resize.quality", "Must be an integer between 1 and 100", quality))

    command = section.get("command")
    if command is not None and not (
        (isinstance(command, str) and command.strip())
        or (isinstance(command, list) and command and all(isinstance(c, str) for c in command))
    ):
        errors.append(ConfigError("resize.command", "Must be a string or list of strings", command))
    return errors


def _validate_timeout(name: str, section: Any) -> List[ConfigError]:
    if section is None:
        return []
    if not isinstance(section, dict):
        return [ConfigError(name, "Must be a mapping", section)]

    timeout = section.get("timeout_seconds")
    if timeout is None:
        return []
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        return [ConfigError(f"{name}.timeout_seconds", "Must be a positive number", timeout)]
    return []
