#!/usr/bin/env python3
"""
Configuration Manager for docker-retag

This module handles loading configuration from config.yaml, environment
variables and command-line overrides, and turns it into the immutable
RetagConfig handed to every component of a run.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import yaml

from utils.image_records import Coordinate, NameFilter
from utils.retry_utils import DEFAULT_TRANSIENT_MARKERS, RetrySettings


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "CONTAINER_RUNTIME": ("runtime", "command"),
    "SOURCE_REPOSITORY": ("source", "repository"),
    "SOURCE_VERSION": ("source", "version"),
    "DEST_REPOSITORY": ("destination", "repository"),
    "DEST_VERSION": ("destination", "version"),
    "RETAG_THREADS": ("push", "threads"),
}


@dataclass(frozen=True)
class RetagConfig:
    """Everything a retag run needs, fixed for the duration of the run"""

    source: Coordinate
    destination: Coordinate
    name_filter: NameFilter = NameFilter()
    runtime_command: str = "docker"
    threads: int = 4
    queue_capacity: int = 256
    retry: RetrySettings = RetrySettings()
    show_progress: bool = True
    report_path: Optional[str] = None
    report_timestamp: bool = False


class ConfigManager:
    """Manages configuration for the retag tool"""

    def __init__(self, config_file: str = None, overrides: Optional[Dict[str, Any]] = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to CONFIG_FILE env var or config.yaml)
            overrides: Nested dict (same shape as config.yaml) applied last, e.g. from CLI flags;
                       None values are ignored
            validate: If True, validate configuration on initialization
        """
        # Allow override via environment variable for containerized deployments
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()
        self._apply_env_overrides()
        if overrides:
            self.config = self._merge_config(self.config, self._drop_none(overrides))

        if validate:
            self.validate_config()

    @staticmethod
    def default_config() -> Dict[str, Any]:
        return {
            "runtime": {"command": "docker"},
            "source": {"repository": "", "version": "latest"},
            "destination": {"repository": "", "version": "latest"},
            "filters": {"include": "", "exclude": ""},
            "push": {
                "threads": 4,
                "queue_capacity": 256,
                "transient_markers": list(DEFAULT_TRANSIENT_MARKERS),
            },
            "retry": {
                "max_retries": 10,
                "initial_delay": 1.0,
                "max_delay": 30.0,
                "exponential_base": 2.0,
                "jitter": False,
            },
            "progress": {"enabled": True},
            "report": {"output": "", "timestamp": False},
        }

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = self.default_config()

        if not os.path.exists(self.config_file):
            logging.debug(f"Config file {self.config_file} not found, using defaults")
            return default_config

        try:
            with open(self.config_file, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigValidationError(f"Error loading config file {self.config_file}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigValidationError(f"Config file {self.config_file} must contain a mapping at the top level")
        return self._merge_config(default_config, user_config)

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _drop_none(self, overrides: Dict[str, Any]) -> Dict[str, Any]:
        result = {}
        for key, value in overrides.items():
            if isinstance(value, dict):
                value = self._drop_none(value)
                if value:
                    result[key] = value
            elif value is not None:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        for env_var, (section, key) in ENV_OVERRIDES.items():
            value = os.environ.get(env_var)
            if value:
                if not isinstance(self.config.get(section), dict):
                    self.config[section] = {}
                self.config[section][key] = value

    def _section(self, name: str) -> Dict[str, Any]:
        return self.config.get(name) or {}

    # Runtime configuration
    def get_runtime_command(self) -> str:
        """Get container runtime binary (docker, podman, ...)"""
        return str(self._section("runtime").get("command") or "")

    # Coordinates
    def get_source_repository(self) -> str:
        return str(self._section("source").get("repository") or "")

    def get_source_version(self) -> str:
        return str(self._section("source").get("version") or "")

    def get_dest_repository(self) -> str:
        return str(self._section("destination").get("repository") or "")

    def get_dest_version(self) -> str:
        return str(self._section("destination").get("version") or "")

    # Filters
    def get_include_filter(self) -> Optional[str]:
        """Get include filter; empty string means not configured"""
        value = self._section("filters").get("include")
        return str(value) if value else None

    def get_exclude_filter(self) -> Optional[str]:
        """Get exclude filter; empty string means not configured"""
        value = self._section("filters").get("exclude")
        return str(value) if value else None

    # Push configuration
    def get_threads(self) -> int:
        """Get number of push workers, with type coercion"""
        threads = self._section("push").get("threads", 4)
        try:
            return int(threads)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"push.threads must be an integer, got: {threads} (type: {type(threads).__name__})"
            )

    def get_queue_capacity(self) -> int:
        """Get push queue capacity, with type coercion"""
        capacity = self._section("push").get("queue_capacity", 256)
        try:
            return int(capacity)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"push.queue_capacity must be an integer, got: {capacity} (type: {type(capacity).__name__})"
            )

    def get_transient_markers(self) -> Tuple[str, ...]:
        """Get push output markers that identify a transient failure"""
        markers = self._section("push").get("transient_markers", list(DEFAULT_TRANSIENT_MARKERS))
        if isinstance(markers, str):
            markers = [markers]
        if not isinstance(markers, (list, tuple)):
            raise ConfigValidationError(
                f"push.transient_markers must be a list of strings, got: {markers} (type: {type(markers).__name__})"
            )
        return tuple(str(m) for m in markers)

    # Retry configuration
    def get_max_retries(self) -> int:
        """Get max retries from config, with type coercion"""
        retries = self._section("retry").get("max_retries", 10)
        try:
            return int(retries)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.max_retries must be an integer, got: {retries} (type: {type(retries).__name__})"
            )

    def get_retry_initial_delay(self) -> float:
        """Get initial retry delay from config, with type coercion"""
        delay = self._section("retry").get("initial_delay", 1.0)
        try:
            return float(delay)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.initial_delay must be a number, got: {delay} (type: {type(delay).__name__})"
            )

    def get_retry_max_delay(self) -> float:
        """Get max retry delay from config, with type coercion"""
        delay = self._section("retry").get("max_delay", 30.0)
        try:
            return float(delay)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.max_delay must be a number, got: {delay} (type: {type(delay).__name__})"
            )

    def get_retry_exponential_base(self) -> float:
        """Get exponential base for retry backoff from config, with type coercion"""
        base = self._section("retry").get("exponential_base", 2.0)
        try:
            return float(base)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.exponential_base must be a number, got: {base} (type: {type(base).__name__})"
            )

    def get_retry_jitter(self) -> bool:
        """Get whether to use jitter in retry delays from config"""
        return bool(self._section("retry").get("jitter", False))

    def get_retry_settings(self) -> RetrySettings:
        return RetrySettings(
            max_retries=self.get_max_retries(),
            initial_delay=self.get_retry_initial_delay(),
            max_delay=self.get_retry_max_delay(),
            exponential_base=self.get_retry_exponential_base(),
            jitter=self.get_retry_jitter(),
            transient_markers=self.get_transient_markers(),
        )

    # Output configuration
    def is_progress_enabled(self) -> bool:
        return bool(self._section("progress").get("enabled", True))

    def get_report_path(self) -> Optional[str]:
        """Get JSON report path; empty string means no report"""
        path = self._section("report").get("output")
        return str(path) if path else None

    def is_report_timestamped(self) -> bool:
        """Whether a timestamp is inserted into the report filename"""
        return bool(self._section("report").get("timestamp", False))

    def get_retag_config(self) -> RetagConfig:
        """Build the immutable run configuration"""
        return RetagConfig(
            source=Coordinate(self.get_source_repository(), self.get_source_version()),
            destination=Coordinate(self.get_dest_repository(), self.get_dest_version()),
            name_filter=NameFilter(include=self.get_include_filter(), exclude=self.get_exclude_filter()),
            runtime_command=self.get_runtime_command(),
            threads=self.get_threads(),
            queue_capacity=self.get_queue_capacity(),
            retry=self.get_retry_settings(),
            show_progress=self.is_progress_enabled(),
            report_path=self.get_report_path(),
            report_timestamp=self.is_report_timestamped(),
        )

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors: List[str] = []
        warnings: List[str] = []

        if not self.get_runtime_command().strip():
            errors.append("runtime.command is required and cannot be empty")

        # Coordinates
        if not self.get_source_repository().strip():
            errors.append("missing source-repository")
        if not self.get_dest_repository().strip():
            errors.append("missing dest-repository")
        for field, value in (("source.version", self.get_source_version()),
                             ("destination.version", self.get_dest_version())):
            if not value.strip():
                errors.append(f"{field} cannot be empty")
            elif " " in value:
                errors.append(f"{field} cannot contain spaces, got: '{value}'")
        for field, value in (("source.repository", self.get_source_repository()),
                             ("destination.repository", self.get_dest_repository())):
            if " " in value:
                errors.append(f"{field} cannot contain spaces, got: '{value}'")

        if self.get_source_repository() and self.get_source_repository() == self.get_dest_repository() \
                and self.get_source_version() == self.get_dest_version():
            warnings.append("source and destination coordinates are identical; images will be pushed under their current names")

        # Push configuration
        try:
            threads = self.get_threads()
            if threads < 1:
                errors.append(f"push.threads must be a positive integer, got: {threads}")
            elif threads > 64:
                warnings.append(f"push.threads is very high ({threads}), the daemon may report lock contention")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            capacity = self.get_queue_capacity()
            if capacity < 1:
                errors.append(f"push.queue_capacity must be a positive integer, got: {capacity}")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            if not [m for m in self.get_transient_markers() if m.strip()]:
                warnings.append("push.transient_markers is empty; no push failure will be retried")
        except ConfigValidationError as e:
            errors.append(str(e))

        # Retry configuration
        try:
            max_retries = self.get_max_retries()
            if max_retries < 0:
                errors.append(f"retry.max_retries must be a non-negative integer, got: {max_retries}")
            elif max_retries > 50:
                warnings.append(f"max_retries is very high ({max_retries}), a stuck daemon may stall the run")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            initial_delay = self.get_retry_initial_delay()
            max_delay = self.get_retry_max_delay()
            if initial_delay < 0:
                errors.append(f"retry.initial_delay must be a non-negative number, got: {initial_delay}")
            if max_delay < 0:
                errors.append(f"retry.max_delay must be a non-negative number, got: {max_delay}")
            elif max_delay < initial_delay:
                errors.append(f"retry.max_delay ({max_delay}) must be >= retry.initial_delay ({initial_delay})")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            exponential_base = self.get_retry_exponential_base()
            if exponential_base < 1.0:
                errors.append(f"retry.exponential_base must be >= 1.0, got: {exponential_base}")
        except ConfigValidationError as e:
            errors.append(str(e))

        # Log warnings
        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        # Raise error if there are validation errors
        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def print_config(self):
        """Print current configuration"""
        print("Current Configuration:")
        print(f"  Runtime: {self.get_runtime_command()}")
        print(f"  Source: {self.get_source_repository()}:{self.get_source_version()}")
        print(f"  Destination: {self.get_dest_repository()}:{self.get_dest_version()}")
        print(f"  Include Filter: {self.get_include_filter() or 'Not configured'}")
        print(f"  Exclude Filter: {self.get_exclude_filter() or 'Not configured'}")
        print(f"  Push Threads: {self.get_threads()}")
        print(f"  Queue Capacity: {self.get_queue_capacity()}")
        print(f"  Transient Markers: {', '.join(self.get_transient_markers())}")
        print(f"  Max Retries: {self.get_max_retries()}")
        print(f"  Report: {self.get_report_path() or 'Not configured'}")
        print(f"  Timestamped Report: {self.is_report_timestamped()}")
