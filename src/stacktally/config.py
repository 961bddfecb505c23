"""Export configuration for stacktally.

Precedence, highest first:
1. CLI flags
2. Environment variables
3. Config file (.json, .yaml or .yml)
4. Hardcoded defaults

A config file's stem names the config, and that name becomes part of every
output file written under it. A file named "config" is the default config
and adds nothing to output names.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from stacktally.constants import DEFAULT_HEAP_API_FRAMES

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = ""
DEFAULT_CONFIG_STEM = "config"
DEFAULT_PROCESS_REGEX = ".*"
DEFAULT_TABLES = ("HeapAllocations",)

CONFIG_SUFFIXES = (".json", ".yaml", ".yml")

# Environment variable names
ENV_PROCESS_REGEX = "STACKTALLY_PROCESS_REGEX"
ENV_TABLES = "STACKTALLY_TABLES"
ENV_SKIP_EXISTING = "STACKTALLY_SKIP_EXISTING"


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


class ConfigLoadError(Exception):
    """Raised when a configuration file cannot be loaded."""

    pass


@dataclass
class ExportConfig:
    """Settings for one export pass over an events file."""

    process_regex: str = DEFAULT_PROCESS_REGEX
    tables: list[str] = field(default_factory=lambda: list(DEFAULT_TABLES))
    start_marker: str | None = None
    end_marker: str | None = None
    skip_existing: bool = False
    heap_api_frames: list[str] = field(default_factory=lambda: list(DEFAULT_HEAP_API_FRAMES))
    name: str = DEFAULT_CONFIG_NAME

    @property
    def is_default(self) -> bool:
        return self.name == DEFAULT_CONFIG_NAME

    def validate(self) -> None:
        """Validate configuration values."""
        if not self.tables:
            raise ConfigValidationError("At least one table must be configured")
        try:
            re.compile(self.process_regex)
        except re.error as e:
            raise ConfigValidationError(
                f"Invalid process_regex '{self.process_regex}': {e}"
            )
        if (self.start_marker is None) != (self.end_marker is None):
            raise ConfigValidationError(
                "start_marker and end_marker must be set together"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (the name is not serialized)."""
        return {
            "process_regex": self.process_regex,
            "tables": list(self.tables),
            "start_marker": self.start_marker,
            "end_marker": self.end_marker,
            "skip_existing": self.skip_existing,
            "heap_api_frames": list(self.heap_api_frames),
        }

    @classmethod
    def from_dict(
        cls, data: dict[str, Any], strict: bool = False, name: str = DEFAULT_CONFIG_NAME
    ) -> "ExportConfig":
        """Create from dictionary."""
        if strict:
            known_fields = {f.name for f in fields(cls)} - {"name"}
            unknown = set(data.keys()) - known_fields
            if unknown:
                raise ConfigValidationError(
                    f"Unknown fields in export config: {', '.join(sorted(unknown))}"
                )

        tables = data.get("tables", list(DEFAULT_TABLES))
        if isinstance(tables, str):
            tables = [tables]

        return cls(
            process_regex=data.get("process_regex", DEFAULT_PROCESS_REGEX),
            tables=list(tables),
            start_marker=data.get("start_marker"),
            end_marker=data.get("end_marker"),
            skip_existing=bool(data.get("skip_existing", False)),
            heap_api_frames=list(data.get("heap_api_frames", DEFAULT_HEAP_API_FRAMES)),
            name=name,
        )


def config_name_for(path: Path) -> str:
    """Config name derived from a file path."""
    stem = path.stem
    return DEFAULT_CONFIG_NAME if stem.lower() == DEFAULT_CONFIG_STEM else stem


def load_config_file(path: str | Path, strict: bool = False) -> ExportConfig:
    """Load an export config from a JSON or YAML file.

    Args:
        path: Path to the config file
        strict: If True, reject unknown keys

    Returns:
        Validated ExportConfig named after the file stem

    Raises:
        ConfigLoadError: If the file is missing, unreadable or malformed
        ConfigValidationError: If the values are invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")
    if path.suffix.lower() not in CONFIG_SUFFIXES:
        raise ConfigLoadError(
            f"Unsupported config format '{path.suffix}' in {path}. "
            f"Valid formats: {', '.join(CONFIG_SUFFIXES)}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigLoadError(f"Error reading config file {path}: {e}")

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(content) if content.strip() else {}
        else:
            data = yaml.safe_load(content) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigLoadError(f"Invalid config file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigLoadError(
            f"Config file {path} must contain a mapping, got {type(data).__name__}"
        )

    config = ExportConfig.from_dict(data, strict=strict, name=config_name_for(path))
    config.validate()
    logger.info("Loaded config %r from %s", config.name or "default", path)
    return config


def apply_env_overrides(config: ExportConfig) -> ExportConfig:
    """Apply environment variable overrides to a config.

    Returns a new config; the input is not modified.
    """
    result = ExportConfig.from_dict(config.to_dict(), name=config.name)

    if process_regex := os.environ.get(ENV_PROCESS_REGEX):
        result.process_regex = process_regex

    if tables := os.environ.get(ENV_TABLES):
        result.tables = [t.strip() for t in tables.split(",") if t.strip()]

    if skip_existing := os.environ.get(ENV_SKIP_EXISTING):
        result.skip_existing = skip_existing.lower() in ("true", "1", "yes")

    result.validate()
    return result


def output_path(events_path: str | Path, config_name: str, table_name: str) -> Path:
    """Output file for one table of one config.

    `trace.jsonl` with config `lean` and table `HeapAllocations` gives
    `trace.jsonl.lean.HeapAllocations.json`; the default config gives
    `trace.jsonl.HeapAllocations.json`.
    """
    events_path = Path(events_path)
    parts = [events_path.name]
    if config_name:
        parts.append(config_name)
    parts.extend([table_name, "json"])
    return events_path.with_name(".".join(parts))
