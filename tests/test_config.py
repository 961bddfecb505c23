"""Tests for the export configuration system."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from stacktally.config import (
    DEFAULT_TABLES,
    ENV_PROCESS_REGEX,
    ENV_SKIP_EXISTING,
    ENV_TABLES,
    ConfigLoadError,
    ConfigValidationError,
    ExportConfig,
    apply_env_overrides,
    config_name_for,
    load_config_file,
    output_path,
)
from stacktally.constants import DEFAULT_HEAP_API_FRAMES


# =============================================================================
# Dataclass
# =============================================================================


class TestExportConfig:
    """Unit tests for ExportConfig construction and validation."""

    def test_defaults(self):
        """ExportConfig should have sensible defaults."""
        config = ExportConfig()
        assert config.process_regex == ".*"
        assert config.tables == list(DEFAULT_TABLES)
        assert config.start_marker is None
        assert config.end_marker is None
        assert config.skip_existing is False
        assert config.heap_api_frames == DEFAULT_HEAP_API_FRAMES
        assert config.is_default

    def test_default_lists_are_not_shared(self):
        a = ExportConfig()
        a.tables.append("HeapAllocationsReverse")
        assert ExportConfig().tables == list(DEFAULT_TABLES)

    def test_validate_rejects_empty_tables(self):
        with pytest.raises(ConfigValidationError, match="table"):
            ExportConfig(tables=[]).validate()

    def test_validate_rejects_bad_regex(self):
        with pytest.raises(ConfigValidationError, match="process_regex"):
            ExportConfig(process_regex="(").validate()

    def test_validate_requires_marker_pair(self):
        with pytest.raises(ConfigValidationError, match="together"):
            ExportConfig(start_marker="Start").validate()

    def test_from_dict_round_trip(self):
        config = ExportConfig(process_regex="app", tables=["HeapAllocationsReverse"], skip_existing=True)
        assert ExportConfig.from_dict(config.to_dict()) == config

    def test_from_dict_accepts_single_table_string(self):
        assert ExportConfig.from_dict({"tables": "HeapAllocations"}).tables == ["HeapAllocations"]

    def test_from_dict_strict_rejects_unknown(self):
        with pytest.raises(ConfigValidationError, match="symbol_paths"):
            ExportConfig.from_dict({"symbol_paths": []}, strict=True)

    def test_from_dict_lenient_ignores_unknown(self):
        assert ExportConfig.from_dict({"symbol_paths": []}) == ExportConfig()


# =============================================================================
# File loading
# =============================================================================


class TestLoadConfigFile:
    def test_json(self, tmp_path):
        path = tmp_path / "lean.json"
        path.write_text(json.dumps({"process_regex": "app", "start_marker": "Start", "end_marker": "End"}))

        config = load_config_file(path)
        assert config.name == "lean"
        assert config.process_regex == "app"
        assert config.start_marker == "Start"

    def test_yaml(self, tmp_path):
        path = tmp_path / "full.yaml"
        path.write_text("tables:\n  - HeapAllocations\n  - HeapAllocationsReverse\nskip_existing: true\n")

        config = load_config_file(path)
        assert config.name == "full"
        assert config.tables == ["HeapAllocations", "HeapAllocationsReverse"]
        assert config.skip_existing is True

    def test_config_stem_is_default_name(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("")
        assert load_config_file(path).is_default

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigLoadError, match="not found"):
            load_config_file(tmp_path / "nope.json")

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "c.toml"
        path.write_text("")
        with pytest.raises(ConfigLoadError, match="Unsupported"):
            load_config_file(path)

    def test_malformed_json(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text("{")
        with pytest.raises(ConfigLoadError, match="Invalid config"):
            load_config_file(path)

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "c.yaml"
        path.write_text("tables: [unclosed")
        with pytest.raises(ConfigLoadError):
            load_config_file(path)

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigLoadError, match="mapping"):
            load_config_file(path)

    def test_strict_unknown_keys(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text('{"bogus": 1}')
        with pytest.raises(ConfigValidationError):
            load_config_file(path, strict=True)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text('{"tables": []}')
        with pytest.raises(ConfigValidationError):
            load_config_file(path)


def test_config_name_for():
    assert config_name_for(Path("x/config.json")) == ""
    assert config_name_for(Path("x/Config.yaml")) == ""
    assert config_name_for(Path("x/lean.json")) == "lean"


# =============================================================================
# Environment overrides
# =============================================================================


class TestEnvOverrides:
    def test_overrides_apply(self, monkeypatch):
        monkeypatch.setenv(ENV_PROCESS_REGEX, "svc")
        monkeypatch.setenv(ENV_TABLES, "HeapAllocations, HeapAllocationsReverse")
        monkeypatch.setenv(ENV_SKIP_EXISTING, "yes")

        config = apply_env_overrides(ExportConfig(name="lean"))
        assert config.process_regex == "svc"
        assert config.tables == ["HeapAllocations", "HeapAllocationsReverse"]
        assert config.skip_existing is True
        assert config.name == "lean"

    def test_input_not_modified(self, monkeypatch):
        monkeypatch.setenv(ENV_PROCESS_REGEX, "svc")
        original = ExportConfig()
        apply_env_overrides(original)
        assert original.process_regex == ".*"

    def test_no_env_is_identity(self, monkeypatch):
        for var in (ENV_PROCESS_REGEX, ENV_TABLES, ENV_SKIP_EXISTING):
            monkeypatch.delenv(var, raising=False)
        config = ExportConfig(process_regex="a", start_marker="S", end_marker="E")
        assert apply_env_overrides(config) == config

    def test_invalid_override_rejected(self, monkeypatch):
        monkeypatch.setenv(ENV_PROCESS_REGEX, "[")
        with pytest.raises(ConfigValidationError):
            apply_env_overrides(ExportConfig())


# =============================================================================
# Output naming
# =============================================================================


def test_output_path_default_config(tmp_path):
    assert output_path(tmp_path / "trace.jsonl", "", "HeapAllocations") == tmp_path / "trace.jsonl.HeapAllocations.json"


def test_output_path_named_config(tmp_path):
    result = output_path(tmp_path / "trace.jsonl", "lean", "HeapAllocations")
    assert result == tmp_path / "trace.jsonl.lean.HeapAllocations.json"
