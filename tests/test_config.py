"""
Tests for configuration parsing (better_brew/config.py).
"""

import json
from unittest.mock import patch

import pytest

from better_brew.config import (
    Config,
    apply_env_overrides,
    load_config,
    load_config_file,
    validate_config,
    _load_json,
    _load_yaml,
)


@pytest.fixture
def no_standard_locations():
    """Keep the developer's own ~/.config/bbrew out of the tests."""
    with patch("better_brew.config.CONFIG_LOCATIONS", []):
        yield


class TestConfig:
    """Tests for Config dataclass."""

    def test_defaults(self):
        config = Config()
        assert config.version == 1
        assert config.brew_path == "brew"
        assert config.max_concurrent == 4
        assert config.batch_size == 10
        assert config.fetch_batch_size == 1
        assert config.timeout_seconds is None
        assert config.update_before_upgrade is True

    @pytest.mark.parametrize("kwargs", [
        {"version": 2},
        {"brew_path": ""},
        {"max_concurrent": 0},
        {"max_concurrent": 33},
        {"batch_size": 0},
        {"batch_size": 101},
        {"fetch_batch_size": 0},
        {"timeout_seconds": 0},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValueError):
            Config(**kwargs)

    def test_from_dict(self):
        config = Config.from_dict({
            "max_concurrent": 8,
            "batch_size": 5,
            "timeout_seconds": 600,
            "update_before_upgrade": False,
        }, source="test.yml")
        assert config.max_concurrent == 8
        assert config.batch_size == 5
        assert config.timeout_seconds == 600
        assert config.update_before_upgrade is False
        assert config.source == "test.yml"

    def test_to_dict(self):
        data = Config(max_concurrent=2).to_dict()
        assert data["max_concurrent"] == 2
        assert data["brew_path"] == "brew"

    def test_immutable(self):
        config = Config()
        with pytest.raises(AttributeError):
            config.max_concurrent = 8

    def test_merge_prefers_non_default_values(self):
        project = Config(max_concurrent=8, source="project.yml")
        user = Config(max_concurrent=2, batch_size=20, brew_path="/opt/homebrew/bin/brew", source="user.yml")
        merged = project.merge_with(user)

        assert merged.max_concurrent == 8
        assert merged.batch_size == 20
        assert merged.brew_path == "/opt/homebrew/bin/brew"
        assert merged.source == "project.yml"

    def test_from_dict_records_explicit_fields(self):
        """Test from_dict remembers which keys the file set."""
        config = Config.from_dict({"max_concurrent": 4, "unknown": 1})
        assert config.explicit_fields == frozenset({"max_concurrent"})
        assert "explicit_fields" not in config.to_dict()

    def test_merge_explicit_default_value_wins(self):
        """Test a value set explicitly to its default still beats a lower-priority file."""
        project = Config.from_dict({"max_concurrent": 4, "update_before_upgrade": True}, source="project.yml")
        user = Config.from_dict({"max_concurrent": 8, "update_before_upgrade": False}, source="user.yml")
        merged = project.merge_with(user)

        assert merged.max_concurrent == 4
        assert merged.update_before_upgrade is True

    def test_with_overrides_ignores_none(self):
        config = Config(max_concurrent=6)
        assert config.with_overrides(max_concurrent=None) is config
        assert config.with_overrides(batch_size=3).batch_size == 3

    def test_with_overrides_validates(self):
        with pytest.raises(ValueError):
            Config().with_overrides(max_concurrent=0)


class TestLoadConfigFile:
    """Tests for loading single files."""

    def test_load_yaml_file(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("max_concurrent: 6\nbatch_size: 3\n")
        config = load_config_file(str(path))
        assert config.max_concurrent == 6
        assert config.batch_size == 3
        assert config.source == str(path)

    def test_load_json_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"max_concurrent": 12}))
        config = load_config_file(str(path))
        assert config.max_concurrent == 12

    def test_missing_file(self, tmp_path):
        assert load_config_file(str(tmp_path / "nope.yml")) is None

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yml"
        path.write_text("max_concurrent: [unclosed\n")
        assert _load_yaml(str(path)) is None
        assert load_config_file(str(path)) is None

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{")
        assert _load_json(str(path)) is None

    def test_non_mapping_yaml_is_empty(self, tmp_path):
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        assert _load_yaml(str(path)) == {}

    def test_invalid_values_rejected(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("max_concurrent: 0\n")
        assert load_config_file(str(path)) is None


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_without_files(self, no_standard_locations):
        config = load_config(environ={})
        assert config == Config()

    def test_custom_path(self, tmp_path, no_standard_locations):
        path = tmp_path / "custom.yml"
        path.write_text("max_concurrent: 7\n")
        config = load_config(custom_path=str(path), environ={})
        assert config.max_concurrent == 7

    def test_custom_path_missing(self, tmp_path, no_standard_locations):
        with pytest.raises(ValueError, match="Could not load config"):
            load_config(custom_path=str(tmp_path / "missing.yml"), environ={})

    def test_merges_locations_in_priority_order(self, tmp_path):
        project = tmp_path / "project.yml"
        project.write_text("max_concurrent: 8\n")
        user = tmp_path / "user.yml"
        user.write_text("max_concurrent: 2\nbatch_size: 25\n")

        with patch("better_brew.config.CONFIG_LOCATIONS", [str(project), str(user)]):
            config = load_config(environ={})

        assert config.max_concurrent == 8
        assert config.batch_size == 25

    def test_project_default_value_beats_user_file(self, tmp_path):
        """Test project max_concurrent: 4 wins over user max_concurrent: 8."""
        project = tmp_path / "project.yml"
        project.write_text("max_concurrent: 4\nupdate_before_upgrade: true\n")
        user = tmp_path / "user.yml"
        user.write_text("max_concurrent: 8\nupdate_before_upgrade: false\nbatch_size: 25\n")
        system = tmp_path / "system.yml"
        system.write_text("batch_size: 50\nfetch_batch_size: 3\n")

        with patch("better_brew.config.CONFIG_LOCATIONS", [str(project), str(user), str(system)]):
            config = load_config(environ={})

        assert config.max_concurrent == 4
        assert config.update_before_upgrade is True
        assert config.batch_size == 25
        assert config.fetch_batch_size == 3
        assert config.source == str(project)

    def test_env_overrides_files(self, tmp_path, no_standard_locations):
        path = tmp_path / "custom.yml"
        path.write_text("max_concurrent: 7\n")
        config = load_config(
            custom_path=str(path),
            environ={"BBREW_MAX_CONCURRENT": "3", "BBREW_BREW_PATH": "/opt/homebrew/bin/brew"},
        )
        assert config.max_concurrent == 3
        assert config.brew_path == "/opt/homebrew/bin/brew"


class TestEnvOverrides:
    """Tests for BBREW_* environment handling."""

    def test_no_overrides(self):
        config = Config()
        assert apply_env_overrides(config, environ={}) is config

    def test_numeric_overrides(self):
        config = apply_env_overrides(Config(), environ={
            "BBREW_BATCH_SIZE": "4",
            "BBREW_TIMEOUT": "900",
        })
        assert config.batch_size == 4
        assert config.timeout_seconds == 900

    def test_unparseable_override(self):
        with pytest.raises(ValueError, match="BBREW_MAX_CONCURRENT"):
            apply_env_overrides(Config(), environ={"BBREW_MAX_CONCURRENT": "lots"})

    def test_out_of_range_override(self):
        with pytest.raises(ValueError, match="max_concurrent"):
            apply_env_overrides(Config(), environ={"BBREW_MAX_CONCURRENT": "0"})


class TestValidateConfig:
    """Tests for validate_config."""

    @patch("better_brew.config.os.cpu_count", return_value=8)
    def test_default_config_has_no_warnings(self, _):
        assert validate_config(Config()) == []

    @patch("better_brew.config.os.cpu_count", return_value=2)
    def test_cap_above_cpu_count(self, _):
        warnings = validate_config(Config(max_concurrent=16))
        assert any("exceeds CPU count" in w for w in warnings)

    @patch("better_brew.config.os.cpu_count", return_value=8)
    def test_short_timeout(self, _):
        warnings = validate_config(Config(timeout_seconds=10))
        assert any("timeout_seconds" in w for w in warnings)
