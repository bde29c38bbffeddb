"""Unit tests for utils/config_manager.py"""

import dataclasses
import os
import sys
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
import yaml

_python_dir = Path(__file__).parent.parent / "python"
if str(_python_dir.absolute()) not in sys.path:
    sys.path.insert(0, str(_python_dir.absolute()))


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Remove retag environment overrides that may be set on the host"""
    from utils.config_manager import ENV_OVERRIDES

    for env_var in list(ENV_OVERRIDES) + ["CONFIG_FILE"]:
        monkeypatch.delenv(env_var, raising=False)


def _write_config(config):
    with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
        yaml.dump(config, f)
        return f.name


REQUIRED = {
    "source": {"repository": "registry.local/app"},
    "destination": {"repository": "registry.remote/app"},
}


class TestConfigManagerInitialization:
    """Tests for ConfigManager initialization"""

    def test_loads_default_config_when_file_not_found(self):
        """Test that defaults are used when config file doesn't exist"""
        from utils.config_manager import ConfigManager

        cm = ConfigManager(config_file="/nonexistent/config.yaml", validate=False)

        assert cm.get_runtime_command() == "docker"
        assert cm.get_source_version() == "latest"
        assert cm.get_dest_version() == "latest"
        assert cm.get_threads() == 4
        assert cm.get_queue_capacity() == 256
        assert cm.get_transient_markers() == ("database is locked",)
        assert cm.get_max_retries() == 10
        assert cm.get_include_filter() is None
        assert cm.get_exclude_filter() is None
        assert cm.get_report_path() is None
        assert cm.is_report_timestamped() is False

    def test_loads_config_from_yaml_file(self):
        """Test loading configuration from a YAML file"""
        from utils.config_manager import ConfigManager

        config = {
            "runtime": {"command": "podman"},
            "source": {"repository": "registry.local/app", "version": "v1"},
            "destination": {"repository": "registry.remote/app", "version": "v2"},
            "filters": {"include": "api", "exclude": "beta"},
            "push": {"threads": 8},
        }
        temp_path = _write_config(config)

        try:
            cm = ConfigManager(config_file=temp_path)
            assert cm.get_runtime_command() == "podman"
            assert cm.get_source_version() == "v1"
            assert cm.get_dest_repository() == "registry.remote/app"
            assert cm.get_include_filter() == "api"
            assert cm.get_exclude_filter() == "beta"
            assert cm.get_threads() == 8
            # Default value preserved
            assert cm.get_queue_capacity() == 256
        finally:
            os.unlink(temp_path)

    def test_config_file_from_environment(self, monkeypatch):
        from utils.config_manager import ConfigManager

        temp_path = _write_config(REQUIRED)
        monkeypatch.setenv("CONFIG_FILE", temp_path)

        try:
            cm = ConfigManager()
            assert cm.config_file == temp_path
            assert cm.get_source_repository() == "registry.local/app"
        finally:
            os.unlink(temp_path)

    def test_environment_variables_override_config(self, monkeypatch):
        """Test that environment variables override file values"""
        from utils.config_manager import ConfigManager

        temp_path = _write_config(dict(REQUIRED, push={"threads": 2}))
        monkeypatch.setenv("DEST_REPOSITORY", "registry.env/app")
        monkeypatch.setenv("RETAG_THREADS", "6")
        monkeypatch.setenv("CONTAINER_RUNTIME", "podman")

        try:
            cm = ConfigManager(config_file=temp_path)
            assert cm.get_dest_repository() == "registry.env/app"
            assert cm.get_threads() == 6
            assert cm.get_runtime_command() == "podman"
        finally:
            os.unlink(temp_path)

    def test_overrides_win_and_ignore_none(self, monkeypatch):
        """Test that command-line overrides are applied last and None leaves values alone"""
        from utils.config_manager import ConfigManager

        monkeypatch.setenv("SOURCE_REPOSITORY", "registry.env/app")
        overrides = {
            "source": {"repository": "registry.cli/app", "version": None},
            "destination": {"repository": "registry.remote/app"},
            "push": {"threads": None},
        }

        cm = ConfigManager(config_file="/nonexistent/config.yaml", overrides=overrides)

        assert cm.get_source_repository() == "registry.cli/app"
        assert cm.get_source_version() == "latest"
        assert cm.get_threads() == 4

    def test_invalid_yaml_raises(self):
        from utils.config_manager import ConfigManager, ConfigValidationError

        with tempfile.NamedTemporaryFile(mode="w", suffix=".yaml", delete=False) as f:
            f.write("source: [unclosed\n")
            temp_path = f.name

        try:
            with pytest.raises(ConfigValidationError, match="Error loading config file"):
                ConfigManager(config_file=temp_path, validate=False)
        finally:
            os.unlink(temp_path)

    def test_non_mapping_yaml_raises(self):
        from utils.config_manager import ConfigManager, ConfigValidationError

        temp_path = _write_config(["not", "a", "mapping"])

        try:
            with pytest.raises(ConfigValidationError, match="mapping"):
                ConfigManager(config_file=temp_path, validate=False)
        finally:
            os.unlink(temp_path)


class TestConfigValidation:
    """Tests for ConfigManager.validate_config"""

    def _manager(self, **sections):
        from utils.config_manager import ConfigManager

        overrides = {
            "source": {"repository": "registry.local/app"},
            "destination": {"repository": "registry.remote/app"},
        }
        overrides.update(sections)
        return ConfigManager(config_file="/nonexistent/config.yaml", overrides=overrides, validate=False)

    def test_valid_config(self):
        self._manager().validate_config()

    def test_missing_source_repository(self):
        from utils.config_manager import ConfigManager, ConfigValidationError

        with pytest.raises(ConfigValidationError, match="missing source-repository"):
            ConfigManager(
                config_file="/nonexistent/config.yaml",
                overrides={"destination": {"repository": "registry.remote/app"}},
            )

    def test_missing_dest_repository(self):
        from utils.config_manager import ConfigManager, ConfigValidationError

        with pytest.raises(ConfigValidationError, match="missing dest-repository"):
            ConfigManager(
                config_file="/nonexistent/config.yaml",
                overrides={"source": {"repository": "registry.local/app"}},
            )

    def test_all_errors_are_reported_together(self):
        from utils.config_manager import ConfigValidationError

        cm = self._manager(push={"threads": 0, "queue_capacity": 0}, retry={"max_retries": -1})

        with pytest.raises(ConfigValidationError) as exc_info:
            cm.validate_config()

        message = str(exc_info.value)
        assert "push.threads" in message
        assert "push.queue_capacity" in message
        assert "retry.max_retries" in message

    def test_version_with_space_rejected(self):
        from utils.config_manager import ConfigValidationError

        cm = self._manager(source={"repository": "registry.local/app", "version": "v1 beta"})

        with pytest.raises(ConfigValidationError, match="source.version cannot contain spaces"):
            cm.validate_config()

    def test_non_integer_threads(self):
        from utils.config_manager import ConfigValidationError

        cm = self._manager(push={"threads": "many"})

        with pytest.raises(ConfigValidationError, match="push.threads must be an integer"):
            cm.validate_config()

    def test_max_delay_below_initial_delay(self):
        from utils.config_manager import ConfigValidationError

        cm = self._manager(retry={"initial_delay": 5, "max_delay": 1})

        with pytest.raises(ConfigValidationError, match="retry.max_delay"):
            cm.validate_config()

    def test_empty_markers_only_warn(self):
        cm = self._manager(push={"transient_markers": []})

        with patch("logging.warning") as mock_warning:
            cm.validate_config()

        assert any("transient_markers" in c[0][0] for c in mock_warning.call_args_list)

    def test_identical_coordinates_only_warn(self):
        cm = self._manager(destination={"repository": "registry.local/app"})

        with patch("logging.warning") as mock_warning:
            cm.validate_config()

        assert any("identical" in c[0][0] for c in mock_warning.call_args_list)


class TestRetagConfig:
    """Tests for ConfigManager.get_retag_config"""

    def test_builds_run_configuration(self):
        from utils.config_manager import ConfigManager
        from utils.image_records import Coordinate, NameFilter

        overrides = {
            "runtime": {"command": "podman"},
            "source": {"repository": "registry.local/app", "version": "v1"},
            "destination": {"repository": "registry.remote/app", "version": "v2"},
            "filters": {"include": "api"},
            "push": {"threads": "3", "transient_markers": "i/o timeout"},
            "retry": {"max_retries": 2, "jitter": True},
            "progress": {"enabled": False},
            "report": {"output": "reports/retag.json", "timestamp": True},
        }

        config = ConfigManager(config_file="/nonexistent/config.yaml", overrides=overrides).get_retag_config()

        assert config.source == Coordinate("registry.local/app", "v1")
        assert config.destination == Coordinate("registry.remote/app", "v2")
        assert config.name_filter == NameFilter(include="api", exclude=None)
        assert config.runtime_command == "podman"
        assert config.threads == 3
        assert config.retry.max_retries == 2
        assert config.retry.jitter is True
        assert config.retry.transient_markers == ("i/o timeout",)
        assert config.show_progress is False
        assert config.report_path == "reports/retag.json"
        assert config.report_timestamp is True

    def test_is_immutable(self):
        from utils.config_manager import ConfigManager

        config = ConfigManager(config_file="/nonexistent/config.yaml", overrides=REQUIRED).get_retag_config()

        with pytest.raises(dataclasses.FrozenInstanceError):
            config.threads = 99

    def test_invalid_markers_type(self):
        from utils.config_manager import ConfigManager, ConfigValidationError

        cm = ConfigManager(
            config_file="/nonexistent/config.yaml",
            overrides=dict(REQUIRED, push={"transient_markers": 5}),
            validate=False,
        )

        with pytest.raises(ConfigValidationError, match="transient_markers"):
            cm.get_transient_markers()
