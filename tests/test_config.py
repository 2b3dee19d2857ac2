"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for application settings.
"""

import os
import tempfile
from unittest.mock import patch

import pytest
import yaml

from funnel_lab.config.loader import (
    CONFIG_PATH_ENV,
    DB_PATH_ENV,
    AppSettings,
    CacheSettings,
    load_settings,
)


class TestSettingsLoading:
    """Test settings loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a valid configuration loads correctly."""
        config_path = self._write_config({
            "database": {"path": "/tmp/funnel.db"},
            "cache": {"enabled": False, "ttl_hours": 12, "key_prefix": "funnel"},
            "provider": {"timeout_seconds": 30, "default_model": "gpt-4o-mini"},
            "feature": {"name": "funnel_analysis", "service": "funnel_analysis"},
            "logging": {"level": "debug", "json": True},
        })

        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings(config_path)

        assert settings.db_path == "/tmp/funnel.db"
        assert settings.cache.enabled is False
        assert settings.cache.ttl_hours == 12
        assert settings.cache.key_prefix == "funnel"
        assert settings.provider.timeout_seconds == 30
        assert settings.provider.default_model == "gpt-4o-mini"
        assert settings.logging.json is True

    def test_missing_sections_use_defaults(self):
        config_path = self._write_config({"cache": {"ttl_hours": 6}})

        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings(config_path)

        assert settings.cache.ttl_hours == 6
        assert settings.cache.enabled is True
        assert settings.provider.timeout_seconds == 60
        assert settings.feature.name == "funnel_analysis"

    def test_no_path_gives_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings()
        assert settings == AppSettings()

    def test_empty_file_gives_defaults(self):
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, "w").close()

        with patch.dict(os.environ, {}, clear=True):
            assert load_settings(config_path) == AppSettings()

    def test_path_read_from_environment(self):
        config_path = self._write_config({"cache": {"ttl_hours": 2}})

        with patch.dict(os.environ, {CONFIG_PATH_ENV: config_path}, clear=True):
            settings = load_settings()

        assert settings.cache.ttl_hours == 2

    def test_db_path_environment_override(self):
        config_path = self._write_config({"database": {"path": "from-file.db"}})

        with patch.dict(os.environ, {DB_PATH_ENV: "from-env.db"}, clear=True):
            settings = load_settings(config_path)

        assert settings.db_path == "from-env.db"

    def test_missing_file_raises(self):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_settings(os.path.join(self.temp_dir, "nope.yaml"))

    def test_unknown_top_level_key_rejected(self):
        config_path = self._write_config({"budget": {"daily": 10}})
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_settings(config_path)

    def test_unknown_section_key_rejected(self):
        config_path = self._write_config({"cache": {"ttl": 24}})
        with pytest.raises(ValueError, match="Unknown keys in cache"):
            load_settings(config_path)

    def test_wrong_type_rejected(self):
        config_path = self._write_config({"cache": {"ttl_hours": "24"}})
        with pytest.raises(ValueError, match="invalid type"):
            load_settings(config_path)

    def test_bool_rejected_for_numeric_field(self):
        config_path = self._write_config({"provider": {"timeout_seconds": True}})
        with pytest.raises(ValueError, match="invalid type"):
            load_settings(config_path)

    def test_non_mapping_root_rejected(self):
        config_path = self._write_config(["cache"])
        with pytest.raises(ValueError, match="root must be a dictionary"):
            load_settings(config_path)

    def test_non_mapping_section_rejected(self):
        config_path = self._write_config({"cache": "on"})
        with pytest.raises(ValueError, match="'cache' must be a dictionary"):
            load_settings(config_path)

    def test_invalid_log_level_rejected(self):
        config_path = self._write_config({"logging": {"level": "LOUD"}})
        with pytest.raises(ValueError, match="logging level"):
            load_settings(config_path)

    def test_invalid_yaml_raises(self):
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, "w", encoding="utf-8") as f:
            f.write("cache: [unclosed\n")
        with pytest.raises(yaml.YAMLError):
            load_settings(config_path)


class TestSettingsValidation:
    """Test dataclass-level validation."""

    def test_non_positive_ttl_rejected(self):
        with pytest.raises(ValueError, match="ttl_hours must be > 0"):
            CacheSettings(ttl_hours=0)

    def test_empty_prefix_rejected(self):
        with pytest.raises(ValueError, match="key_prefix cannot be empty"):
            CacheSettings(key_prefix="")
