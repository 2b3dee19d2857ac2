"""
Unit tests for AI configuration resolution.

Tests service > plan > global precedence and the not-found case.
"""

import os
import tempfile

import pytest

from funnel_lab.core.config_resolver import ConfigResolver
from funnel_lab.core.errors import ConfigNotFound
from funnel_lab.storage.models import AIConfiguration, AIModel, ConfigLevel
from funnel_lab.storage.repository import initialize_schema, insert_configuration


def _model(name: str) -> AIModel:
    return AIModel(model_name=name, provider="openai", provider_model_id=name)


class TestConfigResolver:
    """Test the configuration hierarchy walk."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.resolver = ConfigResolver(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _add(self, level: ConfigLevel, identifier, model_name: str, active: bool = True):
        insert_configuration(AIConfiguration(
            level=level,
            identifier=identifier,
            model=_model(model_name),
            is_active=active
        ), self.db_path)

    def test_service_wins_over_plan_and_global(self):
        self._add(ConfigLevel.GLOBAL, None, "global-model")
        self._add(ConfigLevel.PLAN, "pro", "plan-model")
        self._add(ConfigLevel.SERVICE, "funnel_analysis", "service-model")

        config = self.resolver.resolve("funnel_analysis", plan_name="pro")
        assert config.model.model_name == "service-model"
        assert config.level == ConfigLevel.SERVICE

    def test_plan_wins_over_global(self):
        self._add(ConfigLevel.GLOBAL, None, "global-model")
        self._add(ConfigLevel.PLAN, "pro", "plan-model")

        assert self.resolver.resolve("funnel_analysis", plan_name="pro").model.model_name == "plan-model"

    def test_plan_level_skipped_without_plan_name(self):
        self._add(ConfigLevel.GLOBAL, None, "global-model")
        self._add(ConfigLevel.PLAN, "pro", "plan-model")

        assert self.resolver.resolve("funnel_analysis").model.model_name == "global-model"

    def test_other_plan_not_used(self):
        self._add(ConfigLevel.GLOBAL, None, "global-model")
        self._add(ConfigLevel.PLAN, "enterprise", "plan-model")

        assert self.resolver.resolve("funnel_analysis", plan_name="pro").model.model_name == "global-model"

    def test_falls_back_to_global(self):
        self._add(ConfigLevel.GLOBAL, None, "global-model")
        self._add(ConfigLevel.SERVICE, "other_service", "service-model")

        assert self.resolver.resolve("funnel_analysis").model.model_name == "global-model"

    def test_inactive_service_configuration_skipped(self):
        self._add(ConfigLevel.GLOBAL, None, "global-model")
        self._add(ConfigLevel.SERVICE, "funnel_analysis", "service-model", active=False)

        assert self.resolver.resolve("funnel_analysis").model.model_name == "global-model"

    def test_nothing_active_raises(self):
        self._add(ConfigLevel.GLOBAL, None, "global-model", active=False)

        with pytest.raises(ConfigNotFound, match="funnel_analysis"):
            self.resolver.resolve("funnel_analysis", plan_name="pro")

    def test_empty_store_raises(self):
        with pytest.raises(ConfigNotFound):
            self.resolver.resolve("funnel_analysis")


class TestConfigurationValidation:
    """Test AIConfiguration invariants."""

    def test_non_global_level_requires_identifier(self):
        with pytest.raises(ValueError, match="identifier is required"):
            AIConfiguration(level=ConfigLevel.PLAN, model=_model("m"))

    def test_temperature_range(self):
        with pytest.raises(ValueError, match="temperature"):
            AIConfiguration(level=ConfigLevel.GLOBAL, model=_model("m"), temperature=2.5)

    def test_max_tokens_positive(self):
        with pytest.raises(ValueError, match="max_tokens"):
            AIConfiguration(level=ConfigLevel.GLOBAL, model=_model("m"), max_tokens=0)
