"""Unit tests for config.py - Configuration management."""

import os
import pytest
from unittest.mock import patch

import config
from config import (
    PagerDutyConfig,
    ControllerConfig,
    LoggingConfig,
    PluginConfig,
    Config,
    load_config,
    get_config,
    reset_config,
)


class TestPagerDutyConfig:
    """Tests for PagerDutyConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = PagerDutyConfig()
        assert cfg.api_token == ""
        assert cfg.api_url == "https://api.pagerduty.com"
        assert cfg.request_timeout == 30
        assert cfg.user_agent == "pdx-operator"

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "PAGERDUTY_TOKEN": "envtoken",
            "PAGERDUTY_API_URL": "https://api.eu.pagerduty.com/",
            "PAGERDUTY_REQUEST_TIMEOUT": "10",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = PagerDutyConfig.from_env()
            assert cfg.api_token == "envtoken"
            assert cfg.api_url == "https://api.eu.pagerduty.com"
            assert cfg.request_timeout == 10

    def test_from_env_missing_token_raises(self):
        """Test that missing token raises ValueError."""
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError) as exc_info:
                PagerDutyConfig.from_env()
            assert "PAGERDUTY_TOKEN" in str(exc_info.value)

    def test_from_env_token_optional(self):
        """Test that the token check can be skipped."""
        with patch.dict(os.environ, {}, clear=True):
            cfg = PagerDutyConfig.from_env(require_token=False)
            assert cfg.api_token == ""

    def test_token_not_in_repr(self):
        """Test that the token is not exposed in repr."""
        cfg = PagerDutyConfig(api_token="secret123")
        assert "secret123" not in repr(cfg)


class TestControllerConfig:
    """Tests for ControllerConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = ControllerConfig()
        assert cfg.reconcile_interval == 60
        assert cfg.max_concurrent_reconciles == 5
        assert cfg.state_path == "pdx.state.json"
        assert cfg.manifest_path == "manifests"
        assert cfg.prune is False

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "RECONCILE_INTERVAL": "45",
            "MAX_CONCURRENT_RECONCILES": "8",
            "PDX_STATE_PATH": "/var/lib/pdx/state.json",
            "PDX_MANIFEST_PATH": "/etc/pdx",
            "PDX_PRUNE": "true",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = ControllerConfig.from_env()
            assert cfg.reconcile_interval == 45
            assert cfg.max_concurrent_reconciles == 8
            assert cfg.state_path == "/var/lib/pdx/state.json"
            assert cfg.manifest_path == "/etc/pdx"
            assert cfg.prune is True

    def test_from_env_defaults(self):
        """Test that defaults are used when env vars not set."""
        with patch.dict(os.environ, {}, clear=True):
            cfg = ControllerConfig.from_env()
            assert cfg.reconcile_interval == 60
            assert cfg.max_concurrent_reconciles == 5
            assert cfg.prune is False


class TestLoggingConfig:
    """Tests for LoggingConfig class."""

    def test_from_env_uppercases_level(self):
        with patch.dict(os.environ, {"LOG_LEVEL": "debug"}, clear=True):
            cfg = LoggingConfig.from_env()
            assert cfg.level == "DEBUG"

    def test_from_env_defaults(self):
        with patch.dict(os.environ, {}, clear=True):
            cfg = LoggingConfig.from_env()
            assert cfg.level == "INFO"
            assert "%(message)s" in cfg.format


class TestPluginConfig:
    """Tests for PluginConfig class."""

    def test_default_values(self):
        """Test default configuration values."""
        cfg = PluginConfig()
        assert cfg.enabled_resource_plugins == []
        assert cfg.plugin_configs == {}

    def test_from_env(self):
        """Test loading configuration from environment variables."""
        env_vars = {
            "ENABLED_RESOURCE_PLUGINS": "pagerduty_extension_servicenow",
            "PLUGIN_CONFIGS": (
                '{"pagerduty_extension_servicenow": {"read_timeout": 30}}'
            ),
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = PluginConfig.from_env()
            assert cfg.enabled_resource_plugins == ["pagerduty_extension_servicenow"]
            assert cfg.plugin_configs == {
                "pagerduty_extension_servicenow": {"read_timeout": 30}
            }

    def test_from_env_invalid_json(self):
        """Test that invalid JSON in PLUGIN_CONFIGS is handled gracefully."""
        with patch.dict(os.environ, {"PLUGIN_CONFIGS": "not valid json"}, clear=True):
            cfg = PluginConfig.from_env()
            assert cfg.plugin_configs == {}

    def test_from_env_whitespace_handling(self):
        """Test that whitespace in plugin lists is handled."""
        env_vars = {"ENABLED_RESOURCE_PLUGINS": " a_type , b_type ,"}
        with patch.dict(os.environ, env_vars, clear=True):
            cfg = PluginConfig.from_env()
            assert cfg.enabled_resource_plugins == ["a_type", "b_type"]

    def test_get_plugin_config(self):
        """Test get_plugin_config method."""
        cfg = PluginConfig(plugin_configs={"a_type": {"read_timeout": 5}})
        assert cfg.get_plugin_config("a_type") == {"read_timeout": 5}
        assert cfg.get_plugin_config("nonexistent") == {}

    def test_is_enabled_when_list_empty(self):
        cfg = PluginConfig()
        assert cfg.is_enabled("anything") is True

    def test_is_enabled_filters(self):
        cfg = PluginConfig(enabled_resource_plugins=["a_type"])
        assert cfg.is_enabled("a_type") is True
        assert cfg.is_enabled("b_type") is False


class TestConfig:
    """Tests for main Config class."""

    def test_default(self):
        """Test default configuration."""
        cfg = Config.default()
        assert isinstance(cfg.pagerduty, PagerDutyConfig)
        assert isinstance(cfg.controller, ControllerConfig)
        assert isinstance(cfg.logging, LoggingConfig)
        assert isinstance(cfg.plugins, PluginConfig)

    def test_from_env(self):
        """Test loading full configuration from environment."""
        env_vars = {
            "PAGERDUTY_TOKEN": "testtoken",
            "RECONCILE_INTERVAL": "30",
            "LOG_LEVEL": "WARNING",
        }
        with patch.dict(os.environ, env_vars, clear=False):
            cfg = Config.from_env()
            assert cfg.pagerduty.api_token == "testtoken"
            assert cfg.controller.reconcile_interval == 30
            assert cfg.logging.level == "WARNING"


class TestConfigSingleton:
    """Tests for config singleton functions."""

    def setup_method(self):
        """Reset config before each test."""
        reset_config()

    def teardown_method(self):
        """Reset config after each test."""
        reset_config()

    def test_load_config(self):
        """Test load_config function."""
        with patch.dict(os.environ, {"PAGERDUTY_TOKEN": "testtoken"}, clear=False):
            cfg = load_config()
            assert isinstance(cfg, Config)

    def test_get_config_loads_if_none(self):
        """Test get_config loads config if not loaded."""
        with patch.dict(os.environ, {"PAGERDUTY_TOKEN": "testtoken"}, clear=False):
            cfg = get_config()
            assert isinstance(cfg, Config)

    def test_singleton_returns_same_instance(self):
        """Test that singleton returns same instance."""
        with patch.dict(os.environ, {"PAGERDUTY_TOKEN": "testtoken"}, clear=False):
            cfg1 = load_config()
            cfg2 = get_config()
            assert cfg1 is cfg2

    def test_reset_config(self):
        """Test reset_config clears the singleton."""
        with patch.dict(os.environ, {"PAGERDUTY_TOKEN": "testtoken"}, clear=False):
            cfg1 = load_config()
            reset_config()
            assert config.config is None
            cfg2 = load_config()
            assert cfg1 is not cfg2
