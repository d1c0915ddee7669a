"""Unit tests for main.py - Operator entry point."""

import pytest
from unittest.mock import AsyncMock, patch

from config import Config, PagerDutyConfig, PluginConfig
from controller import Controller
from main import Application

RESOURCE_TYPE = "pagerduty_extension_servicenow"


@pytest.fixture
def app_config(tmp_path):
    config = Config.default()
    config.pagerduty = PagerDutyConfig(api_token="testtoken")
    config.controller.state_path = str(tmp_path / "pdx.state.json")
    config.controller.manifest_path = str(tmp_path)
    config.plugins = PluginConfig(
        plugin_configs={RESOURCE_TYPE: {"read_timeout": 5}}
    )
    return config


def _write_manifest(tmp_path, name, resource_type):
    (tmp_path / f"{name}.yaml").write_text(
        f"name: {name}\ntype: {resource_type}\nattributes: {{}}\n"
    )


class TestApplication:
    """Tests for Application wiring."""

    def test_initialize(self, app_config):
        app = Application(app_config)
        with patch("plugins.registry.entry_points", return_value=[]):
            app.initialize()

        assert isinstance(app.controller, Controller)
        assert app.controller.client.token == "testtoken"
        assert app.controller.config.plugin_configs == {
            RESOURCE_TYPE: {"read_timeout": 5}
        }

    def test_initialize_skips_config_of_disabled_plugins(self, app_config):
        app_config.plugins.enabled_resource_plugins = ["other_type"]
        app = Application(app_config)
        with patch("plugins.registry.entry_points", return_value=[]):
            app.initialize()

        assert app.controller.config.plugin_configs == {}

    def test_load_specs_filters_disabled_types(self, app_config, tmp_path):
        _write_manifest(tmp_path, "snow", RESOURCE_TYPE)
        _write_manifest(tmp_path, "other", "other_type")
        app_config.plugins.enabled_resource_plugins = [RESOURCE_TYPE]

        specs = Application(app_config).load_specs()

        assert [s.name for s in specs] == ["snow"]


@pytest.mark.asyncio
class TestApplicationAsync:
    """Async tests for application start and stop."""

    async def test_start_runs_controller(self, app_config):
        app = Application(app_config)
        with patch("plugins.registry.entry_points", return_value=[]):
            app.initialize()
        app.controller.start = AsyncMock()

        await app.start()

        assert app.running is True
        app.controller.start.assert_awaited_once_with(app.load_specs)

    async def test_stop(self, app_config):
        app = Application(app_config)
        with patch("plugins.registry.entry_points", return_value=[]):
            app.initialize()
        app.controller.stop = AsyncMock()
        app.running = True

        await app.stop()

        assert app.running is False
        app.controller.stop.assert_awaited_once()

    async def test_stop_when_not_running(self, app_config):
        app = Application(app_config)

        await app.stop()

        assert app.controller is None
