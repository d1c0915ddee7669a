"""
Configuration module for the PagerDuty extension operator.

Loads configuration from environment variables.
Supports plugin-based architecture with plugin-specific configuration.
"""

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

DEFAULT_API_URL = "https://api.pagerduty.com"


@dataclass
class PagerDutyConfig:
    """PagerDuty REST API client configuration."""

    api_token: str = field(default="", repr=False)  # Never log token
    api_url: str = DEFAULT_API_URL
    request_timeout: int = 30  # seconds
    user_agent: str = "pdx-operator"

    @classmethod
    def from_env(cls, require_token: bool = True):
        """Load from environment variables."""
        token = os.getenv("PAGERDUTY_TOKEN", "")
        if require_token and not token:
            raise ValueError(
                "PAGERDUTY_TOKEN environment variable must be set. "
                "PagerDuty API token cannot be empty."
            )

        return cls(
            api_token=token,
            api_url=os.getenv("PAGERDUTY_API_URL", DEFAULT_API_URL).rstrip("/"),
            request_timeout=int(os.getenv("PAGERDUTY_REQUEST_TIMEOUT", "30")),
            user_agent=os.getenv("PAGERDUTY_USER_AGENT", "pdx-operator"),
        )


@dataclass
class ControllerConfig:
    """Controller reconciliation loop configuration."""

    reconcile_interval: int = 60  # seconds
    max_concurrent_reconciles: int = 5
    state_path: str = "pdx.state.json"
    manifest_path: str = "manifests"
    # Destroy resources found in state but missing from manifests
    prune: bool = False

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            reconcile_interval=int(os.getenv("RECONCILE_INTERVAL", "60")),
            max_concurrent_reconciles=int(os.getenv("MAX_CONCURRENT_RECONCILES", "5")),
            state_path=os.getenv("PDX_STATE_PATH", "pdx.state.json"),
            manifest_path=os.getenv("PDX_MANIFEST_PATH", "manifests"),
            prune=os.getenv("PDX_PRUNE", "false").lower() == "true",
        )


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        return cls(
            level=os.getenv("LOG_LEVEL", "INFO").upper(),
            format=os.getenv(
                "LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            ),
        )


@dataclass
class PluginConfig:
    """Plugin system configuration."""

    # List of enabled resource types (empty = use all registered plugins)
    enabled_resource_plugins: List[str] = field(default_factory=list)

    # Plugin-specific configurations keyed by resource type
    plugin_configs: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_env(cls):
        """Load from environment variables."""
        enabled_str = os.getenv("ENABLED_RESOURCE_PLUGINS", "")

        enabled = (
            [p.strip() for p in enabled_str.split(",") if p.strip()]
            if enabled_str
            else []
        )

        # Load plugin configs from JSON environment variable
        plugin_configs = {}
        if os.getenv("PLUGIN_CONFIGS"):
            try:
                plugin_configs = json.loads(os.getenv("PLUGIN_CONFIGS"))
            except json.JSONDecodeError:
                pass

        return cls(
            enabled_resource_plugins=enabled,
            plugin_configs=plugin_configs,
        )

    def get_plugin_config(self, resource_type: str) -> Dict[str, Any]:
        """Get configuration for a specific resource plugin."""
        return self.plugin_configs.get(resource_type, {})

    def is_enabled(self, resource_type: str) -> bool:
        """Check whether a resource plugin may be used."""
        if not self.enabled_resource_plugins:
            return True
        return resource_type in self.enabled_resource_plugins


@dataclass
class Config:
    """Main configuration object."""

    pagerduty: PagerDutyConfig
    controller: ControllerConfig
    logging: LoggingConfig
    plugins: PluginConfig

    @classmethod
    def from_env(cls, require_token: bool = True):
        """Load all configuration from environment variables."""
        return cls(
            pagerduty=PagerDutyConfig.from_env(require_token=require_token),
            controller=ControllerConfig.from_env(),
            logging=LoggingConfig.from_env(),
            plugins=PluginConfig.from_env(),
        )

    @classmethod
    def default(cls):
        """Return default configuration."""
        return cls(
            pagerduty=PagerDutyConfig(),
            controller=ControllerConfig(),
            logging=LoggingConfig(),
            plugins=PluginConfig(),
        )


# Global config instance
config: Optional[Config] = None


def load_config(require_token: bool = True) -> Config:
    """Load configuration (singleton pattern)."""
    global config
    if config is None:
        config = Config.from_env(require_token=require_token)
    return config


def get_config() -> Config:
    """Get the current configuration."""
    if config is None:
        return load_config()
    return config


def reset_config() -> None:
    """Reset configuration (mainly for testing)."""
    global config
    config = None
