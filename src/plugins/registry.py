"""
Plugin Registry - Discovery and registration of resource plugins.

This module provides the central registry for all resource plugins,
handling discovery, registration, and instantiation.
"""

from importlib.metadata import entry_points
from typing import Any, Dict, List, Optional, Type

from plugins.base import logger
from plugins.resources.base import ResourcePlugin
from validation import check_schema

ENTRY_POINT_GROUP = "pdx.resources"


class PluginRegistry:
    """
    Central registry for resource plugins.

    Maps resource type names to plugin classes and keeps one initialized
    instance per resource type.
    """

    def __init__(self):
        # Registered plugin classes (not instantiated)
        self._resource_plugins: Dict[str, Type[ResourcePlugin]] = {}

        # Cached plugin metadata to avoid repeated instantiation
        self._resource_plugin_info: Dict[str, Dict[str, Any]] = {}

        # Instantiated and initialized plugin instances
        self._resource_instances: Dict[str, ResourcePlugin] = {}

        # Plugin configurations loaded from environment
        self._resource_plugin_configs: Dict[str, Dict[str, Any]] = {}

    def register_resource_plugin(self, plugin_class: Type[ResourcePlugin]) -> None:
        """
        Register a resource plugin class.

        Args:
            plugin_class: The ResourcePlugin subclass to register

        Raises:
            ValueError: If the plugin schema is invalid, or the resource type
                is already claimed by a different plugin class
        """
        # Create temporary instance to get metadata (only once at registration)
        temp_instance = plugin_class()
        resource_type = temp_instance.resource_type
        version = temp_instance.version

        is_valid, error = check_schema(temp_instance.schema)
        if not is_valid:
            raise ValueError(
                f"Resource plugin '{resource_type}' has an invalid schema: {error}"
            )

        existing = self._resource_plugins.get(resource_type)
        if existing is not None and existing is not plugin_class:
            raise ValueError(
                f"Resource type '{resource_type}' is already claimed by "
                f"{existing.__name__}. Cannot register {plugin_class.__name__}."
            )

        self._resource_plugins[resource_type] = plugin_class
        self._resource_plugin_info[resource_type] = {
            "resource_type": resource_type,
            "version": version,
            "force_new_attributes": list(temp_instance.force_new_attributes),
            "sensitive_attributes": list(temp_instance.sensitive_attributes),
        }
        # Load plugin config from environment
        self._resource_plugin_configs[resource_type] = (
            plugin_class.load_config_from_env()
        )
        logger.info(f"Registered resource plugin: {resource_type} v{version}")

    async def get_resource_plugin(
        self, resource_type: str, config: Optional[Dict[str, Any]] = None
    ) -> ResourcePlugin:
        """
        Get an initialized resource plugin instance.

        Args:
            resource_type: The resource type to retrieve
            config: Optional configuration merged over the env-loaded config

        Returns:
            An initialized ResourcePlugin instance

        Raises:
            ValueError: If the resource type is not registered
        """
        if resource_type not in self._resource_plugins:
            available = ", ".join(self._resource_plugins.keys()) or "none"
            raise ValueError(
                f"Unknown resource type: {resource_type}. "
                f"Available resource types: {available}"
            )

        if resource_type not in self._resource_instances:
            plugin_config = self.get_resource_plugin_config(resource_type)
            if config:
                plugin_config.update(config)

            plugin = self._resource_plugins[resource_type]()
            await plugin.initialize(plugin_config)
            self._resource_instances[resource_type] = plugin
            logger.info(f"Initialized resource plugin: {resource_type}")

        return self._resource_instances[resource_type]

    # Discovery methods

    def list_resource_plugins(self) -> List[str]:
        """List all registered resource type names."""
        return list(self._resource_plugins.keys())

    def has_resource_plugin(self, resource_type: str) -> bool:
        """Check if a resource type is registered."""
        return resource_type in self._resource_plugins

    def get_resource_plugin_info(self, resource_type: str) -> Optional[Dict[str, Any]]:
        """
        Get information about a registered resource plugin.

        Args:
            resource_type: The resource type name

        Returns:
            Dictionary with 'resource_type', 'version' and attribute flags,
            or None if not found
        """
        return self._resource_plugin_info.get(resource_type)

    def get_resource_plugin_config(self, resource_type: str) -> Dict[str, Any]:
        """
        Get the env-loaded configuration for a resource plugin.

        Args:
            resource_type: The resource type name

        Returns:
            Copy of the configuration values, or empty dict if not found
        """
        return dict(self._resource_plugin_configs.get(resource_type, {}))


# Global registry instance
_registry: Optional[PluginRegistry] = None


def get_registry() -> PluginRegistry:
    """Get the global plugin registry singleton."""
    global _registry
    if _registry is None:
        _registry = PluginRegistry()
    return _registry


def reset_registry() -> None:
    """Reset the global registry (mainly for testing)."""
    global _registry
    _registry = None


def register_builtin_plugins() -> None:
    """
    Register all built-in resource plugins and discover third party ones
    via entry points.

    This function is called during application startup.
    """
    registry = get_registry()

    from plugins.resources.extension_servicenow import ExtensionServiceNowPlugin

    registry.register_resource_plugin(ExtensionServiceNowPlugin)

    # Discover and register resource plugins via entry points
    discovered = entry_points(group=ENTRY_POINT_GROUP)
    for ep in discovered:
        try:
            plugin_class = ep.load()
            registry.register_resource_plugin(plugin_class)
        except Exception as e:
            logger.warning(f"Could not load resource plugin {ep.name}: {e}")
