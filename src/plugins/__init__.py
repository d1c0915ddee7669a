"""
Plugin system for the PagerDuty extension operator.

This package provides the plugin architecture for managed resource types.
"""

from plugins.base import ReconcileResult, ResourceAction, ResourceSpec
from plugins.resources.base import ResourcePlugin
from plugins.registry import PluginRegistry, get_registry

__all__ = [
    "ReconcileResult",
    "ResourceAction",
    "ResourceSpec",
    "ResourcePlugin",
    "PluginRegistry",
    "get_registry",
]
