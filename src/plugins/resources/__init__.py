"""
Resource plugins package.

Resource plugins map one declarative resource type onto the PagerDuty API.
Third party plugins are discovered via Python entry points
(group: 'pdx.resources').
"""

from plugins.resources.base import ResourcePlugin

__all__ = ["ResourcePlugin"]
