"""
Core plugin types and dataclasses.

This module contains shared types used across the plugin system.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class ResourceAction(Enum):
    """What the controller does to bring a resource to its declared state."""

    CREATE = "create"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    IMPORT = "import"
    REFRESH = "refresh"
    NOOP = "noop"


@dataclass
class ResourceSpec:
    """Declared resource loaded from a manifest."""

    name: str
    resource_type: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    source: Optional[str] = None


@dataclass
class ReconcileResult:
    """Result of a single controller operation on a resource."""

    name: str
    action: ResourceAction = ResourceAction.NOOP
    success: bool = False
    message: str = ""
    resource_id: str = ""
    changed_attributes: Dict[str, Any] = field(default_factory=dict)
