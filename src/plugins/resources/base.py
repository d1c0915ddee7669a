"""
Resource Plugin Base - Abstract interface for managed resource types.

A resource plugin owns the mapping between one declarative resource type and
the remote API. The controller drives its lifecycle methods; the plugin only
translates attributes and calls the client.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from pagerduty import PagerDutyClient
from state import ResourceData
from validation import validate_document


class ResourcePlugin(ABC):
    """
    Abstract base class for resource plugins.

    Lifecycle methods receive the resource state and the API client
    explicitly and mutate the ResourceData in place. Errors from the client
    propagate to the caller unless the plugin documents otherwise.

    Resource plugins are discovered via Python entry points in the
    'pdx.resources' group.
    """

    @property
    @abstractmethod
    def resource_type(self) -> str:
        """Unique resource type name (e.g., 'pagerduty_extension_servicenow')."""
        pass

    @property
    @abstractmethod
    def version(self) -> str:
        """Plugin version string."""
        pass

    @property
    @abstractmethod
    def schema(self) -> Dict[str, Any]:
        """JSON Schema (Draft 7) of the declared attributes."""
        pass

    @property
    def force_new_attributes(self) -> List[str]:
        """Attributes whose change requires destroying and recreating."""
        return []

    @property
    def sensitive_attributes(self) -> List[str]:
        """Attributes that must be masked in output."""
        return []

    @property
    def computed_attributes(self) -> List[str]:
        """Attributes set by the remote side only."""
        return []

    @property
    def set_attributes(self) -> List[str]:
        """List attributes compared without regard to order."""
        return []

    async def initialize(self, config: Dict[str, Any]) -> None:
        """
        Initialize the plugin with configuration.

        Called once when the plugin is loaded.

        Args:
            config: Plugin-specific configuration dictionary
        """
        pass

    def validate(self, data: ResourceData) -> None:
        """
        Check declared attributes against the plugin schema.

        Called before any remote call that acts on the declaration.

        Raises:
            ValueError: If the attributes do not match the schema
        """
        is_valid, error = validate_document(data.attributes, self.schema)
        if not is_valid:
            raise ValueError(f"Invalid {self.resource_type} '{data.name}': {error}")

    @abstractmethod
    async def create(self, data: ResourceData, client: PagerDutyClient) -> None:
        """Create the remote object and set the resource id."""
        pass

    @abstractmethod
    async def read(self, data: ResourceData, client: PagerDutyClient) -> None:
        """
        Refresh observed attributes from the remote object.

        Clears the resource id when the remote object no longer exists.
        """
        pass

    @abstractmethod
    async def update(self, data: ResourceData, client: PagerDutyClient) -> None:
        """Apply the declared attributes to the existing remote object."""
        pass

    @abstractmethod
    async def delete(self, data: ResourceData, client: PagerDutyClient) -> None:
        """Delete the remote object and clear the resource id."""
        pass

    @abstractmethod
    async def import_state(
        self, data: ResourceData, client: PagerDutyClient
    ) -> List[ResourceData]:
        """
        Seed state for an existing remote object identified by data.id.

        Returns:
            The resources to track after import.
        """
        pass

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """
        Load plugin-specific configuration from environment variables.

        Override this method in subclasses to define how the plugin
        loads its configuration from the environment.

        Returns:
            Dictionary of configuration values for this plugin.
        """
        return {}
