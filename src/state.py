"""
Resource State - Declared and observed attributes of managed resources.

ResourceData is the generic key/value container handed to resource plugins.
StateStore persists every tracked ResourceData to a local JSON state file.
"""

import copy
import json
import logging
import os
import tempfile
from typing import Any, Dict, List, Optional

from pagerduty import NotFoundError

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateError(Exception):
    """Raised when the state file cannot be read or written."""


class ResourceData:
    """
    Attributes and identity of a single resource.

    An empty id means the resource does not exist remotely (not yet created,
    deleted, or found to be gone during a read).
    """

    def __init__(
        self,
        resource_type: str,
        name: str = "",
        attributes: Optional[Dict[str, Any]] = None,
        resource_id: str = "",
    ):
        self.resource_type = resource_type
        self.name = name
        self._attributes: Dict[str, Any] = copy.deepcopy(attributes or {})
        self._id = resource_id

    @property
    def id(self) -> str:
        return self._id

    def set_id(self, resource_id: str) -> None:
        self._id = resource_id or ""

    def get(self, key: str, default: Any = None) -> Any:
        value = self._attributes.get(key)
        if value is None:
            return default
        return copy.deepcopy(value)

    def set(self, key: str, value: Any) -> None:
        if isinstance(value, (set, tuple)):
            value = list(value)
        self._attributes[key] = copy.deepcopy(value)

    def has(self, key: str) -> bool:
        return key in self._attributes

    @property
    def attributes(self) -> Dict[str, Any]:
        return copy.deepcopy(self._attributes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self._id,
            "name": self.name,
            "resource_type": self.resource_type,
            "attributes": self.attributes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResourceData":
        return cls(
            resource_type=data["resource_type"],
            name=data.get("name", ""),
            attributes=data.get("attributes") or {},
            resource_id=data.get("id", ""),
        )

    def __repr__(self) -> str:
        return (
            f"ResourceData(resource_type={self.resource_type!r}, "
            f"name={self.name!r}, id={self._id!r})"
        )


def handle_not_found_error(
    err: Exception, data: ResourceData
) -> Optional[Exception]:
    """
    Classify an error raised while reading a resource.

    If the error means the remote object is gone, the resource identity is
    cleared and None is returned. Any other error is returned unchanged for
    the caller to retry or raise.
    """
    if isinstance(err, NotFoundError):
        logger.warning(
            f"Removing {data.resource_type} {data.id} from state because it's gone"
        )
        data.set_id("")
        return None
    return err


class StateStore:
    """
    JSON file backed store of tracked resources, keyed by resource name.

    The file is rewritten atomically on every save and may contain
    sensitive attribute values, so it is created with mode 0600.
    """

    def __init__(self, path: str):
        self.path = path
        self._resources: Dict[str, ResourceData] = {}
        self._loaded = False

    def load(self) -> None:
        """Load state from disk. A missing file is an empty state."""
        self._resources = {}
        self._loaded = True

        if not os.path.exists(self.path):
            logger.debug(f"State file {self.path} not found, starting empty")
            return

        try:
            with open(self.path, "r") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StateError(f"Cannot read state file {self.path}: {e}") from e

        version = raw.get("version")
        if version != STATE_VERSION:
            raise StateError(
                f"Unsupported state file version {version} in {self.path}"
            )

        for name, entry in raw.get("resources", {}).items():
            self._resources[name] = ResourceData.from_dict(entry)

        logger.debug(f"Loaded {len(self._resources)} resources from {self.path}")

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def save(self) -> None:
        """Write state to disk atomically."""
        self._ensure_loaded()
        payload = {
            "version": STATE_VERSION,
            "resources": {
                name: data.to_dict() for name, data in sorted(self._resources.items())
            },
        }

        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".pdx-state-")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StateError(f"Cannot write state file {self.path}: {e}") from e

    def get(self, name: str) -> Optional[ResourceData]:
        self._ensure_loaded()
        return self._resources.get(name)

    def put(self, data: ResourceData) -> None:
        """Track a resource, or forget it when its id has been cleared."""
        self._ensure_loaded()
        if not data.id:
            self._resources.pop(data.name, None)
            return
        self._resources[data.name] = data

    def names(self) -> List[str]:
        self._ensure_loaded()
        return sorted(self._resources.keys())

    def all(self) -> List[ResourceData]:
        self._ensure_loaded()
        return [self._resources[name] for name in sorted(self._resources)]
