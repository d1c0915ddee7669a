"""
ServiceNow Extension Resource Plugin.

Manages a PagerDuty extension that connects services to a ServiceNow
instance. The ServiceNow sync settings have no dedicated API fields; they
travel in the extension's untyped "config" object.
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pagerduty import (
    AlreadyGoneError,
    Extension,
    ExtensionSchemaReference,
    PagerDutyClient,
    PagerDutyError,
    ServiceReference,
    TransientError,
)
from plugins.resources.base import ResourcePlugin
from state import ResourceData, handle_not_found_error
from validation import validate_document

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "pagerduty_extension_servicenow"
SERVICE_REFERENCE = "service_reference"
SYNC_OPTIONS = ["manual_sync", "sync_all"]

DEFAULT_READ_TIMEOUT = 120  # seconds
DEFAULT_READ_RETRY_INTERVAL = 2  # seconds

SYNC_FIELDS = [
    "snow_user",
    "snow_password",
    "sync_options",
    "target",
    "task_type",
    "referer",
]

EXTENSION_SERVICENOW_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": [
        "extension_objects",
        "extension_schema",
        "snow_user",
        "snow_password",
        "sync_options",
        "target",
        "task_type",
        "referer",
    ],
    "properties": {
        "name": {"type": "string"},
        "endpoint_url": {"type": "string"},
        "extension_objects": {
            "type": "array",
            "items": {"type": "string", "minLength": 1},
            "minItems": 1,
        },
        "extension_schema": {"type": "string", "minLength": 1},
        "snow_user": {"type": "string"},
        "snow_password": {"type": "string"},
        "sync_options": {"type": "string", "enum": SYNC_OPTIONS},
        "target": {"type": "string"},
        "task_type": {"type": "string"},
        "referer": {"type": "string"},
        # Computed
        "html_url": {"type": "string"},
        "summary": {"type": "string"},
        "type": {"type": "string"},
    },
    "additionalProperties": False,
}


class DecodeError(ValueError):
    """Declared attributes do not form a valid configuration."""


class ConfigDecodeError(Exception):
    """The remote extension config object cannot be read as sync settings."""


class ResourceImportError(Exception):
    """An existing extension could not be imported."""


@dataclass
class SyncConfig:
    """ServiceNow sync settings stored in the extension config object."""

    snow_user: str = ""
    snow_password: str = field(default="", repr=False)
    sync_options: str = ""
    target: str = ""
    task_type: str = ""
    referer: str = ""

    def to_payload(self) -> Dict[str, str]:
        return {name: getattr(self, name) for name in SYNC_FIELDS}

    @classmethod
    def from_payload(cls, payload: Any) -> "SyncConfig":
        if payload is None:
            return cls()
        if not isinstance(payload, dict):
            raise ConfigDecodeError(
                f"extension config must be an object, got {type(payload).__name__}"
            )

        values = {}
        for name in SYNC_FIELDS:
            value = payload.get(name, "")
            if value is None:
                value = ""
            if not isinstance(value, str):
                raise ConfigDecodeError(
                    f"extension config field {name} must be a string, "
                    f"got {type(value).__name__}"
                )
            values[name] = value
        return cls(**values)


@dataclass
class DeclaredConfig:
    """Typed view of the declared attributes of a ServiceNow extension."""

    extension_objects: List[str]
    extension_schema: str
    sync: SyncConfig
    name: str = ""
    endpoint_url: str = field(default="", repr=False)

    @classmethod
    def from_resource_data(cls, data: ResourceData) -> "DeclaredConfig":
        attributes = data.attributes
        is_valid, error = validate_document(
            attributes, EXTENSION_SERVICENOW_SCHEMA
        )
        if not is_valid:
            raise DecodeError(f"Invalid {RESOURCE_TYPE} '{data.name}': {error}")

        return cls(
            name=attributes.get("name", ""),
            endpoint_url=attributes.get("endpoint_url", ""),
            extension_objects=list(attributes["extension_objects"]),
            extension_schema=attributes["extension_schema"],
            sync=SyncConfig(**{name: attributes[name] for name in SYNC_FIELDS}),
        )

    def to_extension(self) -> Extension:
        return Extension(
            name=self.name,
            type="extension",
            endpoint_url=self.endpoint_url,
            extension_schema=ExtensionSchemaReference(id=self.extension_schema),
            extension_objects=expand_service_objects(self.extension_objects),
            config=self.sync.to_payload(),
        )


def expand_service_objects(service_ids: List[str]) -> List[ServiceReference]:
    """Build service references, dropping duplicate ids."""
    seen = set()
    services = []
    for service_id in service_ids:
        if service_id in seen:
            continue
        seen.add(service_id)
        services.append(ServiceReference(id=service_id, type=SERVICE_REFERENCE))
    return services


def flatten_service_objects(objects: List[ServiceReference]) -> List[str]:
    """Ids of the service references; other reference types are skipped."""
    return [o.id for o in objects if o.type == SERVICE_REFERENCE]


class ExtensionServiceNowPlugin(ResourcePlugin):
    """
    Resource plugin for the PagerDuty ServiceNow extension.

    Reads retry on transient API failures for up to read_timeout seconds,
    sleeping retry_interval seconds between attempts.
    """

    def __init__(self):
        self.read_timeout: float = DEFAULT_READ_TIMEOUT
        self.retry_interval: float = DEFAULT_READ_RETRY_INTERVAL

    @property
    def resource_type(self) -> str:
        return RESOURCE_TYPE

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def schema(self) -> Dict[str, Any]:
        return EXTENSION_SERVICENOW_SCHEMA

    @property
    def force_new_attributes(self) -> List[str]:
        return ["extension_objects", "extension_schema"]

    @property
    def sensitive_attributes(self) -> List[str]:
        return ["endpoint_url", "snow_password"]

    @property
    def computed_attributes(self) -> List[str]:
        return ["html_url", "summary", "type"]

    @property
    def set_attributes(self) -> List[str]:
        return ["extension_objects"]

    @classmethod
    def load_config_from_env(cls) -> Dict[str, Any]:
        """Load read retry settings from environment variables."""
        return {
            "read_timeout": float(
                os.getenv("PDX_READ_TIMEOUT", str(DEFAULT_READ_TIMEOUT))
            ),
            "retry_interval": float(
                os.getenv("PDX_READ_RETRY_INTERVAL", str(DEFAULT_READ_RETRY_INTERVAL))
            ),
        }

    async def initialize(self, config: Dict[str, Any]) -> None:
        self.read_timeout = config.get("read_timeout", self.read_timeout)
        self.retry_interval = config.get("retry_interval", self.retry_interval)
        logger.debug(
            f"ServiceNow extension plugin initialized: "
            f"read_timeout={self.read_timeout}s, "
            f"retry_interval={self.retry_interval}s"
        )

    def validate(self, data: ResourceData) -> None:
        DeclaredConfig.from_resource_data(data)

    async def create(self, data: ResourceData, client: PagerDutyClient) -> None:
        extension = DeclaredConfig.from_resource_data(data).to_extension()

        logger.info(f"Creating PagerDuty extension {extension.name}")

        created = await client.extensions.create(extension)
        data.set_id(created.id)

        await self.read(data, client)

    async def read(self, data: ResourceData, client: PagerDutyClient) -> None:
        logger.info(f"Reading PagerDuty extension {data.id}")

        extension = await self._get_with_retry(data, client)
        if extension is None:
            return

        data.set("summary", extension.summary)
        data.set("name", extension.name)
        data.set("type", extension.type)
        data.set("endpoint_url", extension.endpoint_url)
        data.set("html_url", extension.html_url)
        data.set(
            "extension_objects", flatten_service_objects(extension.extension_objects)
        )
        if extension.extension_schema is not None:
            data.set("extension_schema", extension.extension_schema.id)

        try:
            sync = SyncConfig.from_payload(extension.config)
        except ConfigDecodeError as e:
            logger.warning(f"Error reading config of extension {data.id}: {e}")
            return

        for name, value in sync.to_payload().items():
            data.set(name, value)

    async def _get_with_retry(
        self, data: ResourceData, client: PagerDutyClient
    ) -> Optional[Extension]:
        """
        Fetch the extension, retrying transient failures until the deadline.

        Returns None when the extension no longer exists.
        """
        deadline = time.monotonic() + self.read_timeout

        while True:
            try:
                return await client.extensions.get(data.id)
            except PagerDutyError as e:
                err = handle_not_found_error(e, data)
                if err is None:
                    return None
                if not isinstance(err, TransientError):
                    raise

                if time.monotonic() >= deadline:
                    logger.error(
                        f"Giving up reading extension {data.id} after "
                        f"{self.read_timeout}s: {err}"
                    )
                    raise

                delay = min(self.retry_interval, deadline - time.monotonic())
                logger.warning(
                    f"Reading extension {data.id} failed, retrying in "
                    f"{delay:.1f}s: {err}"
                )
                await asyncio.sleep(delay)

    async def update(self, data: ResourceData, client: PagerDutyClient) -> None:
        extension = DeclaredConfig.from_resource_data(data).to_extension()

        logger.info(f"Updating PagerDuty extension {data.id}")

        await client.extensions.update(data.id, extension)

        await self.read(data, client)

    async def delete(self, data: ResourceData, client: PagerDutyClient) -> None:
        logger.info(f"Deleting PagerDuty extension {data.id}")

        try:
            await client.extensions.delete(data.id)
        except AlreadyGoneError:
            logger.warning(f"Extension ({data.id}) not found, removing from state")

        data.set_id("")

    async def import_state(
        self, data: ResourceData, client: PagerDutyClient
    ) -> List[ResourceData]:
        try:
            extension = await client.extensions.get(data.id)
        except PagerDutyError as e:
            raise ResourceImportError(
                "error importing pagerduty_extension. "
                "Expecting an importation ID for extension"
            ) from e

        data.set("endpoint_url", extension.endpoint_url)
        data.set(
            "extension_objects",
            [extension.extension_objects[0].id] if extension.extension_objects else [],
        )
        data.set(
            "extension_schema",
            extension.extension_schema.id if extension.extension_schema else "",
        )

        return [data]
