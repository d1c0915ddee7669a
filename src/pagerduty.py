"""
PagerDuty REST API client.

Covers the extension and extension schema endpoints used by the resource
plugins. Every failed call raises a tagged PagerDutyError subclass so callers
can match on the error kind instead of inspecting status or error codes.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import aiohttp

from config import PagerDutyConfig

logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/vnd.pagerduty+json;version=2"

# PagerDuty error code returned when an extension no longer exists
EXTENSION_NOT_FOUND_CODE = 5001


class PagerDutyError(Exception):
    """Base error for failed PagerDuty API calls."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        status: Optional[int] = None,
        errors: Optional[List[str]] = None,
    ):
        self.message = message
        self.code = code
        self.status = status
        self.errors = errors or []
        super().__init__(self._format())

    def _format(self) -> str:
        text = self.message
        if self.code is not None:
            text = f"{text} (code {self.code})"
        if self.errors:
            text = f"{text}: {', '.join(self.errors)}"
        if self.status is not None:
            text = f"HTTP {self.status}: {text}"
        return text


class NotFoundError(PagerDutyError):
    """The requested object does not exist."""


class AlreadyGoneError(NotFoundError):
    """The extension was already removed (error code 5001)."""


class TransientError(PagerDutyError):
    """Temporary failure (rate limiting, server errors, network problems)."""


class FatalError(PagerDutyError):
    """Non-retryable failure (bad request, authentication, permissions)."""


def classify_error(status: int, body: Any) -> PagerDutyError:
    """
    Build the tagged error for an HTTP error response.

    Args:
        status: HTTP status code of the response
        body: Decoded JSON body, or raw text when it was not JSON

    Returns:
        The PagerDutyError subclass matching the failure.
    """
    message = f"request failed with status {status}"
    code = None
    errors: List[str] = []

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error = body["error"]
        message = error.get("message") or message
        code = error.get("code")
        errors = [str(e) for e in error.get("errors") or []]
    elif isinstance(body, str) and body:
        message = body

    if code == EXTENSION_NOT_FOUND_CODE:
        error_cls = AlreadyGoneError
    elif status == 404:
        error_cls = NotFoundError
    elif status == 429 or status >= 500:
        error_cls = TransientError
    else:
        error_cls = FatalError

    return error_cls(message, code=code, status=status, errors=errors)


def _unwrap(body: Any, key: str) -> Any:
    """Return the object under key in a response envelope."""
    if not isinstance(body, dict) or not isinstance(body.get(key), (dict, list)):
        raise FatalError(f"unexpected response: missing '{key}' object")
    return body[key]


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop empty values so they are not sent to the API."""
    return {k: v for k, v in data.items() if v not in (None, "", [])}


@dataclass
class ServiceReference:
    """Reference to a PagerDuty object, normally a service."""

    id: str
    type: str = "service_reference"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceReference":
        return cls(id=data.get("id", ""), type=data.get("type", ""))


@dataclass
class ExtensionSchemaReference:
    """Reference to the extension schema an extension is built from."""

    id: str
    type: str = "extension_schema_reference"

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "type": self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtensionSchemaReference":
        return cls(id=data.get("id", ""), type=data.get("type", ""))


@dataclass
class Extension:
    """A PagerDuty extension."""

    name: str = ""
    type: str = "extension"
    endpoint_url: str = ""
    extension_schema: Optional[ExtensionSchemaReference] = None
    extension_objects: List[ServiceReference] = field(default_factory=list)
    config: Any = None
    id: str = ""
    summary: str = ""
    html_url: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Request body for create and update calls."""
        return _compact(
            {
                "name": self.name,
                "type": self.type,
                "endpoint_url": self.endpoint_url,
                "extension_schema": (
                    self.extension_schema.to_dict() if self.extension_schema else None
                ),
                "extension_objects": [o.to_dict() for o in self.extension_objects],
                "config": self.config,
            }
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Extension":
        schema = data.get("extension_schema")
        return cls(
            id=data.get("id", ""),
            name=data.get("name") or "",
            type=data.get("type") or "extension",
            summary=data.get("summary") or "",
            endpoint_url=data.get("endpoint_url") or "",
            html_url=data.get("html_url") or "",
            extension_schema=(
                ExtensionSchemaReference.from_dict(schema)
                if isinstance(schema, dict)
                else None
            ),
            extension_objects=[
                ServiceReference.from_dict(o)
                for o in data.get("extension_objects") or []
            ],
            config=data.get("config"),
        )


@dataclass
class ExtensionSchema:
    """A PagerDuty extension schema (read-only)."""

    id: str
    label: str = ""
    key: str = ""
    summary: str = ""
    description: str = ""
    send_types: List[str] = field(default_factory=list)
    url: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtensionSchema":
        return cls(
            id=data.get("id", ""),
            label=data.get("label") or "",
            key=data.get("key") or "",
            summary=data.get("summary") or "",
            description=data.get("description") or "",
            send_types=list(data.get("send_types") or []),
            url=data.get("url") or "",
        )


class ExtensionsService:
    """Extension endpoints."""

    def __init__(self, client: "PagerDutyClient"):
        self._client = client

    async def create(self, extension: Extension) -> Extension:
        body = await self._client.request(
            "POST", "/extensions", json={"extension": extension.to_dict()}
        )
        return Extension.from_dict(_unwrap(body, "extension"))

    async def get(self, extension_id: str) -> Extension:
        body = await self._client.request("GET", f"/extensions/{extension_id}")
        return Extension.from_dict(_unwrap(body, "extension"))

    async def update(self, extension_id: str, extension: Extension) -> Extension:
        body = await self._client.request(
            "PUT",
            f"/extensions/{extension_id}",
            json={"extension": extension.to_dict()},
        )
        return Extension.from_dict(_unwrap(body, "extension"))

    async def delete(self, extension_id: str) -> None:
        await self._client.request("DELETE", f"/extensions/{extension_id}")


class ExtensionSchemasService:
    """Extension schema endpoints."""

    def __init__(self, client: "PagerDutyClient"):
        self._client = client

    async def list(self, query: Optional[str] = None) -> List[ExtensionSchema]:
        """List all extension schemas, following pagination."""
        schemas: List[ExtensionSchema] = []
        offset = 0
        while True:
            params: Dict[str, Any] = {"offset": offset, "limit": 100}
            if query:
                params["query"] = query
            body = await self._client.request(
                "GET", "/extension_schemas", params=params
            )
            page = _unwrap(body, "extension_schemas")
            schemas.extend(ExtensionSchema.from_dict(s) for s in page)
            if not body.get("more") or not page:
                break
            offset += len(page)
        return schemas

    async def get(self, schema_id: str) -> ExtensionSchema:
        body = await self._client.request("GET", f"/extension_schemas/{schema_id}")
        return ExtensionSchema.from_dict(_unwrap(body, "extension_schema"))


class PagerDutyClient:
    """
    Minimal async client for the PagerDuty REST API v2.

    A new aiohttp session is opened per request, so the client holds no
    connection state and can be shared between reconciliations.
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.pagerduty.com",
        timeout: int = 30,
        user_agent: str = "pdx-operator",
    ):
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent
        self.extensions = ExtensionsService(self)
        self.extension_schemas = ExtensionSchemasService(self)

    @classmethod
    def from_config(cls, config: PagerDutyConfig) -> "PagerDutyClient":
        return cls(
            token=config.api_token,
            api_url=config.api_url,
            timeout=config.request_timeout,
            user_agent=config.user_agent,
        )

    def _get_headers(self) -> Dict[str, str]:
        """Get HTTP headers for PagerDuty API requests."""
        headers = {
            "Accept": ACCEPT_HEADER,
            "Content-Type": "application/json",
            "User-Agent": self.user_agent,
        }
        if self.token:
            headers["Authorization"] = f"Token token={self.token}"
        return headers

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Perform an API request and decode the JSON response.

        Returns:
            The decoded body, or None for empty responses (204).

        Raises:
            PagerDutyError: A tagged subclass describing the failure.
        """
        url = f"{self.api_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        logger.debug(f"{method} {url}")

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method, url, headers=self._get_headers(), json=json, params=params
                ) as response:
                    if response.status == 204:
                        return None
                    if response.status >= 400:
                        raise classify_error(
                            response.status, await self._read_body(response)
                        )
                    try:
                        return await response.json(content_type=None)
                    except ValueError as e:
                        raise TransientError(
                            f"{method} {path} returned a body that is not JSON: {e}",
                            status=response.status,
                        ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientError(f"{method} {path} failed: {e}") from e

    @staticmethod
    async def _read_body(response: Any) -> Any:
        text = await response.text()
        try:
            return json.loads(text)
        except ValueError:
            return text
