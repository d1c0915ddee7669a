"""Pytest configuration and fixtures."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from pagerduty import Extension
from plugins.registry import reset_registry


@pytest.fixture(autouse=True)
def clean_registry():
    """Give every test a fresh plugin registry."""
    reset_registry()
    yield
    reset_registry()


@pytest.fixture
def mock_client():
    """Create a mock PagerDuty client with extension endpoints."""
    client = MagicMock()
    client.extensions = MagicMock()
    client.extensions.create = AsyncMock()
    client.extensions.get = AsyncMock()
    client.extensions.update = AsyncMock()
    client.extensions.delete = AsyncMock(return_value=None)
    client.extension_schemas = MagicMock()
    client.extension_schemas.list = AsyncMock(return_value=[])
    return client


@pytest.fixture
def sample_attributes():
    """Declared attributes of a ServiceNow extension."""
    return {
        "name": "snow-prod",
        "endpoint_url": "https://example.service-now.com/api/x_pd/webhook",
        "extension_objects": ["PSVC001", "PSVC002"],
        "extension_schema": "PSCHEMA1",
        "snow_user": "pd-integration",
        "snow_password": "hunter2",
        "sync_options": "manual_sync",
        "target": "https://example.service-now.com/api/x_pd/incident",
        "task_type": "incident",
        "referer": "None",
    }


@pytest.fixture
def sample_extension_payload():
    """Extension object as returned by the PagerDuty API."""
    return {
        "id": "PEXT123",
        "type": "extension",
        "name": "snow-prod",
        "summary": "snow-prod",
        "endpoint_url": "https://example.service-now.com/api/x_pd/webhook",
        "html_url": "https://acme.pagerduty.com/extensions/PEXT123",
        "extension_schema": {
            "id": "PSCHEMA1",
            "type": "extension_schema_reference",
        },
        "extension_objects": [
            {"id": "PSVC001", "type": "service_reference"},
            {"id": "PSVC002", "type": "service_reference"},
        ],
        "config": {
            "snow_user": "pd-integration",
            "snow_password": "hunter2",
            "sync_options": "manual_sync",
            "target": "https://example.service-now.com/api/x_pd/incident",
            "task_type": "incident",
            "referer": "None",
        },
    }


@pytest.fixture
def sample_extension(sample_extension_payload):
    """Decoded Extension for the sample payload."""
    return Extension.from_dict(sample_extension_payload)
