"""
Manifest loading - Declared resources from YAML or JSON files.

A manifest document is either a single resource:

    name: snow-prod
    type: pagerduty_extension_servicenow
    attributes: {...}

or a list of them under a top-level "resources" key. YAML files may hold
several documents separated by '---'.
"""

import json
import logging
import os
from typing import Any, Dict, List

import yaml

from plugins.base import ResourceSpec
from validation import validate_document

logger = logging.getLogger(__name__)

MANIFEST_EXTENSIONS = (".yaml", ".yml", ".json")

RESOURCE_DOCUMENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["name", "type", "attributes"],
    "properties": {
        "name": {"type": "string", "pattern": "^[A-Za-z0-9_.-]+$"},
        "type": {"type": "string", "minLength": 1},
        "attributes": {"type": "object"},
    },
    "additionalProperties": False,
}


class ManifestError(Exception):
    """Raised when a manifest cannot be read or is malformed."""


def _read_documents(path: str) -> List[Any]:
    try:
        with open(path, "r") as f:
            if path.endswith(".json"):
                return [json.load(f)]
            return [doc for doc in yaml.safe_load_all(f) if doc is not None]
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ManifestError(f"Cannot read manifest {path}: {e}") from e


def load_manifest(path: str) -> List[ResourceSpec]:
    """
    Load the resources declared in one manifest file.

    Args:
        path: Path to a .yaml, .yml or .json file

    Returns:
        List of ResourceSpec in file order.

    Raises:
        ManifestError: If the file cannot be parsed or a document is invalid
    """
    specs = []
    for document in _read_documents(path):
        if isinstance(document, dict) and "resources" in document:
            entries = document["resources"]
            if not isinstance(entries, list):
                raise ManifestError(f"{path}: 'resources' must be a list")
        else:
            entries = [document]

        for entry in entries:
            is_valid, error = validate_document(
                entry, RESOURCE_DOCUMENT_SCHEMA
            )
            if not is_valid:
                raise ManifestError(f"{path}: {error}")
            specs.append(
                ResourceSpec(
                    name=entry["name"],
                    resource_type=entry["type"],
                    attributes=entry["attributes"],
                    source=path,
                )
            )

    return specs


def load_manifests(path: str) -> List[ResourceSpec]:
    """
    Load all resources from a manifest file or a directory of manifests.

    Directory entries are read in sorted order; non-manifest files are
    ignored.

    Raises:
        ManifestError: On unreadable or invalid manifests, or when two
            resources share a name
    """
    if os.path.isdir(path):
        files = [
            os.path.join(path, name)
            for name in sorted(os.listdir(path))
            if name.endswith(MANIFEST_EXTENSIONS)
        ]
    elif os.path.exists(path):
        files = [path]
    else:
        raise ManifestError(f"Manifest path not found: {path}")

    specs: List[ResourceSpec] = []
    seen: Dict[str, str] = {}
    for manifest_file in files:
        for spec in load_manifest(manifest_file):
            if spec.name in seen:
                raise ManifestError(
                    f"Duplicate resource name '{spec.name}' in {manifest_file} "
                    f"(first declared in {seen[spec.name]})"
                )
            seen[spec.name] = manifest_file
            specs.append(spec)

    logger.debug(f"Loaded {len(specs)} resources from {len(files)} manifest(s)")
    return specs
