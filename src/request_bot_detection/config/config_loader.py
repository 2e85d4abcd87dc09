"""
YAML configuration loader.

Loads the settings file and the static route manifest consumed by the
route parameter catalog.
"""

import logging
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


def load_yaml_file(file_path: Path) -> dict[str, Any]:
    """
    Read a YAML file and return its top-level mapping.

    Args:
        file_path: Path to the YAML file

    Returns:
        Parsed configuration as dictionary (empty for an empty file)

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file is not valid YAML or not a mapping
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    try:
        with file_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {file_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(
            f"Expected a mapping at the top of {file_path}, "
            f"got {type(data).__name__}"
        )
    return data


def load_route_manifest(file_path: Path) -> list[dict[str, Any]]:
    """
    Load the route manifest.

    The manifest lists every registered route pattern with the input fields
    declared by its validation rules:

        routes:
          - path: "blog/{slug}"
            fields: ["preview", "items.*.name"]
          - path: "dashboard/requests-log"

    Entries are returned in file order; malformed entries are kept so the
    catalog can fall back to the baseline set for them.

    Args:
        file_path: Path to the manifest

    Returns:
        List of route entries as dictionaries
    """
    data = load_yaml_file(file_path)
    routes = data.get("routes") or []

    if not isinstance(routes, list):
        raise ValueError(f"'routes' in {file_path} must be a list")

    logger.debug(f"Loaded {len(routes)} route declarations from {file_path}")
    return routes
