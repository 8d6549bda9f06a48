"""Manifest loading with validation.

SECURITY: Manifest files are size-checked before they are read. Input
validation happens here, at the boundary, so the engine only ever sees
well-typed resources.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import MAX_MANIFEST_FILE_SIZE_BYTES
from .models import ApiResource

logger = logging.getLogger(__name__)


class SpecLoadError(Exception):
    """Raised when manifest loading or validation fails."""

    pass


def _format_validation_error(source: str, error: ValidationError) -> str:
    errors = []
    for item in error.errors():
        loc = ".".join(str(x) for x in item["loc"])
        errors.append(f"  - {loc}: {item['msg']}")
    return f"Validation failed for {source}:\n" + "\n".join(errors)


def parse_manifest(data: Any, source: str = "<manifest>") -> ApiResource:
    """Validate an already-parsed manifest mapping.

    Raises:
        SpecLoadError: If the data is not a mapping or fails validation.
    """
    if not isinstance(data, dict):
        raise SpecLoadError(f"Manifest must contain a YAML mapping: {source}")

    spec_data = data.get("spec")
    if spec_data is not None and not isinstance(spec_data, dict):
        raise SpecLoadError(f"Spec section must be a mapping: {source}")

    try:
        return ApiResource.model_validate(data)
    except ValidationError as e:
        raise SpecLoadError(_format_validation_error(source, e)) from e


def load_manifest_text(content: str, source: str = "<manifest>") -> ApiResource:
    """Parse and validate a manifest from a YAML string.

    Raises:
        SpecLoadError: If the text is too large, not YAML, or invalid.
    """
    if len(content.encode("utf-8")) > MAX_MANIFEST_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Manifest exceeds maximum size of {MAX_MANIFEST_FILE_SIZE_BYTES} bytes: {source}"
        )

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {source}: {e}") from e

    return parse_manifest(raw_data, source)


def load_manifest(path: Path) -> ApiResource:
    """Load and validate an API manifest from a YAML file.

    Args:
        path: Manifest file path.

    Returns:
        Validated resource.

    Raises:
        SpecLoadError: If the file cannot be read or fails validation.
    """
    if not path.exists():
        raise SpecLoadError(f"Manifest file not found: {path}")

    # SECURITY: Check file size before reading
    try:
        file_size = path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat manifest file {path}: {e}") from e

    if file_size > MAX_MANIFEST_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Manifest exceeds maximum size of {MAX_MANIFEST_FILE_SIZE_BYTES} bytes: {path}"
        )

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read manifest file {path}: {e}") from e

    resource = load_manifest_text(content, str(path))
    logger.info("Loaded manifest for '%s' from %s", resource.identity, path)
    return resource


def dump_manifest(resource: ApiResource) -> str:
    """Serialize a resource back to manifest YAML, keeping field order."""
    return yaml.safe_dump(resource.to_manifest(), sort_keys=False)
