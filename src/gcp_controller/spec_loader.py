"""Cluster and machine definition loading with validation.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES
from .models import ClusterDefinition, MachineDefinition

logger = logging.getLogger(__name__)

CLUSTER_KIND = "GCPCluster"
MACHINE_KIND = "GCPMachine"

D = TypeVar("D", bound=BaseModel)


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


def _read_mapping(spec_path: Path) -> dict[str, Any]:
    if not spec_path.exists():
        raise SpecLoadError(f"Spec file not found: {spec_path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = spec_path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {spec_path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {spec_path}"
        )

    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {spec_path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec file must contain a YAML mapping: {spec_path}")

    return raw_data


def _unwrap(raw_data: dict[str, Any], spec_path: Path, kind: str) -> dict[str, Any]:
    """Extract the spec section of a Kubernetes-style document.

    Flat documents are returned unchanged. For wrapped documents the
    ``kind`` must match when present, and ``metadata.name`` supplies the
    name when the spec section does not set one.
    """
    if not ("apiVersion" in raw_data and "spec" in raw_data):
        return raw_data

    declared_kind = raw_data.get("kind")
    if declared_kind is not None and declared_kind != kind:
        raise SpecLoadError(f"Expected kind '{kind}' but found '{declared_kind}': {spec_path}")

    spec_data = raw_data.get("spec") or {}
    if not isinstance(spec_data, dict):
        raise SpecLoadError(f"Spec section must be a mapping: {spec_path}")

    metadata = raw_data.get("metadata") or {}
    if isinstance(metadata, dict) and "name" not in spec_data and metadata.get("name"):
        spec_data = {**spec_data, "name": metadata["name"]}

    return spec_data


def _validate(model: type[D], spec_data: dict[str, Any], spec_path: Path) -> D:
    try:
        return model.model_validate(spec_data)
    except ValidationError as e:
        # Format Pydantic validation errors for readability
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            msg = error["msg"]
            errors.append(f"  - {loc}: {msg}")

        error_list = "\n".join(errors)
        raise SpecLoadError(f"Validation failed for {spec_path}:\n{error_list}") from e


def load_cluster_definition(spec_path: Path) -> ClusterDefinition:
    """Load and validate a cluster definition from YAML.

    Args:
        spec_path: Path to a flat or ``GCPCluster``-wrapped document.

    Returns:
        Validated cluster definition.

    Raises:
        SpecLoadError: If the file cannot be loaded or fails validation.
    """
    spec_data = _unwrap(_read_mapping(spec_path), spec_path, CLUSTER_KIND)
    definition = _validate(ClusterDefinition, spec_data, spec_path)
    logger.info("Loaded cluster '%s' from %s", definition.name, spec_path)
    return definition


def load_machine_definition(spec_path: Path) -> MachineDefinition:
    """Load and validate a machine definition from YAML.

    Raises:
        SpecLoadError: If the file cannot be loaded or fails validation.
    """
    spec_data = _unwrap(_read_mapping(spec_path), spec_path, MACHINE_KIND)
    definition = _validate(MachineDefinition, spec_data, spec_path)
    logger.info("Loaded machine '%s' from %s", definition.name, spec_path)
    return definition
