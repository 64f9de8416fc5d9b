#!/usr/bin/env python3
"""
Input snapshot loading for field-reconciler.

Reads the materialized source inventory, target snapshot and scope
cross-mappings from one YAML or JSON file, validates it and converts it into
the engine's data classes.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .allowed_values import parse_platform_allowed_values
from .classifier import classify_field, classify_field_category
from .logging_config import get_logger
from .models import (
    AllowedValuesDescriptor,
    FieldAssignment,
    FieldCategory,
    SourceField,
    TargetField,
    UsageSnapshot,
)
from .schema import AssignmentSchema, InputsSchema, ValidationError, validate_inputs

# Initialize logger for this module
logger = get_logger(__name__)


class SnapshotError(Exception):
    """The input snapshot could not be read or is invalid."""
    pass


@dataclass
class ReconcileInputs:
    """Everything a reconciliation pass consumes."""

    source_fields: List[SourceField] = field(default_factory=list)
    assignments: List[FieldAssignment] = field(default_factory=list)
    target_fields: List[TargetField] = field(default_factory=list)
    project_map: Dict[str, int] = field(default_factory=dict)
    tracker_map: Dict[str, int] = field(default_factory=dict)
    usage: Dict[str, UsageSnapshot] = field(default_factory=dict)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.warning(f"Ignoring unparseable usage timestamp: {value}")
        return None


def _assignment_descriptor(item: AssignmentSchema, cascading: bool) -> AllowedValuesDescriptor:
    raw = item.allowed_values
    if raw is None:
        return AllowedValuesDescriptor()
    if isinstance(raw, dict) and "mode" in raw:
        return AllowedValuesDescriptor.from_dict(raw)
    if isinstance(raw, list):
        return parse_platform_allowed_values(raw, cascading=cascading)
    logger.warning(f"Ignoring unrecognized allowed values for {item.field_id}")
    return AllowedValuesDescriptor()


def build_inputs(validated: InputsSchema) -> ReconcileInputs:
    """Convert a validated snapshot into engine inputs."""
    inputs = ReconcileInputs(
        project_map=dict(validated.project_map),
        tracker_map=dict(validated.tracker_map),
    )

    for item in validated.source_fields:
        if item.category is not None:
            category = FieldCategory(item.category)
        else:
            category = classify_field_category(item.subtype, item.custom)
        inputs.source_fields.append(
            SourceField(
                id=item.id,
                name=item.name,
                type=item.type,
                subtype=item.subtype,
                category=category,
                searchable=item.searchable,
            )
        )

    cascading_ids = {
        source.id for source in inputs.source_fields if classify_field(source.type, source.subtype).is_cascading
    }
    for item in validated.assignments:
        inputs.assignments.append(
            FieldAssignment(
                field_id=item.field_id,
                project_scope_id=item.project_scope_id,
                type_scope_id=item.type_scope_id,
                required=item.required,
                allowed_values=_assignment_descriptor(item, item.field_id in cascading_ids),
                default_value=item.default_value,
            )
        )

    for item in validated.target_fields:
        inputs.target_fields.append(
            TargetField(
                id=item.id,
                name=item.name,
                field_format=item.field_format,
                is_required=item.is_required,
                is_filter=item.is_filter,
                is_for_all=item.is_for_all,
                is_multiple=item.is_multiple,
                possible_values=[value for value in item.possible_values if value],
                default_value=item.default_value,
                tracker_ids=list(item.tracker_ids),
                project_ids=list(item.project_ids),
                role_ids=list(item.role_ids),
            )
        )

    for field_id, usage in validated.usage.items():
        inputs.usage[str(field_id)] = UsageSnapshot(
            total_issues=usage.total_issues,
            issues_with_value=usage.issues_with_value,
            issues_with_non_empty_value=usage.issues_with_non_empty_value,
            counted_at=_parse_timestamp(usage.counted_at),
        )

    return inputs


def load_inputs(path: Path) -> ReconcileInputs:
    """
    Load an input snapshot from a YAML or JSON file.

    Args:
        path: Snapshot file path

    Returns:
        ReconcileInputs ready for the engine

    Raises:
        SnapshotError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    if not path.exists():
        raise SnapshotError(f"Input snapshot not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise SnapshotError(f"Could not read input snapshot {path}: {e}") from e

    if not isinstance(data, dict):
        raise SnapshotError(f"Input snapshot {path} must contain a mapping at the top level")

    try:
        validated = validate_inputs(data)
    except ValidationError as e:
        raise SnapshotError(str(e)) from e

    inputs = build_inputs(validated)
    logger.info(
        f"Loaded {len(inputs.source_fields)} source fields, {len(inputs.assignments)} assignments "
        f"and {len(inputs.target_fields)} target fields from {path}"
    )
    return inputs
