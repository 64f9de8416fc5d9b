#!/usr/bin/env python3
"""
Automation hash for field-reconciler.

The engine stamps every row it writes with a sha256 fingerprint of the
automatically managed state. A row whose stored state no longer matches its
stamp was edited by someone else and must be left alone. Notes are not part
of the fingerprint.
"""

import hashlib
import json
import re
from typing import Any, Dict, Optional

from .classifier import normalize_field_format
from .models import FieldMapping, MigrationStatus, ProposedState

HASH_PATTERN = re.compile(r"^[0-9a-f]{64}$")


def _natural_key(value: Any):
    text = value if isinstance(value, str) else json.dumps(value)
    parts = re.split(r"(\d+)", text.lower())
    return ([int(part) if part.isdigit() else part for part in parts], text)


def canonicalize(value: Any) -> Any:
    """
    Canonical form of a JSON-like structure.

    Mappings are key-sorted recursively, lists made only of scalars are
    sorted naturally and case-insensitively, and empty containers collapse
    to None.
    """
    if isinstance(value, dict):
        if not value:
            return None
        return {
            str(key): canonicalize(value[key])
            for key in sorted(value, key=lambda key: _natural_key(str(key)))
        }
    if isinstance(value, (list, tuple, set)):
        if not value:
            return None
        items = [canonicalize(item) for item in value]
        if all(not isinstance(item, (dict, list)) for item in items):
            items = sorted(items, key=_natural_key)
        return items
    return value


def _string(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    trimmed = str(value).strip()
    return trimmed or None


def _flag(value: Optional[bool]) -> Optional[int]:
    if value is None:
        return None
    return 1 if value else 0


def hash_payload(
    target_field_id: Optional[int],
    status: MigrationStatus,
    proposed: ProposedState,
    parent_mapping_id: Optional[int] = None,
) -> Dict[str, Any]:
    """Fields covered by the automation hash."""
    return {
        "target_field_id": target_field_id,
        "migration_status": MigrationStatus(status).value,
        "proposed_name": _string(proposed.name),
        "proposed_field_format": normalize_field_format(proposed.field_format),
        "proposed_is_required": _flag(proposed.is_required),
        "proposed_is_filter": _flag(proposed.is_filter),
        "proposed_is_for_all": _flag(proposed.is_for_all),
        "proposed_is_multiple": _flag(proposed.is_multiple),
        "proposed_possible_values": canonicalize(proposed.possible_values),
        "proposed_value_dependencies": canonicalize(proposed.value_dependencies),
        "proposed_default_value": _string(proposed.default_value),
        "proposed_tracker_ids": canonicalize(proposed.tracker_ids),
        "proposed_role_ids": canonicalize(proposed.role_ids),
        "proposed_project_ids": canonicalize(proposed.project_ids),
        "parent_mapping_id": parent_mapping_id,
    }


def compute_automation_hash(
    target_field_id: Optional[int],
    status: MigrationStatus,
    proposed: ProposedState,
    parent_mapping_id: Optional[int] = None,
) -> str:
    """
    Fingerprint an automatically managed mapping state.

    Args:
        target_field_id: Linked target field id, if any
        status: Migration status of the row
        proposed: Proposed target field state
        parent_mapping_id: Mapping id of the synthetic cascading parent, if any

    Returns:
        Lower-case hex sha256 digest
    """
    payload = hash_payload(target_field_id, status, proposed, parent_mapping_id)
    encoded = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def mapping_hash(mapping: FieldMapping) -> str:
    """Hash of the values currently stored on a mapping row."""
    return compute_automation_hash(
        mapping.target_field_id,
        mapping.migration_status,
        mapping.proposed,
        mapping.parent_mapping_id,
    )


def normalize_stored_hash(value: Any) -> Optional[str]:
    """Stored hash column value, or None when it does not hold a valid digest."""
    if value is None:
        return None
    candidate = str(value).strip().lower()
    if not HASH_PATTERN.match(candidate):
        return None
    return candidate


def is_manually_modified(mapping: FieldMapping) -> bool:
    """True when the stored state no longer matches the engine's last stamp."""
    stored = normalize_stored_hash(mapping.automation_hash)
    return stored is not None and stored != mapping_hash(mapping)
