#!/usr/bin/env python3
"""
Allowed-value aggregation for field-reconciler.

A source field exposes its selectable options separately in every
(project, issue type) context it is assigned to. This module normalizes those
per-context descriptors and folds them into one canonical descriptor:
- labels are trimmed, deduplicated and sorted
- entries carrying a stable option id win over entries without one
- assignments are merged in scope order, so input order never matters
- a flat/cascading mode clash keeps the first mode and is reported back
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .logging_config import get_logger
from .models import AllowedOption, AllowedValuesDescriptor, DescriptorMode, FieldAssignment

# Initialize logger for this module
logger = get_logger(__name__)

LABEL_KEYS = ("value", "name", "label", "title")
TRUE_FLAGS = {"1", "true", "yes", "y", "on"}


@dataclass
class AggregatedValues:
    """Canonical descriptor of a field plus any mode conflicts met while merging."""

    descriptor: AllowedValuesDescriptor = field(default_factory=AllowedValuesDescriptor)
    conflicts: List[str] = field(default_factory=list)


def decode_labels_string(label: str) -> Optional[str]:
    """Render a serialized ``{"labels": [...]}`` structure as a sorted, comma-joined string."""
    candidate = label.strip()
    if not candidate.startswith("{"):
        return None
    try:
        decoded = json.loads(candidate)
    except ValueError:
        return None
    if not isinstance(decoded, dict) or not isinstance(decoded.get("labels"), list):
        return None

    labels = sorted(
        {str(item).strip() for item in decoded["labels"] if item is not None and str(item).strip()}
    )
    return ", ".join(labels)


def normalize_label(value: Any) -> Optional[str]:
    """Trim a raw option label; empty labels normalize to None."""
    if value is None:
        return None
    text = value if isinstance(value, str) else str(value)
    text = text.strip()
    if not text:
        return None
    decoded = decode_labels_string(text)
    if decoded is not None:
        text = decoded
    return text or None


def _id_sort_key(option_id: str) -> Tuple[int, Any]:
    if re.fullmatch(r"-?\d+", option_id):
        return (0, int(option_id))
    return (1, option_id)


def _prefer(existing: AllowedOption, incoming: AllowedOption) -> AllowedOption:
    """Pick between two options with the same label."""
    if existing.id is None:
        return incoming if incoming.id is not None else existing
    if incoming.id is None:
        return existing
    # Both carry ids: the lowest id wins regardless of arrival order
    return min(existing, incoming, key=lambda option: _id_sort_key(option.id))


def _union_options(*groups: Iterable[AllowedOption]) -> List[AllowedOption]:
    by_label: Dict[str, AllowedOption] = {}
    for group in groups:
        for option in group:
            label = normalize_label(option.label)
            if label is None:
                continue
            option_id = option.id.strip() if isinstance(option.id, str) and option.id.strip() else None
            candidate = AllowedOption(label=label, id=option_id)
            by_label[label] = _prefer(by_label[label], candidate) if label in by_label else candidate
    return [by_label[label] for label in sorted(by_label)]


def normalize_descriptor(descriptor: AllowedValuesDescriptor) -> AllowedValuesDescriptor:
    """
    Canonicalize a single descriptor.

    Cascading descriptors are made symmetric: every parent gets a dependency
    entry (possibly empty) and every dependency key becomes a parent.
    """
    if descriptor.mode is None:
        return AllowedValuesDescriptor()

    if descriptor.mode == DescriptorMode.FLAT:
        return AllowedValuesDescriptor.flat(_union_options(descriptor.values))

    dependencies: Dict[str, List[AllowedOption]] = {}
    for parent_label, children in descriptor.dependencies.items():
        label = normalize_label(parent_label)
        if label is None:
            continue
        dependencies[label] = _union_options(dependencies.get(label, []), children)

    parents = _union_options(
        descriptor.parents,
        [AllowedOption(label=label) for label in dependencies],
    )
    for parent in parents:
        dependencies.setdefault(parent.label, [])

    return AllowedValuesDescriptor.cascading(
        parents, {label: dependencies[label] for label in sorted(dependencies)}
    )


def merge_descriptors(
    base: AllowedValuesDescriptor, incoming: AllowedValuesDescriptor
) -> Tuple[AllowedValuesDescriptor, Optional[str]]:
    """
    Merge one descriptor into another.

    Returns:
        Tuple of (merged descriptor, conflict message or None). On a mode
        conflict the base is returned unchanged.
    """
    base = normalize_descriptor(base)
    incoming = normalize_descriptor(incoming)

    # An empty descriptor carries no structure to establish a mode
    if incoming.is_empty:
        return base, None
    if base.is_empty:
        return incoming, None

    if base.mode != incoming.mode:
        message = (
            f"Allowed values disagree on structure ({base.mode.value} vs "
            f"{incoming.mode.value}); kept {base.mode.value} options."
        )
        return base, message

    if base.mode == DescriptorMode.FLAT:
        return AllowedValuesDescriptor.flat(_union_options(base.values, incoming.values)), None

    labels = set(base.dependencies) | set(incoming.dependencies)
    dependencies = {
        label: _union_options(
            base.dependencies.get(label, []), incoming.dependencies.get(label, [])
        )
        for label in sorted(labels)
    }
    parents = _union_options(base.parents, incoming.parents)
    return AllowedValuesDescriptor.cascading(parents, dependencies), None


def aggregate_allowed_values(assignments: Iterable[FieldAssignment]) -> AggregatedValues:
    """
    Fold the descriptors of every assignment of one field into a canonical descriptor.

    Args:
        assignments: All FieldAssignment records of a single source field

    Returns:
        AggregatedValues with the merged descriptor and conflict messages
    """
    result = AggregatedValues()
    ordered = sorted(
        assignments,
        key=lambda assignment: (
            assignment.scope_key,
            json.dumps(assignment.allowed_values.to_dict(), sort_keys=True),
        ),
    )
    for assignment in ordered:
        merged, conflict = merge_descriptors(result.descriptor, assignment.allowed_values)
        result.descriptor = merged
        if conflict is not None:
            scope = "/".join(part or "-" for part in assignment.scope_key)
            logger.debug(f"Allowed values conflict for {assignment.field_id} in {scope}")
            if conflict not in result.conflicts:
                result.conflicts.append(conflict)
    return result


def normalize_boolean_flag(value: Any) -> Optional[bool]:
    """Interpret loosely typed boolean flags from API payloads."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if not text:
        return None
    return text in TRUE_FLAGS


def _option_label(raw: Dict[str, Any]) -> Optional[str]:
    for key in LABEL_KEYS:
        label = normalize_label(raw.get(key))
        if label is not None:
            return label
    return None


def _option_id(raw: Dict[str, Any]) -> Optional[str]:
    value = raw.get("id")
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_option(raw: Any) -> Optional[AllowedOption]:
    if isinstance(raw, dict):
        if normalize_boolean_flag(raw.get("disabled")):
            return None
        label = _option_label(raw)
        if label is None:
            return None
        return AllowedOption(label=label, id=_option_id(raw))
    if isinstance(raw, (str, int, float)) and not isinstance(raw, bool):
        label = normalize_label(raw)
        return AllowedOption(label=label) if label else None
    return None


def _parse_cascading(raw_options: List[Any]) -> AllowedValuesDescriptor:
    parents: List[AllowedOption] = []
    dependencies: Dict[str, List[AllowedOption]] = {}

    flattened = any(
        isinstance(raw, dict) and str(raw.get("optionId") or "").strip() for raw in raw_options
    )
    if flattened:
        # Children are listed next to their parents and point back via optionId
        labels_by_id: Dict[str, str] = {}
        children_by_parent: Dict[str, List[AllowedOption]] = {}
        for raw in raw_options:
            option = _parse_option(raw)
            if option is None:
                continue
            parent_id = str(raw.get("optionId") or "").strip()
            if parent_id:
                children_by_parent.setdefault(parent_id, []).append(option)
            else:
                parents.append(option)
                if option.id is not None:
                    labels_by_id[option.id] = option.label
        for parent_id, children in children_by_parent.items():
            if parent_id in labels_by_id:
                dependencies.setdefault(labels_by_id[parent_id], []).extend(children)
        return normalize_descriptor(AllowedValuesDescriptor.cascading(parents, dependencies))

    for raw in raw_options:
        option = _parse_option(raw)
        if option is None:
            continue
        parents.append(option)
        children = dependencies.setdefault(option.label, [])
        if not isinstance(raw, dict):
            continue
        for key in ("cascadingOptions", "children"):
            for raw_child in raw.get(key) or []:
                child = _parse_option(raw_child)
                if child is not None:
                    children.append(child)
    return normalize_descriptor(AllowedValuesDescriptor.cascading(parents, dependencies))


def parse_platform_allowed_values(raw: Any, cascading: bool = False) -> AllowedValuesDescriptor:
    """
    Build a descriptor from a raw API option list.

    Args:
        raw: List of option objects or scalar labels as returned by the source API
        cascading: Whether options nest child options

    Returns:
        Normalized descriptor; an empty descriptor when nothing usable is present
    """
    if not isinstance(raw, list) or not raw:
        return AllowedValuesDescriptor()
    if cascading:
        return _parse_cascading(raw)

    options = [option for option in (_parse_option(item) for item in raw) if option is not None]
    return normalize_descriptor(AllowedValuesDescriptor.flat(options))


def flatten_allowed_values(descriptor: AllowedValuesDescriptor) -> List[str]:
    """Human-readable list of options; cascading entries render as ``Parent > Child``."""
    if descriptor.mode == DescriptorMode.FLAT:
        return descriptor.value_labels()
    if descriptor.mode == DescriptorMode.CASCADING:
        rendered = []
        for parent in descriptor.parent_labels():
            children = descriptor.dependencies.get(parent, [])
            if not children:
                rendered.append(parent)
            for child in children:
                rendered.append(f"{parent} > {child.label}")
        return rendered
    return []
