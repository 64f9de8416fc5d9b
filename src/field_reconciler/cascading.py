#!/usr/bin/env python3
"""
Cascading field resolution for field-reconciler.

A cascading select is migrated as two target fields: a plain enumeration
holding the parent options, and a depending enumeration holding the child
options plus a parent-to-children table. The parent is tracked by its own
synthetic mapping row, keyed ``cascading_parent:<source field id>``.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .models import PARENT_KEY_PREFIX, AllowedValuesDescriptor, DescriptorMode, ProposedState
from .allowed_values import normalize_descriptor


@dataclass
class CascadingResolution:
    """Parent options, child options and their dependency table."""

    parents: List[str] = field(default_factory=list)
    dependencies: Dict[str, List[str]] = field(default_factory=dict)
    child_values: List[str] = field(default_factory=list)

    @property
    def problems(self) -> List[str]:
        """Reasons this resolution cannot be proposed automatically."""
        reasons = []
        if not self.parents:
            reasons.append("Cascading field does not expose any parent options.")
        if not self.child_values:
            reasons.append("Cascading field does not expose any child options.")
        return reasons


def resolve_cascading(descriptor: AllowedValuesDescriptor) -> Optional[CascadingResolution]:
    """
    Resolve an aggregated cascading descriptor.

    Args:
        descriptor: Aggregated allowed values of a cascading field

    Returns:
        CascadingResolution, or None when the descriptor is not cascading
    """
    if descriptor.mode != DescriptorMode.CASCADING:
        return None

    canonical = normalize_descriptor(descriptor)
    parents = canonical.parent_labels()
    dependencies = {
        parent: [child.label for child in canonical.dependencies.get(parent, [])]
        for parent in parents
    }
    child_values = sorted({child for children in dependencies.values() for child in children})
    return CascadingResolution(parents=parents, dependencies=dependencies, child_values=child_values)


def parent_mapping_key(source_field_id: str) -> str:
    return f"{PARENT_KEY_PREFIX}{source_field_id}"


def is_parent_mapping_key(key: str) -> bool:
    return key.startswith(PARENT_KEY_PREFIX)


def child_field_id(parent_key: str) -> str:
    """Source field id a synthetic parent key was derived from."""
    return parent_key[len(PARENT_KEY_PREFIX):] if is_parent_mapping_key(parent_key) else parent_key


def parent_field_name(child_name: Optional[str]) -> Optional[str]:
    if not child_name:
        return None
    return f"{child_name} (Parent)"


def build_parent_proposal(
    child: ProposedState, resolution: CascadingResolution, name: Optional[str]
) -> ProposedState:
    """Proposal for the synthetic parent: a single-choice enumeration over the parent options."""
    return ProposedState(
        name=name,
        field_format="enumeration",
        is_required=child.is_required,
        is_filter=child.is_filter,
        is_for_all=child.is_for_all,
        is_multiple=False,
        possible_values=list(resolution.parents),
        value_dependencies=None,
        default_value=None,
        tracker_ids=list(child.tracker_ids) if child.tracker_ids is not None else None,
        role_ids=list(child.role_ids) if child.role_ids is not None else None,
        project_ids=list(child.project_ids) if child.project_ids is not None else None,
    )
