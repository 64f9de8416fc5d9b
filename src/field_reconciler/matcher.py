#!/usr/bin/env python3
"""
Target matching and association planning for field-reconciler.

Contains:
- TargetFieldIndex: case-insensitive name lookup over the target snapshot
- find_match / apply_target_baseline: link a proposal to an existing field
- derive_scope_ids: translate source scope ids through a cross-mapping table
- collect_association_plan: scope associations still missing on linked fields
"""

from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .classifier import normalize_field_format
from .logging_config import get_logger
from .models import (
    AssociationPlan,
    AssociationPlanEntry,
    FieldMapping,
    MigrationStatus,
    ProposedState,
    TargetField,
)

# Initialize logger for this module
logger = get_logger(__name__)

PLAN_STATUSES = (
    MigrationStatus.MATCH_FOUND,
    MigrationStatus.READY_FOR_UPDATE,
    MigrationStatus.CREATION_SUCCESS,
)


def _name_key(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    key = name.strip().lower()
    return key or None


class TargetFieldIndex:
    """Lookup of target fields by id and by case-insensitive name."""

    def __init__(self, fields: Iterable[TargetField]):
        self.by_id: Dict[int, TargetField] = {}
        self.by_name: Dict[str, TargetField] = {}
        for target in sorted(fields, key=lambda item: item.id):
            self.by_id[target.id] = target
            key = _name_key(target.name)
            # Lowest id wins when names collide
            if key is not None and key not in self.by_name:
                self.by_name[key] = target

    def __len__(self) -> int:
        return len(self.by_id)

    def get(self, target_id: Optional[int]) -> Optional[TargetField]:
        if target_id is None:
            return None
        return self.by_id.get(target_id)

    def find_by_name(self, name: Optional[str]) -> Optional[TargetField]:
        key = _name_key(name)
        if key is None:
            return None
        return self.by_name.get(key)


def find_match(index: TargetFieldIndex, candidates: Sequence[Optional[str]]) -> Optional[TargetField]:
    """Return the first target field whose name equals one of the candidates, in order."""
    for candidate in candidates:
        match = index.find_by_name(candidate)
        if match is not None:
            return match
    return None


def apply_target_baseline(proposal: ProposedState, target: TargetField) -> ProposedState:
    """Take format, flags, values and default from the linked target field."""
    return ProposedState(
        name=target.name,
        field_format=normalize_field_format(target.field_format) or proposal.field_format,
        is_required=target.is_required if target.is_required is not None else proposal.is_required,
        is_filter=target.is_filter if target.is_filter is not None else proposal.is_filter,
        is_for_all=target.is_for_all if target.is_for_all is not None else proposal.is_for_all,
        is_multiple=target.is_multiple if target.is_multiple is not None else proposal.is_multiple,
        possible_values=list(target.possible_values) if target.possible_values else proposal.possible_values,
        value_dependencies=proposal.value_dependencies,
        default_value=target.default_value,
        tracker_ids=proposal.tracker_ids,
        role_ids=proposal.role_ids,
        project_ids=proposal.project_ids,
    )


def derive_scope_ids(
    source_ids: Iterable[str], cross_map: Dict[str, int]
) -> Tuple[List[int], List[str]]:
    """
    Translate source scope ids into target ids.

    Returns:
        Tuple of (sorted target ids, sorted source ids without a mapping)
    """
    derived = set()
    missing = set()
    for source_id in source_ids:
        key = str(source_id)
        if key in cross_map and cross_map[key] is not None:
            derived.add(int(cross_map[key]))
        else:
            missing.add(key)
    return sorted(derived), sorted(missing)


def missing_ids(desired: Optional[Iterable[int]], existing: Optional[Iterable[int]]) -> List[int]:
    """Ids present in desired but absent from existing."""
    have = set(existing or [])
    return sorted({item for item in (desired or []) if item not in have})


def merge_ids(*groups: Optional[Iterable[int]]) -> List[int]:
    merged = set()
    for group in groups:
        merged.update(group or [])
    return sorted(merged)


def _plan_warning(message: str, warnings: List[str]) -> None:
    logger.warning(message)
    warnings.append(message)


def collect_association_plan(
    mappings: Iterable[FieldMapping], targets: Iterable[TargetField]
) -> AssociationPlan:
    """
    Diff every linked mapping against a fresh target snapshot.

    Only persisted data is consulted, so the plan can be rebuilt at any time.

    Args:
        mappings: All FieldMapping rows from the store
        targets: Current target field snapshot

    Returns:
        AssociationPlan with entries for mappings that still lack associations
    """
    index = targets if isinstance(targets, TargetFieldIndex) else TargetFieldIndex(targets)
    rows = list(mappings)
    by_mapping_id = {row.mapping_id: row for row in rows if row.mapping_id is not None}
    plan = AssociationPlan()

    for row in sorted(rows, key=lambda item: item.source_field_id):
        if row.migration_status not in PLAN_STATUSES or row.is_synthetic_parent:
            continue
        if row.target_field_id is None:
            continue

        target = index.get(row.target_field_id)
        if target is None:
            _plan_warning(
                f"Target field #{row.target_field_id} for {row.source_field_id} is missing from the snapshot.",
                plan.warnings,
            )
            continue

        desired_projects = merge_ids(target.project_ids, row.proposed.project_ids)
        desired_trackers = merge_ids(target.tracker_ids, row.proposed.tracker_ids)
        entry = AssociationPlanEntry(
            mapping_id=row.mapping_id,
            source_field_id=row.source_field_id,
            target_field_id=target.id,
            target_project_ids=desired_projects,
            target_tracker_ids=desired_trackers,
            missing_project_ids=missing_ids(desired_projects, target.project_ids),
            missing_tracker_ids=missing_ids(desired_trackers, target.tracker_ids),
        )

        if row.parent_mapping_id is not None:
            parent = by_mapping_id.get(row.parent_mapping_id)
            parent_target = index.get(parent.target_field_id) if parent is not None else None
            if parent is None or parent.target_field_id is None:
                _plan_warning(
                    f"Cascading parent of {row.source_field_id} has no target field yet.",
                    plan.warnings,
                )
            elif parent_target is None:
                _plan_warning(
                    f"Parent target field #{parent.target_field_id} for {row.source_field_id} is missing from the snapshot.",
                    plan.warnings,
                )
            else:
                entry.parent_target_field_id = parent_target.id
                entry.parent_missing_project_ids = missing_ids(
                    merge_ids(parent_target.project_ids, parent.proposed.project_ids),
                    parent_target.project_ids,
                )
                entry.parent_missing_tracker_ids = missing_ids(
                    merge_ids(parent_target.tracker_ids, parent.proposed.tracker_ids),
                    parent_target.tracker_ids,
                )

        if entry.has_pending_actions:
            plan.entries.append(entry)

    return plan
