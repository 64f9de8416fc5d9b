#!/usr/bin/env python3
"""
Core data classes for field-reconciler.

Contains the value types shared by every stage of a reconciliation pass:
- Source-side inventory (SourceField, FieldAssignment, UsageSnapshot)
- The tagged AllowedValuesDescriptor and its options
- The persisted FieldMapping record and its ProposedState bundle
- Target-side snapshot (TargetField)
- Run outputs (ReconcileSummary, AssociationPlan)
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

PARENT_KEY_PREFIX = "cascading_parent:"


class FieldCategory(str, Enum):
    """Where a source field comes from."""

    SYSTEM = "system"
    SOURCE_CUSTOM = "source_custom"
    APP_CUSTOM = "app_custom"


class DescriptorMode(str, Enum):
    """Shape of an allowed-values descriptor."""

    FLAT = "flat"
    CASCADING = "cascading"


class MigrationStatus(str, Enum):
    """Lifecycle states of a FieldMapping row."""

    PENDING_ANALYSIS = "PENDING_ANALYSIS"
    IGNORED = "IGNORED"
    MANUAL_INTERVENTION_REQUIRED = "MANUAL_INTERVENTION_REQUIRED"
    READY_FOR_CREATION = "READY_FOR_CREATION"
    MATCH_FOUND = "MATCH_FOUND"
    READY_FOR_UPDATE = "READY_FOR_UPDATE"
    CREATION_SUCCESS = "CREATION_SUCCESS"
    CREATION_FAILED = "CREATION_FAILED"


@dataclass
class SourceField:
    """A field defined in the source tracker."""

    id: str
    name: Optional[str]
    type: Optional[str] = None
    subtype: Optional[str] = None
    category: FieldCategory = FieldCategory.SOURCE_CUSTOM
    searchable: Optional[bool] = None


@dataclass(frozen=True)
class AllowedOption:
    """One selectable option. The id is the source tracker's stable option id, when known."""

    label: str
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "id": self.id}


@dataclass
class AllowedValuesDescriptor:
    """
    Allowed values of a field in one of two shapes.

    ``flat`` descriptors use ``values``; ``cascading`` descriptors use
    ``parents`` plus ``dependencies`` (parent label to child options).
    A descriptor without a mode carries no data at all.
    """

    mode: Optional[DescriptorMode] = None
    values: List[AllowedOption] = field(default_factory=list)
    parents: List[AllowedOption] = field(default_factory=list)
    dependencies: Dict[str, List[AllowedOption]] = field(default_factory=dict)

    @classmethod
    def flat(cls, values: List[AllowedOption]) -> "AllowedValuesDescriptor":
        return cls(mode=DescriptorMode.FLAT, values=list(values))

    @classmethod
    def cascading(
        cls,
        parents: List[AllowedOption],
        dependencies: Dict[str, List[AllowedOption]],
    ) -> "AllowedValuesDescriptor":
        return cls(
            mode=DescriptorMode.CASCADING,
            parents=list(parents),
            dependencies={key: list(children) for key, children in dependencies.items()},
        )

    @property
    def is_empty(self) -> bool:
        if self.mode is None:
            return True
        if self.mode == DescriptorMode.FLAT:
            return not self.values
        return not self.parents and not self.dependencies

    def value_labels(self) -> List[str]:
        return [option.label for option in self.values]

    def parent_labels(self) -> List[str]:
        return [option.label for option in self.parents]

    def to_dict(self) -> Optional[Dict[str, Any]]:
        """Serialize for storage; an empty descriptor serializes to None."""
        if self.mode is None:
            return None
        if self.mode == DescriptorMode.FLAT:
            return {
                "mode": self.mode.value,
                "values": [option.to_dict() for option in self.values],
            }
        return {
            "mode": self.mode.value,
            "parents": [option.to_dict() for option in self.parents],
            "dependencies": {
                parent: [option.to_dict() for option in children]
                for parent, children in self.dependencies.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Any) -> "AllowedValuesDescriptor":
        """Rebuild a descriptor from stored data. Anything malformed yields an empty descriptor."""
        if not isinstance(data, dict):
            return cls()
        try:
            mode = DescriptorMode(data.get("mode"))
        except ValueError:
            return cls()

        if mode == DescriptorMode.FLAT:
            return cls.flat(_options_from_list(data.get("values")))

        raw_dependencies = data.get("dependencies")
        dependencies = {}
        if isinstance(raw_dependencies, dict):
            for parent, children in raw_dependencies.items():
                dependencies[str(parent)] = _options_from_list(children)
        return cls.cascading(_options_from_list(data.get("parents")), dependencies)


def _options_from_list(items: Any) -> List[AllowedOption]:
    if not isinstance(items, list):
        return []
    options = []
    for item in items:
        if isinstance(item, dict) and isinstance(item.get("label"), str):
            option_id = item.get("id")
            options.append(
                AllowedOption(
                    label=item["label"],
                    id=str(option_id) if option_id is not None else None,
                )
            )
        elif isinstance(item, str):
            options.append(AllowedOption(label=item))
    return options


@dataclass
class FieldAssignment:
    """One (project, issue type) context in which a source field is used."""

    field_id: str
    project_scope_id: Optional[str] = None
    type_scope_id: Optional[str] = None
    required: Optional[bool] = None
    allowed_values: AllowedValuesDescriptor = field(default_factory=AllowedValuesDescriptor)
    default_value: Optional[str] = None

    @property
    def scope_key(self):
        return (self.project_scope_id or "", self.type_scope_id or "")


@dataclass
class UsageSnapshot:
    """Pre-aggregated usage counts of a source field."""

    total_issues: int = 0
    issues_with_value: int = 0
    issues_with_non_empty_value: int = 0
    counted_at: Optional[datetime] = None


@dataclass
class ProposedState:
    """The automatically managed proposal for a target field."""

    name: Optional[str] = None
    field_format: Optional[str] = None
    is_required: Optional[bool] = None
    is_filter: Optional[bool] = None
    is_for_all: Optional[bool] = None
    is_multiple: Optional[bool] = None
    possible_values: Optional[List[str]] = None
    value_dependencies: Optional[Dict[str, List[str]]] = None
    default_value: Optional[str] = None
    tracker_ids: Optional[List[int]] = None
    role_ids: Optional[List[int]] = None
    project_ids: Optional[List[int]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "field_format": self.field_format,
            "is_required": self.is_required,
            "is_filter": self.is_filter,
            "is_for_all": self.is_for_all,
            "is_multiple": self.is_multiple,
            "possible_values": self.possible_values,
            "value_dependencies": self.value_dependencies,
            "default_value": self.default_value,
            "tracker_ids": self.tracker_ids,
            "role_ids": self.role_ids,
            "project_ids": self.project_ids,
        }


@dataclass
class FieldMapping:
    """Persisted reconciliation record for one source field or one synthetic cascading parent."""

    source_field_id: str
    mapping_id: Optional[int] = None

    # Source snapshot, refreshed on every sync
    source_name: Optional[str] = None
    source_type: Optional[str] = None
    source_subtype: Optional[str] = None
    source_category: Optional[str] = None
    source_searchable: Optional[bool] = None
    source_project_ids: List[str] = field(default_factory=list)
    source_type_ids: List[str] = field(default_factory=list)
    source_allowed_values: AllowedValuesDescriptor = field(default_factory=AllowedValuesDescriptor)
    allowed_values_conflicts: List[str] = field(default_factory=list)
    assignment_count: int = 0
    required_assignment_count: int = 0
    default_values: List[str] = field(default_factory=list)

    # Automatically managed state
    target_field_id: Optional[int] = None
    parent_mapping_id: Optional[int] = None
    proposed: ProposedState = field(default_factory=ProposedState)
    migration_status: MigrationStatus = MigrationStatus.PENDING_ANALYSIS
    automation_hash: Optional[str] = None

    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_synthetic_parent(self) -> bool:
        return self.source_field_id.startswith(PARENT_KEY_PREFIX)


@dataclass
class TargetField:
    """Snapshot of a custom field that already exists in the target tracker."""

    id: int
    name: str
    field_format: Optional[str] = None
    is_required: Optional[bool] = None
    is_filter: Optional[bool] = None
    is_for_all: Optional[bool] = None
    is_multiple: Optional[bool] = None
    possible_values: List[str] = field(default_factory=list)
    default_value: Optional[str] = None
    tracker_ids: List[int] = field(default_factory=list)
    project_ids: List[int] = field(default_factory=list)
    role_ids: List[int] = field(default_factory=list)


@dataclass
class ReconcileSummary:
    """Per-run outcome counters."""

    matched: int = 0
    ready_for_creation: int = 0
    manual_review: int = 0
    manual_overrides_preserved: int = 0
    ignored: int = 0
    skipped: int = 0
    unchanged: int = 0
    status_counts: Dict[str, int] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "matched": self.matched,
            "ready_for_creation": self.ready_for_creation,
            "manual_review": self.manual_review,
            "manual_overrides_preserved": self.manual_overrides_preserved,
            "ignored": self.ignored,
            "skipped": self.skipped,
            "unchanged": self.unchanged,
            "status_counts": dict(self.status_counts),
            "warnings": list(self.warnings),
        }


@dataclass
class AssociationPlanEntry:
    """Scope associations a linked target field still lacks."""

    mapping_id: int
    source_field_id: str
    target_field_id: int
    parent_target_field_id: Optional[int] = None
    target_project_ids: List[int] = field(default_factory=list)
    target_tracker_ids: List[int] = field(default_factory=list)
    missing_project_ids: List[int] = field(default_factory=list)
    missing_tracker_ids: List[int] = field(default_factory=list)
    parent_missing_project_ids: List[int] = field(default_factory=list)
    parent_missing_tracker_ids: List[int] = field(default_factory=list)

    @property
    def has_pending_actions(self) -> bool:
        return bool(
            self.missing_project_ids
            or self.missing_tracker_ids
            or self.parent_missing_project_ids
            or self.parent_missing_tracker_ids
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mapping_id": self.mapping_id,
            "source_field_id": self.source_field_id,
            "target_field_id": self.target_field_id,
            "parent_target_field_id": self.parent_target_field_id,
            "target_project_ids": list(self.target_project_ids),
            "target_tracker_ids": list(self.target_tracker_ids),
            "missing_project_ids": list(self.missing_project_ids),
            "missing_tracker_ids": list(self.missing_tracker_ids),
            "parent_missing_project_ids": list(self.parent_missing_project_ids),
            "parent_missing_tracker_ids": list(self.parent_missing_tracker_ids),
        }


@dataclass
class AssociationPlan:
    """Global association diff across all linked mappings."""

    entries: List[AssociationPlanEntry] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "warnings": list(self.warnings),
        }
