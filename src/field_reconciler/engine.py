#!/usr/bin/env python3
"""
Reconciliation engine for field-reconciler.

Contains the orchestration of a reconciliation pass:
- sync_mappings: refresh the source snapshot stored on each mapping row
- reconcile: classify, aggregate, resolve and match every row, guarded by
  the automation hash so manually edited rows are never overwritten
- record_push_result: stamp the outcome of creating a field in the target
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .allowed_values import aggregate_allowed_values, flatten_allowed_values
from .cascading import (
    CascadingResolution,
    build_parent_proposal,
    child_field_id,
    parent_field_name,
    parent_mapping_key,
    resolve_cascading,
)
from .classifier import FieldClassification, classify_field, normalize_field_format
from .hashing import compute_automation_hash, is_manually_modified, mapping_hash
from .logging_config import get_logger, row_notice
from .matcher import (
    TargetFieldIndex,
    apply_target_baseline,
    derive_scope_ids,
    find_match,
    merge_ids,
    missing_ids,
)
from .models import (
    DescriptorMode,
    FieldAssignment,
    FieldCategory,
    FieldMapping,
    MigrationStatus,
    ProposedState,
    ReconcileSummary,
    SourceField,
    TargetField,
    UsageSnapshot,
)
from .snapshots import ReconcileInputs
from .store import MappingStore, MappingStoreError

# Initialize logger for this module
logger = get_logger(__name__)

MAX_NAME_LENGTH = 255

LINKED_STATUSES = (MigrationStatus.MATCH_FOUND, MigrationStatus.READY_FOR_UPDATE)


@dataclass
class SyncResult:
    """Outcome of refreshing mapping rows from the source inventory."""

    created: int = 0
    updated: int = 0
    purged: int = 0


@dataclass
class ReconcileContext:
    """Read-only snapshots shared by every row of one pass."""

    index: TargetFieldIndex
    project_map: Dict[str, int] = field(default_factory=dict)
    tracker_map: Dict[str, int] = field(default_factory=dict)
    usage: Dict[str, UsageSnapshot] = field(default_factory=dict)


@dataclass
class _Evaluation:
    """Fresh proposal for one row before it is written."""

    proposed: ProposedState
    classification: FieldClassification
    status: Optional[MigrationStatus] = None
    target: Optional[TargetField] = None
    missing_scope: bool = False
    resolution: Optional[CascadingResolution] = None
    unlinked: Optional[ProposedState] = None
    reasons: List[str] = field(default_factory=list)
    scope_reasons: List[str] = field(default_factory=list)
    info_notes: List[str] = field(default_factory=list)
    parent_mapping_id: Optional[int] = None

    @property
    def target_field_id(self) -> Optional[int]:
        return self.target.id if self.target is not None else None

    @property
    def notes(self) -> Optional[str]:
        return compose_notes(self.reasons + self.scope_reasons, self.info_notes)


def normalize_name(value: Optional[str]) -> Optional[str]:
    """Trim a field name and cut it to the target's column size."""
    if value is None:
        return None
    trimmed = str(value).strip()
    if not trimmed:
        return None
    return trimmed[:MAX_NAME_LENGTH]


def compose_notes(reasons: Iterable[str], info_notes: Iterable[str]) -> Optional[str]:
    """Unique, trimmed manual-review reasons followed by informational notes."""
    parts: List[str] = []
    for note in list(reasons) + list(info_notes):
        text = (note or "").strip()
        if text and text not in parts:
            parts.append(text)
    return " ".join(parts) if parts else None


def _sorted_ids(values: Iterable[Optional[str]]) -> List[str]:
    return sorted({value for value in values if value})


class ReconciliationEngine:
    """Drives FieldMapping rows through their migration states."""

    def __init__(self, store: MappingStore):
        self.store = store

    # Source snapshot ---------------------------------------------------

    def sync_mappings(
        self, source_fields: Iterable[SourceField], assignments: Iterable[FieldAssignment]
    ) -> SyncResult:
        """
        Create or refresh one mapping row per non-system source field.

        Only source snapshot columns are written here; the automatically
        managed proposal is untouched, so syncing never trips override
        detection. Rows whose source field disappeared are purged together
        with their synthetic cascading parents.

        Args:
            source_fields: Current source field inventory
            assignments: Every assignment of every source field

        Returns:
            SyncResult with created, updated and purged counts
        """
        result = SyncResult()
        by_field: Dict[str, List[FieldAssignment]] = {}
        for assignment in assignments:
            by_field.setdefault(assignment.field_id, []).append(assignment)

        known_ids = set()
        for source in source_fields:
            if source.category == FieldCategory.SYSTEM:
                continue
            known_ids.add(source.id)
            field_assignments = by_field.get(source.id, [])

            row = self.store.get_by_source_id(source.id)
            if row is None:
                row = FieldMapping(source_field_id=source.id)
                result.created += 1
            else:
                result.updated += 1

            aggregated = aggregate_allowed_values(field_assignments)
            row.source_name = source.name
            row.source_type = source.type
            row.source_subtype = source.subtype
            row.source_category = FieldCategory(source.category).value
            row.source_searchable = source.searchable
            row.source_project_ids = _sorted_ids(a.project_scope_id for a in field_assignments)
            row.source_type_ids = _sorted_ids(a.type_scope_id for a in field_assignments)
            row.source_allowed_values = aggregated.descriptor
            row.allowed_values_conflicts = aggregated.conflicts
            row.assignment_count = len(field_assignments)
            row.required_assignment_count = sum(1 for a in field_assignments if a.required)
            row.default_values = _sorted_ids(
                (a.default_value or "").strip() for a in field_assignments
            )
            self.store.save(row)

        for row in self.store.list_all():
            owner = child_field_id(row.source_field_id)
            if owner not in known_ids:
                logger.info(f"Purging mapping for removed source field {row.source_field_id}")
                self.store.delete(row.mapping_id)
                result.purged += 1

        logger.info(
            f"Synced mappings: {result.created} created, {result.updated} refreshed, {result.purged} purged"
        )
        return result

    # Reconciliation ----------------------------------------------------

    def reconcile(
        self,
        target_fields: Iterable[TargetField],
        project_map: Dict[str, int],
        tracker_map: Dict[str, int],
        usage: Optional[Dict[str, UsageSnapshot]] = None,
    ) -> ReconcileSummary:
        """
        Run one reconciliation pass over every stored mapping.

        Args:
            target_fields: Fresh snapshot of the target's custom fields
            project_map: Source project id to target project id
            tracker_map: Source issue type id to target tracker id
            usage: Optional pre-aggregated usage counts per source field id

        Returns:
            ReconcileSummary with per-run counters

        Raises:
            MappingStoreError: If the mapping store cannot be read or written
        """
        context = ReconcileContext(
            index=TargetFieldIndex(target_fields),
            project_map={str(key): value for key, value in project_map.items()},
            tracker_map={str(key): value for key, value in tracker_map.items()},
            usage=dict(usage or {}),
        )
        summary = ReconcileSummary()

        rows = [row for row in self.store.list_all() if not row.is_synthetic_parent]
        for row in sorted(rows, key=lambda item: item.source_field_id):
            try:
                self._reconcile_row(row.mapping_id, context, summary)
            except MappingStoreError:
                raise
            except Exception as e:
                message = f"Failed to reconcile {row.source_field_id}: {e}"
                logger.exception(message)
                summary.warnings.append(message)
                summary.skipped += 1

        summary.status_counts = self.store.status_counts()
        return summary

    def run(self, inputs: ReconcileInputs) -> ReconcileSummary:
        """Sync the source snapshot, then reconcile against the target snapshot."""
        self.sync_mappings(inputs.source_fields, inputs.assignments)
        return self.reconcile(
            inputs.target_fields, inputs.project_map, inputs.tracker_map, inputs.usage
        )

    def _reconcile_row(self, mapping_id: int, context: ReconcileContext, summary: ReconcileSummary) -> None:
        # Always hash the committed row, never a cached copy
        row = self.store.get(mapping_id)
        if row is None:
            summary.skipped += 1
            return

        current_hash = mapping_hash(row)
        if is_manually_modified(row):
            row_notice(logger, "preserved", row.source_field_id, "manual changes detected, skipping")
            summary.manual_overrides_preserved += 1
            return

        if row.migration_status == MigrationStatus.CREATION_SUCCESS:
            self._audit_created(row, current_hash, context, summary)
            return

        if (
            row.source_category == FieldCategory.APP_CUSTOM.value
            and row.migration_status != MigrationStatus.PENDING_ANALYSIS
        ):
            summary.unchanged += 1
            return

        evaluation = self._evaluate(row, context)

        parent_target_id = None
        resolution = evaluation.resolution
        if evaluation.status is None and resolution is not None and not resolution.problems:
            parent = self._reconcile_parent(row, evaluation, context, summary)
            evaluation.parent_mapping_id = parent.mapping_id
            parent_target_id = parent.target_field_id
        else:
            self._retire_parent(row, summary)

        self._decide_status(evaluation, parent_target_id)

        row.proposed = evaluation.proposed
        row.migration_status = evaluation.status
        row.target_field_id = evaluation.target_field_id
        row.parent_mapping_id = evaluation.parent_mapping_id
        row.notes = evaluation.notes
        row.automation_hash = mapping_hash(row)
        self.store.save(row)

        if evaluation.status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED:
            row_notice(logger, "manual", row.source_field_id, row.notes)

        if row.automation_hash == current_hash:
            summary.unchanged += 1
        elif evaluation.status in LINKED_STATUSES:
            summary.matched += 1
        elif evaluation.status == MigrationStatus.READY_FOR_CREATION:
            summary.ready_for_creation += 1
        elif evaluation.status == MigrationStatus.MANUAL_INTERVENTION_REQUIRED:
            summary.manual_review += 1
        elif evaluation.status == MigrationStatus.IGNORED:
            summary.ignored += 1

    def _evaluate(self, row: FieldMapping, context: ReconcileContext) -> _Evaluation:
        classification = classify_field(row.source_type, row.source_subtype)
        name = normalize_name(row.proposed.name) or normalize_name(row.source_name)
        evaluation = _Evaluation(
            proposed=ProposedState(
                name=name,
                field_format=normalize_field_format(classification.target_format),
                is_multiple=bool(classification.is_multiple),
            ),
            classification=classification,
        )

        if not row.source_project_ids or not row.source_type_ids:
            evaluation.status = MigrationStatus.IGNORED
            evaluation.info_notes.append(
                "Automatically ignored: no project or issue type scope available for mapping."
            )
            return evaluation

        usage = context.usage.get(row.source_field_id)
        if usage is not None and usage.total_issues > 0 and usage.issues_with_non_empty_value == 0:
            evaluation.status = MigrationStatus.IGNORED
            evaluation.info_notes.append(
                f"Automatically ignored: none of the {usage.total_issues} issues in scope carry a value."
            )
            return evaluation

        if classification.requires_manual_review:
            evaluation.reasons.append(classification.note)
        elif classification.note:
            evaluation.info_notes.append(classification.note)
        evaluation.reasons.extend(row.allowed_values_conflicts)

        if name is None:
            evaluation.reasons.append("Missing source custom field name.")

        self._apply_values(row, evaluation)
        self._apply_flags(row, evaluation)

        project_ids, missing_projects = derive_scope_ids(row.source_project_ids, context.project_map)
        tracker_ids, missing_trackers = derive_scope_ids(row.source_type_ids, context.tracker_map)
        if missing_projects:
            evaluation.scope_reasons.append(
                f"Missing target project mapping for source project ids: {', '.join(missing_projects)}."
            )
        if missing_trackers:
            evaluation.scope_reasons.append(
                f"Missing target tracker mapping for source issue type ids: {', '.join(missing_trackers)}."
            )
        evaluation.proposed.project_ids = project_ids
        evaluation.proposed.tracker_ids = tracker_ids
        evaluation.unlinked = evaluation.proposed

        target = find_match(context.index, [name, row.source_name])
        if target is not None:
            evaluation.target = target
            evaluation.proposed, evaluation.missing_scope = self._link(
                evaluation.proposed, target
            )
        return evaluation

    def _apply_values(self, row: FieldMapping, evaluation: _Evaluation) -> None:
        classification = evaluation.classification
        descriptor = row.source_allowed_values

        if classification.is_cascading:
            resolution = resolve_cascading(descriptor)
            if resolution is None:
                evaluation.reasons.append(
                    "Unable to parse cascading options; the source exposes no parent/child structure."
                )
                return
            evaluation.reasons.extend(resolution.problems)
            evaluation.resolution = resolution
            evaluation.proposed.possible_values = list(resolution.child_values)
            evaluation.proposed.value_dependencies = dict(resolution.dependencies)
            evaluation.info_notes.append(
                f"Cascading parents: {', '.join(resolution.parents) or 'none'}; "
                f"child options: {', '.join(resolution.child_values) or 'none'}."
            )
            return

        if not classification.requires_possible_values:
            return

        if descriptor.mode == DescriptorMode.FLAT:
            values = descriptor.value_labels()
        else:
            values = flatten_allowed_values(descriptor)
        if not values:
            evaluation.reasons.append(
                "List-style field requires allowed option values; the source exposes no allowed values."
            )
            return
        evaluation.proposed.possible_values = values

    def _apply_flags(self, row: FieldMapping, evaluation: _Evaluation) -> None:
        proposed = evaluation.proposed
        total = row.assignment_count
        required = row.required_assignment_count
        if total > 0 and required == total:
            proposed.is_required = True
        else:
            proposed.is_required = False
            if 0 < required < total:
                evaluation.info_notes.append(
                    f"Requirement varies across contexts: {required}/{total} assignments require a value."
                )

        proposed.is_filter = row.source_searchable if row.source_searchable is not None else True
        proposed.is_for_all = False

        if len(row.default_values) == 1:
            default = row.default_values[0]
            if proposed.possible_values is None or default in proposed.possible_values:
                proposed.default_value = default
        elif len(row.default_values) > 1:
            evaluation.info_notes.append(
                "Source contexts use different default values; no default proposed."
            )

    @staticmethod
    def _link(proposed: ProposedState, target: TargetField):
        """Adopt the target's definition and union its scopes with the derived ones."""
        linked = apply_target_baseline(proposed, target)
        linked.project_ids = merge_ids(target.project_ids, proposed.project_ids)
        linked.tracker_ids = merge_ids(target.tracker_ids, proposed.tracker_ids)
        missing = bool(
            missing_ids(linked.project_ids, target.project_ids)
            or missing_ids(linked.tracker_ids, target.tracker_ids)
        )
        return linked, missing

    def _decide_status(self, evaluation: _Evaluation, parent_target_id: Optional[int]) -> None:
        if evaluation.status is not None:
            return
        if evaluation.target is not None:
            if evaluation.classification.is_cascading and parent_target_id is None:
                evaluation.reasons.append(
                    "Cascading parent field is not linked to a target field yet."
                )
                evaluation.status = MigrationStatus.MANUAL_INTERVENTION_REQUIRED
            elif evaluation.missing_scope:
                evaluation.status = MigrationStatus.READY_FOR_UPDATE
            else:
                evaluation.status = MigrationStatus.MATCH_FOUND
            return

        if evaluation.reasons or evaluation.scope_reasons:
            evaluation.status = MigrationStatus.MANUAL_INTERVENTION_REQUIRED
        else:
            evaluation.status = MigrationStatus.READY_FOR_CREATION

    def _reconcile_parent(
        self,
        child: FieldMapping,
        evaluation: _Evaluation,
        context: ReconcileContext,
        summary: ReconcileSummary,
    ) -> FieldMapping:
        """Persist (or match) the synthetic parent before the child refers to it."""
        key = parent_mapping_key(child.source_field_id)
        parent = self.store.get_by_source_id(key)
        if parent is None:
            parent = FieldMapping(source_field_id=key)

        if is_manually_modified(parent):
            row_notice(logger, "preserved", key, "manual changes detected, keeping parent as is")
            summary.manual_overrides_preserved += 1
            return parent
        if parent.mapping_id is not None and parent.migration_status == MigrationStatus.CREATION_SUCCESS:
            return parent

        parent.source_name = parent_field_name(child.source_name)
        parent.source_type = child.source_type
        parent.source_subtype = child.source_subtype
        parent.source_category = child.source_category
        parent.source_searchable = child.source_searchable
        parent.source_project_ids = list(child.source_project_ids)
        parent.source_type_ids = list(child.source_type_ids)
        parent.assignment_count = child.assignment_count
        parent.required_assignment_count = child.required_assignment_count

        name = normalize_name(parent.proposed.name) or parent_field_name(evaluation.unlinked.name)
        proposal = build_parent_proposal(evaluation.unlinked, evaluation.resolution, name)
        target = find_match(context.index, [name, parent.source_name])

        reasons = list(evaluation.scope_reasons)
        if name is None:
            reasons.append("Missing source custom field name.")

        if target is not None:
            proposal, missing_scope = self._link(proposal, target)
            status = MigrationStatus.READY_FOR_UPDATE if missing_scope else MigrationStatus.MATCH_FOUND
        elif reasons:
            status = MigrationStatus.MANUAL_INTERVENTION_REQUIRED
        else:
            status = MigrationStatus.READY_FOR_CREATION

        parent.proposed = proposal
        parent.migration_status = status
        parent.target_field_id = target.id if target is not None else None
        parent.parent_mapping_id = None
        parent.notes = compose_notes(
            reasons, [f"Parent options of cascading field {child.source_field_id}."]
        )
        parent.automation_hash = mapping_hash(parent)
        return self.store.save(parent)

    def _retire_parent(self, child: FieldMapping, summary: ReconcileSummary) -> None:
        """Ignore a stored synthetic parent once its child no longer resolves as cascading."""
        key = parent_mapping_key(child.source_field_id)
        parent = self.store.get_by_source_id(key)
        if parent is None:
            return
        if is_manually_modified(parent):
            row_notice(logger, "preserved", key, "manual changes detected, keeping parent as is")
            summary.manual_overrides_preserved += 1
            return
        if parent.migration_status in (MigrationStatus.IGNORED, MigrationStatus.CREATION_SUCCESS):
            return

        parent.migration_status = MigrationStatus.IGNORED
        parent.target_field_id = None
        parent.notes = compose_notes(
            [],
            [f"Automatically ignored: cascading field {child.source_field_id} no longer needs a parent."],
        )
        parent.automation_hash = mapping_hash(parent)
        self.store.save(parent)
        row_notice(logger, "retired", key, "child no longer resolves as cascading")

    def _audit_created(
        self, row: FieldMapping, current_hash: str, context: ReconcileContext, summary: ReconcileSummary
    ) -> None:
        """Created fields are only checked for lost scope associations."""
        target = context.index.get(row.target_field_id)
        if target is None:
            message = (
                f"Target field #{row.target_field_id} of {row.source_field_id} "
                "is missing from the target snapshot."
            )
            logger.warning(message)
            summary.warnings.append(message)
            summary.skipped += 1
            return

        project_ids, _ = derive_scope_ids(row.source_project_ids, context.project_map)
        tracker_ids, _ = derive_scope_ids(row.source_type_ids, context.tracker_map)
        desired_projects = merge_ids(row.proposed.project_ids, project_ids)
        desired_trackers = merge_ids(row.proposed.tracker_ids, tracker_ids)
        missing_projects = missing_ids(desired_projects, target.project_ids)
        missing_trackers = missing_ids(desired_trackers, target.tracker_ids)
        if not missing_projects and not missing_trackers:
            summary.unchanged += 1
            return

        row.proposed.project_ids = merge_ids(target.project_ids, desired_projects)
        row.proposed.tracker_ids = merge_ids(target.tracker_ids, desired_trackers)
        row.migration_status = MigrationStatus.READY_FOR_UPDATE
        row.notes = compose_notes(
            [],
            [
                row.notes or "",
                f"Target field lacks associations (projects: {missing_projects or 'none'}; "
                f"trackers: {missing_trackers or 'none'}).",
            ],
        )
        row.automation_hash = mapping_hash(row)
        self.store.save(row)
        if row.automation_hash == current_hash:
            summary.unchanged += 1
        else:
            summary.matched += 1

    # Push feedback -----------------------------------------------------

    def record_push_result(
        self,
        mapping_id: int,
        success: bool,
        target_field_id: Optional[int] = None,
        error: Optional[str] = None,
    ) -> FieldMapping:
        """
        Record the outcome of creating or updating a field in the target.

        The row is restamped so the new status is not mistaken for a manual edit.

        Args:
            mapping_id: Mapping that was pushed
            success: Whether the target accepted the change
            target_field_id: Id of the created target field, if it is new
            error: Error message reported by the target on failure

        Returns:
            The stored mapping

        Raises:
            ValueError: If the mapping is unknown, or success lacks a target field id
        """
        row = self.store.get(mapping_id)
        if row is None:
            raise ValueError(f"Unknown mapping #{mapping_id}")

        if success:
            resolved_id = target_field_id if target_field_id is not None else row.target_field_id
            if resolved_id is None:
                raise ValueError(f"Mapping #{mapping_id} succeeded without a target field id")
            row.target_field_id = resolved_id
            row.migration_status = MigrationStatus.CREATION_SUCCESS
        else:
            row.migration_status = MigrationStatus.CREATION_FAILED
            if error:
                row.notes = compose_notes([f"Push failed: {error.strip()}"], [row.notes or ""])

        row.automation_hash = compute_automation_hash(
            row.target_field_id, row.migration_status, row.proposed, row.parent_mapping_id
        )
        return self.store.save(row)

    def status_counts(self) -> Dict[str, int]:
        return self.store.status_counts()
