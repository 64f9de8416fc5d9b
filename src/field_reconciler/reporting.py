#!/usr/bin/env python3
"""
Console and file reporting for field-reconciler.

Renders run summaries, status breakdowns and association plans as rich
tables, and writes the association plan to YAML for the push step.
"""

from dataclasses import asdict, is_dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from rich.console import Console
from rich.table import Table

from .models import AssociationPlan, ReconcileSummary

SUMMARY_ROWS = (
    ("matched", "Matched"),
    ("ready_for_creation", "Ready for creation"),
    ("manual_review", "Manual review"),
    ("manual_overrides_preserved", "Manual overrides preserved"),
    ("ignored", "Ignored"),
    ("skipped", "Skipped"),
    ("unchanged", "Unchanged"),
)


def ensure_json_serializable(obj: Any) -> Any:
    """
    Ensure an object is JSON serializable by converting non-serializable types.

    Args:
        obj: Object to make JSON serializable

    Returns:
        JSON-serializable version of the object
    """
    if isinstance(obj, Enum):
        return obj.value
    if is_dataclass(obj) and not isinstance(obj, type):
        return ensure_json_serializable(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): ensure_json_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [ensure_json_serializable(item) for item in obj]
    if isinstance(obj, Path):
        # Use as_posix() for cross-platform compatibility (always forward slashes)
        return obj.as_posix()
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj
    return str(obj)


def render_summary(summary: ReconcileSummary, console: Optional[Console] = None) -> None:
    """Print the per-run counters and the status breakdown."""
    console = console or Console()

    table = Table(title="Reconciliation summary")
    table.add_column("Outcome")
    table.add_column("Count", justify="right")
    for key, label in SUMMARY_ROWS:
        table.add_row(label, str(getattr(summary, key)))
    console.print(table)

    render_status_counts(summary.status_counts, console)

    for warning in summary.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


def render_status_counts(counts: Dict[str, int], console: Optional[Console] = None) -> None:
    console = console or Console()
    table = Table(title="Mappings by status")
    table.add_column("Status")
    table.add_column("Mappings", justify="right")
    for status, total in sorted(counts.items()):
        table.add_row(status, str(total))
    console.print(table)


def _ids(values) -> str:
    return ", ".join(str(value) for value in values) or "-"


def render_plan(plan: AssociationPlan, console: Optional[Console] = None) -> None:
    """Print pending association actions."""
    console = console or Console()
    if not plan.entries:
        console.print("No pending scope associations.")
    else:
        table = Table(title="Pending scope associations")
        table.add_column("Mapping", justify="right")
        table.add_column("Source field")
        table.add_column("Target field", justify="right")
        table.add_column("Missing projects")
        table.add_column("Missing trackers")
        table.add_column("Parent", justify="right")
        for entry in plan.entries:
            table.add_row(
                str(entry.mapping_id),
                entry.source_field_id,
                str(entry.target_field_id),
                _ids(entry.missing_project_ids),
                _ids(entry.missing_tracker_ids),
                str(entry.parent_target_field_id) if entry.parent_target_field_id else "-",
            )
        console.print(table)

    for warning in plan.warnings:
        console.print(f"[yellow]warning:[/yellow] {warning}")


def write_plan_yaml(plan: AssociationPlan, path: Path) -> Path:
    """Write the association plan to a YAML file, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    document = {
        "generated_at": datetime.now().isoformat(timespec="seconds"),
        **ensure_json_serializable(plan.to_dict()),
    }
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(document, f, sort_keys=False, allow_unicode=True)
    return path
