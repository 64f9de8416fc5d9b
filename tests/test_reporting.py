"""Tests for console and YAML reporting."""

from datetime import datetime
from pathlib import Path

import yaml
from rich.console import Console

from field_reconciler.models import (
    AssociationPlan,
    AssociationPlanEntry,
    MigrationStatus,
    ReconcileSummary,
)
from field_reconciler.reporting import (
    ensure_json_serializable,
    render_plan,
    render_summary,
    write_plan_yaml,
)


def sample_plan():
    return AssociationPlan(
        entries=[
            AssociationPlanEntry(
                mapping_id=1,
                source_field_id="customfield_10010",
                target_field_id=5,
                target_project_ids=[3, 4],
                target_tracker_ids=[1],
                missing_project_ids=[4],
            )
        ],
        warnings=["Target field #9 for customfield_10020 is missing from the snapshot."],
    )


def test_write_plan_yaml(tmp_path):
    """Test that the plan is written as YAML with a timestamp."""
    output = write_plan_yaml(sample_plan(), tmp_path / "out" / "plan.yaml")

    with open(output, encoding="utf-8") as f:
        document = yaml.safe_load(f)

    assert document["entries"][0]["missing_project_ids"] == [4]
    assert document["entries"][0]["parent_target_field_id"] is None
    assert document["warnings"] == sample_plan().warnings
    assert "generated_at" in document


def test_render_summary():
    """Test that the summary table lists counters and statuses."""
    console = Console(record=True, width=120)
    summary = ReconcileSummary(matched=2, manual_overrides_preserved=1, status_counts={"MATCH_FOUND": 2})
    render_summary(summary, console)

    text = console.export_text()
    assert "Manual overrides preserved" in text
    assert "MATCH_FOUND" in text


def test_render_plan():
    """Test rendering of a plan and of an empty plan."""
    console = Console(record=True, width=160)
    render_plan(sample_plan(), console)
    text = console.export_text()
    assert "customfield_10010" in text
    assert "warning" in text

    console = Console(record=True, width=160)
    render_plan(AssociationPlan(), console)
    assert "No pending scope associations" in console.export_text()


def test_ensure_json_serializable():
    """Test conversion of enums, paths, datetimes and dataclasses."""
    result = ensure_json_serializable(
        {
            "status": MigrationStatus.MATCH_FOUND,
            "path": Path("output") / "plan.yaml",
            "when": datetime(2026, 1, 15, 10, 0),
            "ids": (1, 2),
            "summary": ReconcileSummary(matched=1),
        }
    )
    assert result["status"] == "MATCH_FOUND"
    assert result["path"] == "output/plan.yaml"
    assert result["when"] == "2026-01-15T10:00:00"
    assert result["ids"] == [1, 2]
    assert result["summary"]["matched"] == 1
