#!/usr/bin/env python3
"""
Basic tests for field-reconciler CLI functionality.
"""

import subprocess
import sys
from pathlib import Path

import yaml

from field_reconciler.main import main
from field_reconciler.store import SqlMappingStore

ROOT = Path(__file__).parent.parent


def run_module(*args):
    return subprocess.run(
        [sys.executable, "-m", "field_reconciler", *args],
        capture_output=True,
        text=True,
        cwd=ROOT,
    )


def test_cli_help():
    """Test that the CLI help command works."""
    result = run_module("--help")
    assert result.returncode == 0
    assert "Field Reconciler" in result.stdout
    for command in ("sync", "reconcile", "plan", "status", "record"):
        assert command in result.stdout


def test_reconcile_help():
    """Test that the reconcile help command works."""
    result = run_module("reconcile", "--help")
    assert result.returncode == 0
    assert "--inputs" in result.stdout
    assert "--database-url" in result.stdout


def test_record_help():
    """Test that the record help command works."""
    result = run_module("record", "--help")
    assert result.returncode == 0
    assert "--mapping-id" in result.stdout


def test_version():
    """Test that --version prints the package version."""
    result = run_module("--version")
    assert result.returncode == 0
    assert "1.0.0" in result.stdout


def test_reconcile_plan_and_record(tmp_path):
    """Test a full reconcile, plan and record cycle against a sqlite store."""
    database_url = f"sqlite:///{tmp_path / 'mappings.db'}"
    inputs = ROOT / "data" / "inputs.yaml"
    plan_path = tmp_path / "plan.yaml"
    common = ["--config", str(tmp_path / "absent.yaml")]

    main(common + ["reconcile", "--inputs", str(inputs), "--database-url", database_url])

    store = SqlMappingStore(database_url)
    statuses = {row.source_field_id: row.migration_status.value for row in store.list_all()}
    assert statuses["customfield_10010"] == "READY_FOR_CREATION"
    assert statuses["customfield_10020"] == "READY_FOR_CREATION"
    assert statuses["cascading_parent:customfield_10020"] == "READY_FOR_CREATION"
    assert statuses["customfield_10030"] == "MANUAL_INTERVENTION_REQUIRED"
    assert statuses["customfield_10040"] == "READY_FOR_UPDATE"
    assert "summary" not in statuses

    main(
        common
        + ["plan", "--inputs", str(inputs), "--database-url", database_url, "--output", str(plan_path)]
    )
    with open(plan_path, encoding="utf-8") as f:
        plan = yaml.safe_load(f)
    assert [entry["source_field_id"] for entry in plan["entries"]] == ["customfield_10040"]
    assert plan["entries"][0]["missing_tracker_ids"] == [2]

    mapping_id = store.get_by_source_id("customfield_10010").mapping_id
    main(common + ["record", "--mapping-id", str(mapping_id), "--target-field-id", "41", "--database-url", database_url])
    assert store.get(mapping_id).migration_status.value == "CREATION_SUCCESS"
