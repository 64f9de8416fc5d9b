"""Tests for input snapshot loading."""

import json

import pytest

from field_reconciler.models import DescriptorMode, FieldCategory
from field_reconciler.snapshots import SnapshotError, load_inputs

SNAPSHOT = """
source_fields:
  - id: customfield_10010
    name: Severity
    type: option
    subtype: com.atlassian.jira.plugin.system.customfieldtypes:select
  - id: customfield_10020
    name: Area
    type: option-with-child
    subtype: com.atlassian.jira.plugin.system.customfieldtypes:cascadingselect
  - id: customfield_10050
    name: Tempo Account
    type: option
    subtype: ari:cloud:ecosystem::extension/tempo
  - id: summary
    name: Summary
    type: string
    custom: false
assignments:
  - field_id: customfield_10010
    project_scope_id: 10000
    type_scope_id: 10001
    allowed_values:
      - {id: 1, value: High}
  - field_id: customfield_10020
    project_scope_id: 10000
    type_scope_id: 10001
    allowed_values:
      - id: 100
        value: Backend
        children:
          - {id: 101, value: API}
  - field_id: customfield_10010
    project_scope_id: 10100
    type_scope_id: 10001
    allowed_values:
      mode: flat
      values:
        - {label: Low, id: "2"}
target_fields:
  - id: 7
    name: Severity
    format: list
    project_ids: [3]
project_map:
  10000: 3
tracker_map:
  10001: 1
usage:
  customfield_10010:
    total_issues: 5
    issues_with_value: 2
    issues_with_non_empty_value: 2
    counted_at: "2026-01-15T10:00:00"
"""


def test_load_yaml_snapshot(tmp_path):
    """Test loading a YAML snapshot into engine inputs."""
    path = tmp_path / "inputs.yaml"
    path.write_text(SNAPSHOT, encoding="utf-8")

    inputs = load_inputs(path)

    categories = {field.id: field.category for field in inputs.source_fields}
    assert categories == {
        "customfield_10010": FieldCategory.SOURCE_CUSTOM,
        "customfield_10020": FieldCategory.SOURCE_CUSTOM,
        "customfield_10050": FieldCategory.APP_CUSTOM,
        "summary": FieldCategory.SYSTEM,
    }

    severity, area, low = inputs.assignments
    assert severity.project_scope_id == "10000"
    assert severity.allowed_values.mode == DescriptorMode.FLAT
    assert severity.allowed_values.values[0].id == "1"
    assert area.allowed_values.mode == DescriptorMode.CASCADING
    assert area.allowed_values.parent_labels() == ["Backend"]
    assert low.allowed_values.value_labels() == ["Low"]

    assert inputs.target_fields[0].field_format == "list"
    assert inputs.project_map == {"10000": 3}
    assert inputs.tracker_map == {"10001": 1}
    assert inputs.usage["customfield_10010"].counted_at.year == 2026


def test_load_json_snapshot(tmp_path):
    """Test loading a JSON snapshot."""
    path = tmp_path / "inputs.json"
    path.write_text(
        json.dumps({"source_fields": [{"id": "cf_1", "name": "Points", "type": "number"}]}),
        encoding="utf-8",
    )
    inputs = load_inputs(path)
    assert inputs.source_fields[0].name == "Points"
    assert inputs.assignments == []


def test_missing_snapshot(tmp_path):
    """Test that a missing snapshot raises SnapshotError."""
    with pytest.raises(SnapshotError):
        load_inputs(tmp_path / "nope.yaml")


def test_snapshot_must_be_a_mapping(tmp_path):
    """Test that a snapshot must hold a mapping at the top level."""
    path = tmp_path / "inputs.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    with pytest.raises(SnapshotError):
        load_inputs(path)


def test_invalid_snapshot(tmp_path):
    """Test that an invalid snapshot raises SnapshotError."""
    path = tmp_path / "inputs.yaml"
    path.write_text("target_fields:\n  - id: nope\n", encoding="utf-8")
    with pytest.raises(SnapshotError):
        load_inputs(path)
