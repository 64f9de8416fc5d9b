"""Tests for the automation hash."""

from field_reconciler.hashing import (
    canonicalize,
    compute_automation_hash,
    is_manually_modified,
    mapping_hash,
    normalize_stored_hash,
)
from field_reconciler.models import FieldMapping, MigrationStatus, ProposedState


def proposal(**overrides):
    values = dict(
        name="Severity",
        field_format="enumeration",
        is_required=False,
        is_filter=True,
        is_for_all=False,
        is_multiple=False,
        possible_values=["High", "Low"],
        tracker_ids=[1, 2],
        project_ids=[3],
    )
    values.update(overrides)
    return ProposedState(**values)


class TestCanonicalize:
    """Canonical JSON structure."""

    def test_keys_sorted_recursively(self):
        """Test that mapping keys are sorted at every level."""
        result = canonicalize({"b": {"d": 1, "c": 2}, "a": 1})
        assert list(result) == ["a", "b"]
        assert list(result["b"]) == ["c", "d"]

    def test_scalar_lists_sorted_naturally(self):
        """Test that scalar lists sort naturally and case-insensitively."""
        assert canonicalize(["item10", "Item2", "item1"]) == ["item1", "Item2", "item10"]
        assert canonicalize([10, 2, 1]) == [1, 2, 10]

    def test_lists_of_structures_keep_order(self):
        """Test that lists holding structures keep their order."""
        assert canonicalize([{"b": 1}, {"a": 1}]) == [{"b": 1}, {"a": 1}]

    def test_empty_containers_collapse(self):
        """Test that empty lists and mappings canonicalize to None."""
        assert canonicalize([]) is None
        assert canonicalize({}) is None
        assert canonicalize({"a": []}) == {"a": None}


class TestAutomationHash:
    """Hash stability and sensitivity."""

    def test_hash_is_hex_sha256(self):
        """Test that the hash is a 64-character hex digest."""
        digest = compute_automation_hash(None, MigrationStatus.READY_FOR_CREATION, proposal())
        assert len(digest) == 64
        assert normalize_stored_hash(digest) == digest

    def test_ordering_does_not_matter(self):
        """Test that list and key order do not change the hash."""
        first = compute_automation_hash(
            5, MigrationStatus.MATCH_FOUND, proposal(possible_values=["Low", "High"], tracker_ids=[2, 1])
        )
        second = compute_automation_hash(5, MigrationStatus.MATCH_FOUND, proposal())
        assert first == second

    def test_list_alias_formats_hash_equally(self):
        """Test that list format aliases hash like their enumeration names."""
        first = compute_automation_hash(5, MigrationStatus.MATCH_FOUND, proposal(field_format="list"))
        second = compute_automation_hash(5, MigrationStatus.MATCH_FOUND, proposal())
        assert first == second

    def test_state_changes_change_hash(self):
        """Test that each hashed attribute changes the hash."""
        base = compute_automation_hash(None, MigrationStatus.READY_FOR_CREATION, proposal())
        assert base != compute_automation_hash(None, MigrationStatus.IGNORED, proposal())
        assert base != compute_automation_hash(7, MigrationStatus.READY_FOR_CREATION, proposal())
        assert base != compute_automation_hash(None, MigrationStatus.READY_FOR_CREATION, proposal(name="Other"))
        assert base != compute_automation_hash(
            None, MigrationStatus.READY_FOR_CREATION, proposal(), parent_mapping_id=3
        )

    def test_notes_are_not_hashed(self):
        """Test that notes do not affect the hash."""
        row = FieldMapping(source_field_id="cf_1", proposed=proposal(), notes="first")
        first = mapping_hash(row)
        row.notes = "edited by hand"
        assert mapping_hash(row) == first


class TestManualModification:
    """Override detection."""

    def test_unstamped_row_is_not_modified(self):
        """Test that a row without a hash is not treated as edited."""
        row = FieldMapping(source_field_id="cf_1", proposed=proposal())
        assert is_manually_modified(row) is False

    def test_stamped_row_is_not_modified(self):
        """Test that a freshly stamped row is not treated as edited."""
        row = FieldMapping(source_field_id="cf_1", proposed=proposal())
        row.automation_hash = mapping_hash(row)
        assert is_manually_modified(row) is False

    def test_edit_after_stamp_is_detected(self):
        """Test that an edit after stamping is detected."""
        row = FieldMapping(source_field_id="cf_1", proposed=proposal())
        row.automation_hash = mapping_hash(row)
        row.proposed.name = "Severity (renamed)"
        assert is_manually_modified(row) is True

    def test_invalid_stored_hash_is_ignored(self):
        """Test that a malformed stored hash is treated as absent."""
        assert normalize_stored_hash("not-a-hash") is None
        assert normalize_stored_hash("  ") is None
        assert normalize_stored_hash("A" * 64) == "a" * 64
