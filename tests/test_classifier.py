"""Tests for field classification."""

import pytest

from field_reconciler.classifier import (
    classify_field,
    classify_field_category,
    derive_is_multiple,
    normalize_field_format,
)
from field_reconciler.models import FieldCategory

NATIVE = "com.atlassian.jira.plugin.system.customfieldtypes:"


class TestSubtypeClassification:
    """Subtype tokens take priority over the declared type."""

    @pytest.mark.parametrize(
        "subtype,expected",
        [
            ("textarea", "text"),
            ("textfield", "string"),
            ("datepicker", "date"),
            ("datetime", "datetime"),
            ("float", "float"),
        ],
    )
    def test_scalar_subtypes(self, subtype, expected):
        """Test that scalar subtypes map to their target formats."""
        result = classify_field("string", NATIVE + subtype)
        assert result.target_format == expected
        assert result.requires_manual_review is False
        assert result.requires_possible_values is False

    def test_multiselect_is_multiple_enumeration(self):
        """Test that multiselect maps to a multiple enumeration."""
        result = classify_field("array", NATIVE + "multiselect")
        assert result.target_format == "enumeration"
        assert result.is_multiple is True
        assert result.requires_possible_values is True

    def test_select_is_single_enumeration(self):
        """Test that select maps to a single-value enumeration."""
        result = classify_field("option", NATIVE + "select")
        assert result.target_format == "enumeration"
        assert result.is_multiple is False
        assert result.requires_possible_values is True

    def test_labels_inherit_multiplicity_from_array_type(self):
        """Test that labels take their multiplicity from the array type."""
        result = classify_field("array", NATIVE + "labels")
        assert result.target_format == "enumeration"
        assert result.is_multiple is True

    def test_user_picker_requires_manual_review(self):
        """Test that a user picker is sent to manual review."""
        result = classify_field("user", NATIVE + "userpicker")
        assert result.requires_manual_review is True
        assert result.target_format is None
        assert "pickers" in result.note

    @pytest.mark.parametrize(
        "field_type,subtype",
        [
            ("group", "grouppicker"),
            ("array", "multiuserpicker"),
            ("array", "multigrouppicker"),
        ],
    )
    def test_all_pickers_require_manual_review(self, field_type, subtype):
        """Test that single and multi-value user and group pickers are never auto-classified."""
        result = classify_field(field_type, NATIVE + subtype)
        assert result.requires_manual_review is True
        assert result.target_format is None
        assert result.requires_possible_values is False

    def test_cascading_select(self):
        """Test that cascading select is recognized."""
        result = classify_field("option-with-child", NATIVE + "cascadingselect")
        assert result.is_cascading is True
        assert result.target_format == "depending_enumeration"
        assert result.requires_possible_values is True

    def test_url_keeps_string_with_note(self):
        """Test that URL fields become strings with a note."""
        result = classify_field("string", NATIVE + "url")
        assert result.target_format == "string"
        assert result.requires_manual_review is False
        assert "URL" in result.note

    def test_subtype_match_is_case_insensitive(self):
        """Test that subtype tokens match regardless of case."""
        assert classify_field(None, "COM.EXAMPLE:TEXTAREA").target_format == "text"


class TestTypeClassification:
    """Coarse type table used when no subtype token matches."""

    @pytest.mark.parametrize(
        "field_type,expected",
        [
            ("string", "string"),
            ("number", "float"),
            ("date", "date"),
            ("datetime", "datetime"),
            ("any", "text"),
            ("sd-approvals", "text"),
        ],
    )
    def test_scalar_types(self, field_type, expected):
        """Test the coarse scalar type rules."""
        result = classify_field(field_type, None)
        assert result.target_format == expected
        assert result.requires_manual_review is False

    def test_array_type_is_multiple_enumeration(self):
        """Test that an array type maps to a multiple enumeration."""
        result = classify_field("array", "com.vendor.plugin:tags")
        assert result.target_format == "enumeration"
        assert result.is_multiple is True
        assert result.requires_possible_values is True

    def test_option_with_child_is_cascading(self):
        """Test that option-with-child is cascading without a subtype."""
        result = classify_field("option-with-child", None)
        assert result.is_cascading is True
        assert result.is_multiple is False

    def test_unknown_type_requires_manual_review(self):
        """Test that an unknown type is sent to manual review."""
        result = classify_field("sprint-board", None)
        assert result.requires_manual_review is True
        assert '"sprint-board"' in result.note

    def test_missing_type_requires_manual_review(self):
        """Test that a missing type is sent to manual review."""
        result = classify_field(None, None)
        assert result.requires_manual_review is True
        assert "Unable to detect" in result.note


@pytest.mark.parametrize(
    "field_type,subtype",
    [
        ("", ""),
        ("???", "::"),
        (None, "com.unknown:thing"),
        ("  ", None),
        ("ARRAY", None),
    ],
)
def test_classifier_is_total(field_type, subtype):
    """Every input yields a classification object."""
    result = classify_field(field_type, subtype)
    assert result is not None
    if result.target_format is None:
        assert result.requires_manual_review is True


def test_derive_is_multiple():
    """Test multiplicity derived from the coarse type."""
    assert derive_is_multiple("array") is True
    assert derive_is_multiple("option") is False
    assert derive_is_multiple("string") is None
    assert derive_is_multiple(None) is None


def test_classify_field_category():
    """Test the system, native and app field categories."""
    assert classify_field_category(NATIVE + "select", False) == FieldCategory.SYSTEM
    assert classify_field_category(NATIVE + "select", True) == FieldCategory.SOURCE_CUSTOM
    assert classify_field_category(None, True) == FieldCategory.SOURCE_CUSTOM
    assert classify_field_category("ari:cloud:ecosystem::extension/abc", True) == FieldCategory.APP_CUSTOM
    assert classify_field_category("com.vendor.plugin:widget", True) == FieldCategory.APP_CUSTOM


def test_normalize_field_format():
    """Test lower-casing and list alias folding of target formats."""
    assert normalize_field_format("list") == "enumeration"
    assert normalize_field_format(" Depending_List ") == "depending_enumeration"
    assert normalize_field_format("string") == "string"
    assert normalize_field_format("  ") is None
    assert normalize_field_format(None) is None
