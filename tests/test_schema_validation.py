"""Tests for schema validation functionality."""

import pytest

from field_reconciler.schema import ValidationError, validate_config, validate_inputs


class TestConfigValidation:
    """Tests for config.yaml validation."""

    def test_defaults(self):
        """Test that an empty config validates to defaults."""
        result = validate_config({})
        assert result.database_url == "sqlite:///data/field_mappings.db"
        assert result.inputs_path == "data/inputs.yaml"
        assert result.log_level == "INFO"

    def test_log_level_is_upper_cased(self):
        """Test that log level names are accepted case-insensitively."""
        assert validate_config({"log_level": "debug"}).log_level == "DEBUG"

    def test_invalid_log_level(self):
        """Test that unknown log levels fail validation."""
        with pytest.raises(ValidationError) as exc_info:
            validate_config({"log_level": "chatty"})
        assert "Config validation failed" in str(exc_info.value)


class TestInputsValidation:
    """Tests for input snapshot validation."""

    def test_valid_snapshot(self):
        """Test that a complete snapshot passes validation."""
        data = {
            "source_fields": [
                {"id": "customfield_10010", "name": "Severity", "type": "option"},
                {"id": 10011, "name": "Numeric id"},
            ],
            "assignments": [
                {
                    "field_id": "customfield_10010",
                    "project_scope_id": 10000,
                    "type_scope_id": "10001",
                    "required": True,
                    "allowed_values": [{"id": "1", "value": "High"}],
                }
            ],
            "target_fields": [
                {"id": 5, "name": "Severity", "format": "list", "multiple": False, "possible_values": ["High"]}
            ],
            "project_map": {10000: 3},
            "tracker_map": {"10001": 1},
            "usage": {"customfield_10010": {"total_issues": 3, "issues_with_value": 1}},
        }
        result = validate_inputs(data)

        assert result.source_fields[1].id == "10011"
        assert result.assignments[0].project_scope_id == "10000"
        assert result.target_fields[0].field_format == "list"
        assert result.target_fields[0].is_multiple is False
        assert result.project_map == {"10000": 3}
        assert result.usage["customfield_10010"].issues_with_non_empty_value == 0

    def test_target_possible_values_accept_option_objects(self):
        """Test that target option objects are reduced to their values."""
        result = validate_inputs(
            {"target_fields": [{"id": 1, "name": "Area", "possible_values": [{"value": "A"}, "B"]}]}
        )
        assert result.target_fields[0].possible_values == ["A", "B"]

    def test_missing_source_id(self):
        """Test that a source field without id fails validation."""
        with pytest.raises(ValidationError):
            validate_inputs({"source_fields": [{"name": "No id"}]})

    def test_invalid_category(self):
        """Test that unknown categories fail validation."""
        with pytest.raises(ValidationError):
            validate_inputs({"source_fields": [{"id": "cf_1", "category": "plugin"}]})

    def test_invalid_target_id(self):
        """Test that target ids must be positive."""
        with pytest.raises(ValidationError):
            validate_inputs({"target_fields": [{"id": 0, "name": "Zero"}]})

    def test_negative_usage(self):
        """Test that usage counts cannot be negative."""
        with pytest.raises(ValidationError):
            validate_inputs({"usage": {"cf_1": {"total_issues": -1}}})
