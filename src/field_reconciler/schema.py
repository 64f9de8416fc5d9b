#!/usr/bin/env python3
"""
Schema validation for config and input snapshot files.

This module provides Pydantic models for validating:
- config.yaml: Main configuration file
- inputs snapshot: source fields, assignments, target fields, scope maps, usage
"""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

LOG_LEVELS = {"DEBUG", "INFO", "NOTICE", "WARNING", "ERROR", "CRITICAL"}


class ValidationError(Exception):
    """Custom validation error for clearer error messages."""

    pass


def _optional_id(value: Any) -> Any:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


# Config.yaml schema
class ConfigSchema(BaseModel):
    """Schema for config.yaml."""

    database_url: str = "sqlite:///data/field_mappings.db"
    inputs_path: str = "data/inputs.yaml"
    plan_output: str = "output/association_plan.yaml"
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a standard logging level name."""
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {sorted(LOG_LEVELS)}")
        return level


# Input snapshot schemas
class SourceFieldSchema(BaseModel):
    """Schema for one source field."""

    id: str
    name: str | None = None
    type: str | None = None
    subtype: str | None = None
    custom: bool = True
    category: str | None = None
    searchable: bool | None = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        """Accept numeric ids."""
        text = _optional_id(v)
        if text is None:
            raise ValueError("source field id must not be empty")
        return text

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str | None) -> str | None:
        """Validate category name."""
        if v is not None and v not in {"system", "source_custom", "app_custom"}:
            raise ValueError("category must be system, source_custom or app_custom")
        return v


class AssignmentSchema(BaseModel):
    """Schema for one field assignment (project/type context)."""

    field_id: str
    project_scope_id: str | None = None
    type_scope_id: str | None = None
    required: bool | None = None
    default_value: str | None = None
    allowed_values: dict[str, Any] | list[Any] | None = None

    @field_validator("field_id", "project_scope_id", "type_scope_id", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        """Accept numeric scope ids."""
        return _optional_id(v)

    @field_validator("default_value", mode="before")
    @classmethod
    def coerce_default(cls, v: Any) -> Any:
        """Accept scalar defaults of any type."""
        if v is None or isinstance(v, str):
            return v
        return str(v)


class TargetFieldSchema(BaseModel):
    """Schema for one existing target field."""

    model_config = ConfigDict(populate_by_name=True)

    id: int = Field(ge=1)
    name: str
    field_format: str | None = Field(
        default=None, validation_alias=AliasChoices("field_format", "format")
    )
    is_required: bool | None = None
    is_filter: bool | None = None
    is_for_all: bool | None = None
    is_multiple: bool | None = Field(
        default=None, validation_alias=AliasChoices("is_multiple", "multiple")
    )
    possible_values: list[str] = []
    default_value: str | None = None
    tracker_ids: list[int] = []
    project_ids: list[int] = []
    role_ids: list[int] = []

    @field_validator("possible_values", mode="before")
    @classmethod
    def coerce_possible_values(cls, v: Any) -> Any:
        """Accept option objects as well as plain labels."""
        if v is None:
            return []
        if isinstance(v, list):
            return [item.get("value") if isinstance(item, dict) else item for item in v]
        return v


class UsageSchema(BaseModel):
    """Schema for pre-aggregated usage counts."""

    total_issues: int = Field(default=0, ge=0)
    issues_with_value: int = Field(default=0, ge=0)
    issues_with_non_empty_value: int = Field(default=0, ge=0)
    counted_at: str | None = None


class InputsSchema(BaseModel):
    """Schema for a complete reconciliation input snapshot."""

    source_fields: list[SourceFieldSchema] = []
    assignments: list[AssignmentSchema] = []
    target_fields: list[TargetFieldSchema] = []
    project_map: dict[str, int] = {}
    tracker_map: dict[str, int] = {}
    usage: dict[str, UsageSchema] = {}

    @field_validator("project_map", "tracker_map", mode="before")
    @classmethod
    def coerce_map_keys(cls, v: Any) -> Any:
        """YAML turns numeric keys into ints; scope ids are compared as strings."""
        if isinstance(v, dict):
            return {str(key): value for key, value in v.items() if value is not None}
        return v


def validate_config(data: dict[str, Any]) -> ConfigSchema:
    """
    Validate config.yaml data.

    Args:
        data: Dictionary containing config data

    Returns:
        Validated ConfigSchema instance

    Raises:
        ValidationError: If validation fails
    """
    try:
        return ConfigSchema(**data)
    except Exception as e:
        raise ValidationError(f"Config validation failed: {e}") from e


def validate_inputs(data: dict[str, Any]) -> InputsSchema:
    """
    Validate a reconciliation input snapshot.

    Args:
        data: Dictionary containing the snapshot sections

    Returns:
        Validated InputsSchema instance

    Raises:
        ValidationError: If validation fails
    """
    try:
        return InputsSchema(**data)
    except Exception as e:
        raise ValidationError(f"Input snapshot validation failed: {e}") from e
