#!/usr/bin/env python3
"""
Field classification for field-reconciler.

Maps a source field's declared type and subtype onto a target field format.
Subtypes are checked first (substring match against the subtype table), then
the coarse declared type. Every input yields a classification; anything the
tables do not cover is flagged for manual review instead of raising.
"""

from dataclasses import dataclass
from typing import Optional

from .models import FieldCategory

NATIVE_CUSTOM_PREFIX = "com.atlassian.jira.plugin.system.customfieldtypes:"
APP_CUSTOM_PREFIX = "ari:"

PICKER_NOTE = "User and group pickers require manual mapping to target user/group custom fields."
CASCADING_NOTE = "Cascading selects require depending custom field support on the target tracker."
URL_NOTE = "Review whether the target field should use the URL format or remain a plain string."

FORMAT_ALIASES = {
    "list": "enumeration",
    "depending_list": "depending_enumeration",
}

MULTIPLE_TYPES = {"array", "object"}
SINGLE_TYPES = {
    "any",
    "team",
    "option",
    "option2",
    "option-with-child",
    "sd-customerrequesttype",
    "sd-approvals",
}


@dataclass
class FieldClassification:
    """Result of classifying a source field."""

    target_format: Optional[str] = None
    is_multiple: Optional[bool] = None
    requires_possible_values: bool = False
    requires_manual_review: bool = False
    note: Optional[str] = None
    is_cascading: bool = False


def _enumeration(multiple: Optional[bool] = None, note: Optional[str] = None) -> FieldClassification:
    return FieldClassification(
        target_format="enumeration",
        is_multiple=multiple,
        requires_possible_values=True,
        note=note,
    )


def _cascading() -> FieldClassification:
    return FieldClassification(
        target_format="depending_enumeration",
        requires_possible_values=True,
        note=CASCADING_NOTE,
        is_cascading=True,
    )


def _manual(note: str) -> FieldClassification:
    return FieldClassification(requires_manual_review=True, note=note)


# Subtype tokens, checked in order; first hit wins
SUBTYPE_RULES = (
    ((":textarea",), lambda: FieldClassification(target_format="text")),
    ((":textfield",), lambda: FieldClassification(target_format="string")),
    ((":datepicker",), lambda: FieldClassification(target_format="date")),
    ((":datetime",), lambda: FieldClassification(target_format="datetime")),
    ((":float",), lambda: FieldClassification(target_format="float")),
    # Also matches multiuserpicker and multigrouppicker
    (("grouppicker", "userpicker"), lambda: _manual(PICKER_NOTE)),
    ((":multiselect", ":checkboxes"), lambda: _enumeration(multiple=True)),
    ((":labels", ":select", ":radiobuttons"), lambda: _enumeration()),
    ((":cascadingselect",), _cascading),
    ((":url",), lambda: FieldClassification(target_format="string", note=URL_NOTE)),
)

TYPE_RULES = {
    "string": lambda: FieldClassification(target_format="string"),
    "number": lambda: FieldClassification(target_format="float"),
    "date": lambda: FieldClassification(target_format="date"),
    "datetime": lambda: FieldClassification(target_format="datetime"),
    "array": lambda: _enumeration(
        note="Array-type field mapped to an enumeration; deriving options from allowed values."
    ),
    "object": lambda: _enumeration(
        note="Object-type field; using allowed values from the source create metadata."
    ),
    "option": lambda: _enumeration(
        note="Single-select option field; populating the enumeration from allowed values."
    ),
    "option2": lambda: _enumeration(
        note="Single-select option field; populating the enumeration from allowed values."
    ),
    "team": lambda: _enumeration(
        note="App or service desk selector; option labels come from allowed values."
    ),
    "sd-customerrequesttype": lambda: _enumeration(
        note="App or service desk selector; option labels come from allowed values."
    ),
    "sd-approvals": lambda: FieldClassification(
        target_format="text",
        note="Service desk approvals payload; defaulting to text.",
    ),
    "any": lambda: FieldClassification(
        target_format="text",
        note='Generic "any" schema; defaulting to text capture.',
    ),
    "option-with-child": _cascading,
}


def derive_is_multiple(field_type: Optional[str]) -> Optional[bool]:
    """Multiplicity implied by a coarse declared type, or None when the type says nothing."""
    normalized = field_type.strip().lower() if field_type else None
    if normalized in MULTIPLE_TYPES:
        return True
    if normalized in SINGLE_TYPES:
        return False
    return None


def classify_field(field_type: Optional[str], subtype: Optional[str]) -> FieldClassification:
    """
    Classify a source field by its declared type and subtype.

    Args:
        field_type: Coarse declared type (string, number, array, option, ...)
        subtype: Declared subtype token, usually a namespaced custom type key

    Returns:
        FieldClassification; never raises
    """
    normalized_subtype = subtype.lower() if isinstance(subtype, str) else None
    normalized_type = field_type.strip().lower() if isinstance(field_type, str) else None

    result = None
    if normalized_subtype:
        for tokens, build in SUBTYPE_RULES:
            if any(token in normalized_subtype for token in tokens):
                result = build()
                break

    if result is None:
        if not normalized_type:
            result = _manual("Unable to detect the source schema type; review manually.")
        elif normalized_type in TYPE_RULES:
            result = TYPE_RULES[normalized_type]()
        else:
            result = _manual(f'Unhandled source schema type "{field_type}"; review manually.')

    if result.is_multiple is None:
        result.is_multiple = derive_is_multiple(normalized_type)

    return result


def classify_field_category(schema_custom: Optional[str], is_custom: bool) -> FieldCategory:
    """Decide whether a field is a system field, a native custom field or an app-provided one."""
    if not is_custom:
        return FieldCategory.SYSTEM

    key = (schema_custom or "").strip().lower()
    if key.startswith(APP_CUSTOM_PREFIX):
        return FieldCategory.APP_CUSTOM
    if not key or key.startswith(NATIVE_CUSTOM_PREFIX):
        return FieldCategory.SOURCE_CUSTOM
    # Anything else is contributed by a marketplace app
    return FieldCategory.APP_CUSTOM


def normalize_field_format(field_format: Optional[str]) -> Optional[str]:
    """Lower-case a target format and fold the list aliases onto their enumeration names."""
    if field_format is None:
        return None
    normalized = field_format.strip().lower()
    if not normalized:
        return None
    return FORMAT_ALIASES.get(normalized, normalized)
