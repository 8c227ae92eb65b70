"""
Position Tree Kernel — Payload Validation v1.0

Checks a position payload before it is handed to the API collaborator.
Returns a ValidationResult; never raises for bad data.

Rules:
  - name: required, 1..255 characters after trimming
  - description: at most 1000 characters
  - employee_full_name: 1..255 characters when given
  - employee_profile_url: absolute http(s) URL when given
  - custom_fields (structured list): custom_field_id required and a
    UUID; custom_field_value_id, linked_custom_field_id and
    linked_custom_field_value_id must be UUIDs
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional
from urllib.parse import urlparse

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)

NAME_MAX_LENGTH: int = 255
DESCRIPTION_MAX_LENGTH: int = 1000


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def is_valid_uuid(value: Any) -> bool:
    return isinstance(value, str) and bool(UUID_PATTERN.match(value))


def is_valid_string(value: Any, min_length: int = 1, max_length: Optional[int] = None) -> bool:
    if not isinstance(value, str):
        return False
    trimmed = value.strip()
    if len(trimmed) < min_length:
        return False
    if max_length is not None and len(trimmed) > max_length:
        return False
    return True


def is_valid_url(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip():
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def validate_structured_entries(entries: Any) -> ValidationResult:
    """Validate the structured custom-field list sent to the API."""
    if not isinstance(entries, list):
        return ValidationResult(False, ["Custom fields must be an array"])

    errors: List[str] = []
    for i, item in enumerate(entries):
        if not isinstance(item, Mapping):
            errors.append(f"Field at index {i} must be an object")
            continue

        field_id = item.get("custom_field_id")
        if not field_id:
            errors.append(f"Field at index {i} is missing custom_field_id")
        elif not is_valid_uuid(field_id):
            errors.append(f"Field at index {i} has invalid custom_field_id format")

        value_id = item.get("custom_field_value_id")
        if value_id and not is_valid_uuid(value_id):
            errors.append(f"Field at index {i} has invalid custom_field_value_id format")

        linked = item.get("linked_custom_fields") or []
        if not isinstance(linked, list):
            errors.append(f"Field at index {i} has non-array linked_custom_fields")
            continue
        for j, lf in enumerate(linked):
            if not isinstance(lf, Mapping):
                errors.append(f"Linked field at index {i}.{j} must be an object")
                continue
            lf_id = lf.get("linked_custom_field_id")
            if not lf_id:
                errors.append(f"Linked field at index {i}.{j} is missing linked_custom_field_id")
            elif not is_valid_uuid(lf_id):
                errors.append(f"Linked field at index {i}.{j} has invalid linked_custom_field_id format")
            for k, lv in enumerate(lf.get("linked_custom_field_values") or []):
                lv_id = lv.get("linked_custom_field_value_id") if isinstance(lv, Mapping) else None
                if not lv_id:
                    errors.append(
                        f"Linked value at index {i}.{j}.{k} is missing linked_custom_field_value_id"
                    )
                elif not is_valid_uuid(lv_id):
                    errors.append(
                        f"Linked value at index {i}.{j}.{k} has invalid linked_custom_field_value_id format"
                    )

    return ValidationResult(not errors, errors)


def validate_position(payload: Any) -> ValidationResult:
    """Validate a position create/update payload."""
    if not isinstance(payload, Mapping):
        return ValidationResult(False, ["Position data is required"])

    errors: List[str] = []

    if not is_valid_string(payload.get("name"), 1, NAME_MAX_LENGTH):
        errors.append(
            f"Position name is required and must be between 1 and {NAME_MAX_LENGTH} characters"
        )

    description = payload.get("description")
    if isinstance(description, str) and len(description) > DESCRIPTION_MAX_LENGTH:
        errors.append(f"Description must be less than {DESCRIPTION_MAX_LENGTH} characters")

    full_name = payload.get("employee_full_name")
    if full_name and not is_valid_string(full_name, 1, NAME_MAX_LENGTH):
        errors.append(
            f"Employee full name must be between 1 and {NAME_MAX_LENGTH} characters if provided"
        )

    url = payload.get("employee_profile_url")
    if url and not is_valid_url(url):
        errors.append("Employee profile URL must be a valid URL if provided")

    custom_fields = payload.get("custom_fields")
    if custom_fields:
        errors.extend(validate_structured_entries(custom_fields).errors)

    return ValidationResult(not errors, errors)
