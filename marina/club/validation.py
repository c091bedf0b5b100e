"""Input validation for submitted marina forms.

Each ``validate_*`` function takes the raw submitted mapping (form strings or
plain Python values) and returns a :class:`ValidationResult` holding the
cleaned values and any field-level messages. Validators never touch the
database; reference checks such as "does this member exist" are done by
:class:`marina.club.system.MarinaSystem` before it persists anything.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping


@dataclass
class ValidationResult:
    values: dict[str, Any] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, name: str, message: str) -> None:
        self.errors.setdefault(name, message)


def _is_blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def _text(result: ValidationResult, data: Mapping[str, Any], name: str, label: str, *, required: bool) -> None:
    raw = data.get(name)
    if _is_blank(raw):
        if required:
            result.add_error(name, f"{label} is required")
        result.values[name] = None
        return
    result.values[name] = str(raw).strip()


def _integer(result: ValidationResult, data: Mapping[str, Any], name: str, label: str, *, required: bool) -> None:
    raw = data.get(name)
    if _is_blank(raw):
        if required:
            result.add_error(name, f"{label} is required")
        result.values[name] = None
        return
    try:
        result.values[name] = int(raw)
    except (TypeError, ValueError):
        result.add_error(name, f"{label} must be a whole number")
        result.values[name] = None


def _number(result: ValidationResult, data: Mapping[str, Any], name: str, label: str, *, required: bool) -> None:
    raw = data.get(name)
    if _is_blank(raw):
        if required:
            result.add_error(name, f"{label} is required")
        result.values[name] = None
        return
    try:
        value = float(raw)
    except (TypeError, ValueError):
        value = math.nan
    if not math.isfinite(value):
        result.add_error(name, f"{label} must be a number")
        result.values[name] = None
        return
    result.values[name] = value


def validate_member(data: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    _text(result, data, "first_name", "First name", required=True)
    _text(result, data, "last_name", "Last name", required=True)
    return result


def validate_boat_type(data: Mapping[str, Any]) -> ValidationResult:
    result = ValidationResult()
    _text(result, data, "name", "Name", required=True)
    _text(result, data, "description", "Description", required=False)
    return result


def validate_boat(data: Mapping[str, Any]) -> ValidationResult:
    """Check required fields and numeric types of a boat submission."""

    result = ValidationResult()
    _integer(result, data, "boat_id", "Boat id", required=False)
    _integer(result, data, "member_id", "Member", required=True)
    _text(result, data, "boat_class", "Boat class", required=True)
    _text(result, data, "hull_colour", "Hull colour", required=False)
    _integer(result, data, "sail_number", "Sail number", required=False)
    _number(result, data, "hull_length", "Hull length", required=True)
    _integer(result, data, "boat_type_id", "Boat type", required=True)
    _text(result, data, "parking_code", "Parking code", required=False)
    _integer(result, data, "row_version", "Row version", required=False)
    hull_length = result.values.get("hull_length")
    if hull_length is not None and hull_length <= 0:
        result.add_error("hull_length", "Hull length must be greater than zero")
    return result


def validate_parking(data: Mapping[str, Any]) -> ValidationResult:
    """Check a parking submission; an empty code is reported, never stored."""

    result = ValidationResult()
    raw_code = data.get("parking_code")
    if _is_blank(raw_code):
        result.add_error("parking_code", "Please insert a parking code")
        result.values["parking_code"] = None
    else:
        result.values["parking_code"] = str(raw_code).strip()
        # Codes are used as URL path segments.
        if "/" in result.values["parking_code"]:
            result.add_error("parking_code", "Parking code must not contain \"/\"")
    _integer(result, data, "boat_type_id", "Boat type", required=True)
    _text(result, data, "actual_boat_id", "Actual boat", required=False)
    _integer(result, data, "row_version", "Row version", required=False)
    return result


__all__ = [
    "ValidationResult",
    "validate_boat",
    "validate_boat_type",
    "validate_member",
    "validate_parking",
]
