"""Submission validation for station fields and completion rules.

Everything here is pure: functions take typed definitions plus the raw
captured values and return error lists. Malformed input never raises, the
caller decides how to surface the errors.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from routetrack.core.errors import FieldError
from routetrack.schemas.field import FieldDefinitionResponse
from routetrack.schemas.station import StationResponse

TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
FALSE_STRINGS = frozenset({"false", "0", "no", "off"})


@dataclass
class ValidationResult:
    valid: bool
    errors: list[FieldError] = field(default_factory=list)

    @classmethod
    def from_errors(cls, errors: list[FieldError]) -> "ValidationResult":
        return cls(valid=not errors, errors=errors)


def is_empty(value: Any) -> bool:
    """None and blank strings count as "not filled"."""
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _error(field_def: FieldDefinitionResponse, reason: str, message: str) -> FieldError:
    return FieldError(
        field_id=str(field_def.id),
        field_name=field_def.name,
        reason=reason,
        message=message,
    )


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if not isinstance(value, (int, float, str)):
        return None
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (OverflowError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _is_date(value: Any) -> bool:
    if isinstance(value, (date, datetime)):
        return True
    if not isinstance(value, str):
        return False
    text = value.strip()
    for parse in (date.fromisoformat, datetime.fromisoformat):
        try:
            parse(text)
            return True
        except ValueError:
            continue
    return False


def is_boolean_like(value: Any) -> bool:
    if isinstance(value, bool):
        return True
    if isinstance(value, int):
        return value in (0, 1)
    if isinstance(value, str):
        return value.strip().lower() in TRUE_STRINGS | FALSE_STRINGS
    return False


def _check_rules(field_def: FieldDefinitionResponse, value: Any) -> list[FieldError]:
    rules = field_def.validation_rules
    if rules is None:
        return []

    errors: list[FieldError] = []
    if field_def.type == "number":
        number = _as_number(value)
        if number is not None and rules.min is not None and number < rules.min:
            errors.append(_error(field_def, "below_minimum", f"{field_def.name} must be >= {rules.min:g}"))
        if number is not None and rules.max is not None and number > rules.max:
            errors.append(_error(field_def, "above_maximum", f"{field_def.name} must be <= {rules.max:g}"))
    elif field_def.type in ("text", "textarea") and isinstance(value, str):
        if rules.min_length is not None and len(value) < rules.min_length:
            errors.append(
                _error(field_def, "too_short", f"{field_def.name} needs at least {rules.min_length} characters")
            )
        if rules.max_length is not None and len(value) > rules.max_length:
            errors.append(
                _error(field_def, "too_long", f"{field_def.name} allows at most {rules.max_length} characters")
            )
        if rules.pattern:
            try:
                matched = re.fullmatch(rules.pattern, value) is not None
            except re.error:
                matched = True  # an invalid pattern never rejects a value
            if not matched:
                errors.append(_error(field_def, "pattern_mismatch", f"{field_def.name} has an invalid format"))
    return errors


def validate_value(field_def: FieldDefinitionResponse, value: Any) -> list[FieldError]:
    """Type-check one non-empty value against its field definition."""
    kind = field_def.type

    if kind in ("text", "textarea"):
        if not isinstance(value, str):
            return [_error(field_def, "invalid_type", f"{field_def.name} must be text")]
    elif kind == "number":
        if _as_number(value) is None:
            return [_error(field_def, "invalid_number", f"{field_def.name} must be numeric")]
    elif kind == "date":
        if not _is_date(value):
            return [_error(field_def, "invalid_date", f"{field_def.name} must be an ISO-8601 date")]
    elif kind == "select":
        if not isinstance(value, str) or value not in (field_def.options or []):
            return [_error(field_def, "invalid_option", f"{field_def.name} must be one of the options")]
    elif kind == "checkbox":
        if not is_boolean_like(value):
            return [_error(field_def, "invalid_boolean", f"{field_def.name} must be true or false")]

    return _check_rules(field_def, value)


def apply_defaults(station: StationResponse, captured: dict[str, Any]) -> dict[str, Any]:
    """Fill missing values from field defaults. Returns a new mapping."""
    merged = dict(captured)
    for field_def in station.fields:
        key = str(field_def.id)
        if field_def.default_value is not None and is_empty(merged.get(key)):
            merged[key] = field_def.default_value
    return merged


def check_types(station: StationResponse, captured: dict[str, Any]) -> list[FieldError]:
    """Type-check every provided value; unknown field ids are errors too."""
    errors: list[FieldError] = []
    for key, value in captured.items():
        field_def = station.field_by_id(key)
        if field_def is None:
            errors.append(
                FieldError(
                    field_id=str(key),
                    reason="unknown_field",
                    message=f"Field {key} does not belong to station {station.name}",
                )
            )
            continue
        if not is_empty(value):
            errors.extend(validate_value(field_def, value))
    return errors


def validate_submission(station: StationResponse, captured: dict[str, Any]) -> ValidationResult:
    """Apply the station's completion rule to the captured values.

    ``all_filled``: every required field is present and valid.
    ``custom``: values are only type-checked; completeness is judged by a
    person through an explicit mark-complete, so this never gates on
    required fields.
    """
    errors = check_types(station, captured)

    if station.completion_rule == "all_filled":
        for field_def in station.fields:
            if field_def.required and is_empty(captured.get(str(field_def.id))):
                errors.append(_error(field_def, "required", f"{field_def.name} is required"))

    return ValidationResult.from_errors(errors)
