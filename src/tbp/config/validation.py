"""Schema validation of a merged snapshot."""

from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Any

from tbp.config.convert import FLOAT32_MAX, INT_RANGES, format_value
from tbp.config.errors import ConstraintViolation, RequiredFieldMissing
from tbp.config.schema import Field, Metadata
from tbp.logging import get_logger

_log = get_logger("config.validation")

_INT_NAMES = {"int", "integer", "unsigned", *INT_RANGES}
_FLOAT_NAMES = {"float", "float32", "float64", "number"}
_STRING_NAMES = {"string", "str"}
_BOOL_NAMES = {"bool", "boolean"}
_DURATION_NAMES = {"duration"}
_TIME_NAMES = {"time", "timestamp", "datetime"}
_LIST_NAMES = {
    "list", "slice", "array",
    "stringslice", "[]string", "strings",
    "intslice", "[]int", "integers",
    "floatslice", "[]float64", "floats",
    "boolslice", "[]bool", "booleans",
}  # fmt: skip
_MAP_NAMES = {"map", "object", "dict"}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def check_type(type_name: str, value: Any) -> str | None:
    """Check value against a canonical type name.

    Returns:
        None when the value fits, otherwise a description of the mismatch.
    """
    name = type_name.lower()
    actual = type(value).__name__

    if name in ("", "any"):
        return None
    if name in _INT_NAMES:
        if not isinstance(value, int) or isinstance(value, bool):
            return f"must be of type {type_name}, got {actual}"
        width = "uint" if name == "unsigned" else "int" if name == "integer" else name
        low, high = INT_RANGES[width]
        if not low <= value <= high:
            return f"value {value} is out of range for {type_name}"
        return None
    if name in _FLOAT_NAMES:
        if not _is_number(value):
            return f"must be of type {type_name}, got {actual}"
        if name == "float32" and abs(value) > FLOAT32_MAX:
            return f"value {value} is out of range for float32"
        return None
    if name in _STRING_NAMES:
        return None if isinstance(value, str) else f"must be of type {type_name}, got {actual}"
    if name in _BOOL_NAMES:
        return None if isinstance(value, bool) else f"must be of type {type_name}, got {actual}"
    if name in _DURATION_NAMES:
        return None if isinstance(value, timedelta) else f"must be of type {type_name}, got {actual}"
    if name in _TIME_NAMES:
        return None if isinstance(value, date) else f"must be of type {type_name}, got {actual}"
    if name in _LIST_NAMES:
        return None if isinstance(value, list) else f"must be of type {type_name}, got {actual}"
    if name in _MAP_NAMES:
        return None if isinstance(value, dict) else f"must be of type {type_name}, got {actual}"
    return f"declares unknown type {type_name!r}"


def validate_field(spec: Field, values: dict[str, Any]) -> list[Exception]:
    """Check one declared field against the snapshot."""
    if spec.name not in values:
        if spec.required:
            return [RequiredFieldMissing(spec.name)]
        return []

    value = values[spec.name]
    errors: list[Exception] = []

    if spec.deprecated:
        _log.warning("Configuration field '%s' is deprecated", spec.name)

    if spec.type:
        problem = check_type(spec.type, value)
        if problem:
            errors.append(ConstraintViolation(spec.name, problem))

    if _is_number(value):
        if spec.min is not None and value < spec.min:
            errors.append(ConstraintViolation(spec.name, f"must be >= {spec.min}, got {value}"))
        if spec.max is not None and value > spec.max:
            errors.append(ConstraintViolation(spec.name, f"must be <= {spec.max}, got {value}"))

    if spec.enum is not None:
        allowed = [format_value(option) for option in spec.enum]
        if format_value(value) not in allowed:
            errors.append(
                ConstraintViolation(spec.name, f"must be one of {allowed}, got {value!r}")
            )

    if spec.pattern is not None:
        try:
            matched = re.fullmatch(spec.pattern, format_value(value)) is not None
        except re.error as e:
            errors.append(ConstraintViolation(spec.name, f"has invalid pattern {spec.pattern!r}: {e}"))
        else:
            if not matched:
                errors.append(
                    ConstraintViolation(spec.name, f"must match pattern {spec.pattern!r}")
                )

    return errors


def validate_values(values: dict[str, Any], metadata: Metadata) -> list[Exception]:
    """Run every declared field and custom validator.

    All problems are collected; nothing fails fast.
    """
    errors: list[Exception] = []

    for spec in metadata.fields.values():
        errors.extend(validate_field(spec, values))

    for validator in metadata.validators:
        for key, value in values.items():
            try:
                validator(key, value)
            except Exception as e:
                errors.append(ConstraintViolation(key, f"failed validation: {e}"))

    return errors
