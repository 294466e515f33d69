"""Bind merged configuration onto dataclass instances.

Fields are described with ``dataclasses.field`` metadata, most easily via
setting():

    @dataclass
    class ServerSettings:
        host: str = setting("host", default="localhost")
        port: Uint16 = setting("port", required=True)
        timeout: timedelta = setting("timeout", default="30s")

    @dataclass
    class AppSettings:
        server: ServerSettings = field(default_factory=ServerSettings)
        debug: bool = False  # key "debug"
        internal: str = setting("-")  # skipped

Metadata keys:
    config: dotted key relative to the enclosing prefix; "-" skips the field.
        Defaults to the lower-cased field name.
    default: string literal used when the key is missing.
    required: fail when the key is missing and there is no default.
"""

from __future__ import annotations

import dataclasses
import typing
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path
from types import NoneType, UnionType
from typing import Any

from tbp.config import convert
from tbp.config.errors import RequiredFieldMissing, TypeConversionError

_MISSING_DEFAULTS = {
    str: "",
    int: 0,
    float: 0.0,
    bool: False,
}


def setting(
    key: str | None = None,
    *,
    default: str | None = None,
    required: bool = False,
    value: Any = dataclasses.MISSING,
) -> Any:
    """Declare a bound dataclass field.

    Args:
        key: Dotted key, "-" to skip, None for the lower-cased field name.
        default: Literal applied when the key is missing from the configuration.
        required: Report the field when the key is missing and there is no default.
        value: Python-side default of the attribute itself (None if omitted).
    """
    metadata: dict[str, Any] = {"required": required}
    if key is not None:
        metadata["config"] = key
    if default is not None:
        metadata["default"] = default
    return dataclasses.field(
        default=None if value is dataclasses.MISSING else value,
        metadata=metadata,
    )


def _unwrap_optional(tp: Any) -> Any:
    origin = typing.get_origin(tp)
    if origin in (typing.Union, UnionType):
        args = [arg for arg in typing.get_args(tp) if arg is not NoneType]
        if len(args) == 1:
            return args[0]
    return tp


def _type_label(tp: Any) -> str:
    if tp in convert.WIDTH_TYPES:
        return convert.WIDTH_TYPES[tp]
    return getattr(tp, "__name__", str(tp))


def convert_value(tp: Any, value: Any) -> Any:
    """Convert a stored value to a dataclass field type.

    Raises:
        ValueError: If the value does not fit the type.
    """
    tp = _unwrap_optional(tp)

    if tp is Any or tp is object:
        return value
    if tp in convert.WIDTH_TYPES:
        width = convert.WIDTH_TYPES[tp]
        if width == "float32":
            return convert.check_float32(convert.to_float(value))
        return convert.check_int_range(convert.to_int(value), width)
    if tp is str:
        return convert.format_value(value)
    if tp is bool:
        return convert.to_bool(value)
    if tp is int:
        return convert.check_int_range(convert.to_int(value), "int")
    if tp is float:
        return convert.to_float(value)
    if tp is timedelta:
        return convert.to_duration(value)
    if tp is datetime:
        return convert.to_timestamp(value)
    if tp is date:
        return convert.to_timestamp(value).date()
    if tp is Path:
        return Path(convert.format_value(value))

    origin = typing.get_origin(tp)
    if origin is None and isinstance(tp, type) and issubclass(tp, Enum):
        try:
            return tp(value)
        except ValueError:
            pass
        try:
            return tp[convert.format_value(value).upper()]
        except KeyError:
            raise ValueError(f"{value!r} is not a valid {tp.__name__}") from None

    if origin in (list, tuple, set, frozenset):
        args = typing.get_args(tp)
        item_type = args[0] if args else Any
        items = convert.parse_string_slice(value) if isinstance(value, str) else value
        if not isinstance(items, (list, tuple)):
            raise ValueError(f"expected a list, got {type(value).__name__}")
        converted = []
        for index, item in enumerate(items):
            try:
                converted.append(convert_value(item_type, item))
            except (ValueError, KeyError) as e:
                raise ValueError(f"element {index} {item!r}: {e}") from e
        return origin(converted)
    if tp is dict or origin is dict:
        if not isinstance(value, dict):
            raise ValueError(f"expected a mapping, got {type(value).__name__}")
        return dict(value)

    raise ValueError(f"unsupported field type {_type_label(tp)}")


def _is_struct(tp: Any) -> bool:
    return typing.get_origin(tp) is None and isinstance(tp, type) and dataclasses.is_dataclass(tp)


def bind(target: Any, values: dict[str, Any], prefix: str = "") -> list[Exception]:
    """Populate a dataclass instance from flat values.

    Every field is attempted; problems are returned instead of raised.

    Returns:
        The problems found, empty on success.
    """
    errors: list[Exception] = []
    hints = typing.get_type_hints(type(target))

    for spec in dataclasses.fields(target):
        meta = spec.metadata
        key = meta.get("config") or spec.name.lower()
        if key == "-":
            continue
        full_key = f"{prefix}.{key}" if prefix else key
        declared = hints.get(spec.name, Any)
        tp = _unwrap_optional(declared)

        if _is_struct(tp):
            nested = getattr(target, spec.name, None)
            if not dataclasses.is_dataclass(nested):
                try:
                    nested = tp()
                except TypeError as e:
                    errors.append(
                        TypeConversionError(full_key, None, tp.__name__, f"cannot construct: {e}")
                    )
                    continue
                setattr(target, spec.name, nested)
            errors.extend(bind(nested, values, full_key))
            continue

        if full_key in values:
            value = values[full_key]
        elif (tp is dict or typing.get_origin(tp) is dict) and _has_children(values, full_key):
            value = _children(values, full_key)
        elif meta.get("default") is not None:
            value = meta["default"]
        elif meta.get("required"):
            errors.append(RequiredFieldMissing(full_key))
            continue
        else:
            # Missing and optional: non-Optional scalars get their zero value
            base = getattr(tp, "__supertype__", tp)
            if (
                declared is tp
                and getattr(target, spec.name, None) is None
                and base in _MISSING_DEFAULTS
            ):
                setattr(target, spec.name, _MISSING_DEFAULTS[base])
            continue

        try:
            setattr(target, spec.name, convert_value(tp, value))
        except (ValueError, KeyError) as e:
            errors.append(TypeConversionError(full_key, value, _type_label(tp), str(e)))

    return errors


def _has_children(values: dict[str, Any], prefix: str) -> bool:
    start = prefix + "."
    return any(key.startswith(start) for key in values)


def _children(values: dict[str, Any], prefix: str) -> dict[str, Any]:
    start = prefix + "."
    return {key[len(start) :]: value for key, value in values.items() if key.startswith(start)}
