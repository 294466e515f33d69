"""Value coercion shared by sources, typed getters and dataclass binding.

Parsers take strings and raise ValueError with a readable message; the
``to_*`` helpers accept any stored value and widen across the numeric family.
Callers wrap the ValueError into a TypeConversionError that names the key.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, NewType

# Fixed-width markers for dataclass binding, e.g. ``port: Uint16 = 0``
Int8 = NewType("Int8", int)
Int16 = NewType("Int16", int)
Int32 = NewType("Int32", int)
Int64 = NewType("Int64", int)
Uint = NewType("Uint", int)
Uint8 = NewType("Uint8", int)
Uint16 = NewType("Uint16", int)
Uint32 = NewType("Uint32", int)
Uint64 = NewType("Uint64", int)
Float32 = NewType("Float32", float)

INT_RANGES: dict[str, tuple[int, int]] = {
    "int": (-(2**63), 2**63 - 1),
    "int8": (-(2**7), 2**7 - 1),
    "int16": (-(2**15), 2**15 - 1),
    "int32": (-(2**31), 2**31 - 1),
    "int64": (-(2**63), 2**63 - 1),
    "uint": (0, 2**64 - 1),
    "uint8": (0, 2**8 - 1),
    "uint16": (0, 2**16 - 1),
    "uint32": (0, 2**32 - 1),
    "uint64": (0, 2**64 - 1),
}

FLOAT32_MAX = 3.4028234663852886e38

WIDTH_TYPES: dict[Any, str] = {
    Int8: "int8",
    Int16: "int16",
    Int32: "int32",
    Int64: "int64",
    Uint: "uint",
    Uint8: "uint8",
    Uint16: "uint16",
    Uint32: "uint32",
    Uint64: "uint64",
    Float32: "float32",
}

TRUE_STRINGS = frozenset({"true", "yes", "1", "on", "enable", "enabled", "y", "t"})
FALSE_STRINGS = frozenset({"false", "no", "0", "off", "disable", "disabled", "n", "f", ""})

_INT_RE = re.compile(r"[+-]?\d+")
_FLOAT_RE = re.compile(
    r"[+-]?(?:\d+\.?\d*(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?|inf|infinity|nan)",
    re.IGNORECASE,
)

# Microseconds per unit
_DURATION_UNITS = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,  # micro sign
    "μs": 1,  # greek mu
    "ms": 1_000,
    "s": 1_000_000,
    "m": 60_000_000,
    "h": 3_600_000_000,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

_RFC3339 = re.compile(
    r"(\d{4}-\d{2}-\d{2})[Tt](\d{2}:\d{2}:\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})"
)
_FALLBACK_LAYOUTS = ("%Y-%m-%dT%H:%M:%SZ", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d")

SUPPORTED_TYPE_HINTS = (
    "string", "str",
    "int", "integer", "int8", "int16", "int32", "int64",
    "uint", "unsigned", "uint8", "uint16", "uint32", "uint64",
    "float32", "float", "float64",
    "bool", "boolean",
    "duration",
    "time", "timestamp",
    "stringslice", "[]string", "strings",
    "intslice", "[]int", "integers",
    "floatslice", "[]float64", "floats",
    "boolslice", "[]bool", "booleans",
)  # fmt: skip


def parse_bool(value: str) -> bool:
    """Parse a boolean from the accepted vocabulary (case-insensitive)."""
    lower = value.strip().lower()
    if lower in TRUE_STRINGS:
        return True
    if lower in FALSE_STRINGS:
        return False
    raise ValueError(
        f"cannot convert {value!r} to boolean - supported values: "
        "true/false, yes/no, 1/0, on/off, enable/disable, y/n, t/f"
    )


def parse_int(value: str) -> int:
    """Parse a base-10 integer; underscores and decimal points are rejected."""
    if not _INT_RE.fullmatch(value):
        raise ValueError(f"invalid integer {value!r}")
    return int(value)


def parse_float(value: str) -> float:
    if not _FLOAT_RE.fullmatch(value):
        raise ValueError(f"invalid float {value!r}")
    return float(value)


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as "300ms", "1.5h" or "2h45m".

    Valid units are "ns", "us" (or "µs"), "ms", "s", "m", "h". A bare "0"
    is accepted; any other number needs a unit.
    """
    text = value
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    try:
        return timedelta(microseconds=sign * total)
    except OverflowError as e:
        raise ValueError(f"invalid duration {value!r}: out of range") from e


def format_duration(value: timedelta) -> str:
    """Format a timedelta the way parse_duration() reads it back, e.g. "1h30m0s"."""
    micros = value // timedelta(microseconds=1)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)
    if micros < 1_000:
        return f"{sign}{micros}µs"
    if micros < 1_000_000:
        return f"{sign}{_trim_float(micros / 1_000)}ms"

    hours, rest = divmod(micros, 3_600_000_000)
    minutes, rest = divmod(rest, 60_000_000)
    out = sign
    if hours:
        out += f"{hours}h"
    if hours or minutes:
        out += f"{minutes}m"
    return out + f"{_trim_float(rest / 1_000_000)}s"


def _trim_float(number: float) -> str:
    return f"{number:.6f}".rstrip("0").rstrip(".")


def parse_timestamp(value: str) -> datetime:
    """Parse RFC3339 / RFC3339Nano, then the fallback layouts.

    Fallback layouts without an offset are interpreted as UTC.
    """
    match = _RFC3339.fullmatch(value)
    if match:
        day, clock, fraction, offset = match.groups()
        micros = int((fraction or "0")[:6].ljust(6, "0"))
        if offset in ("Z", "z"):
            tz = timezone.utc
        else:
            hours, minutes = int(offset[1:3]), int(offset[4:6])
            delta = timedelta(hours=hours, minutes=minutes)
            tz = timezone(-delta if offset[0] == "-" else delta)
        try:
            parsed = datetime.strptime(f"{day}T{clock}", "%Y-%m-%dT%H:%M:%S")
        except ValueError:
            pass
        else:
            return parsed.replace(microsecond=micros, tzinfo=tz)

    for layout in _FALLBACK_LAYOUTS:
        try:
            return datetime.strptime(value, layout).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    raise ValueError(f"failed to parse {value!r} as time - supported formats: RFC3339, ISO date")


def parse_string_slice(value: str) -> list[str]:
    """Split on commas, trim elements and drop empty ones."""
    return [part.strip() for part in value.split(",") if part.strip()]


def _parse_slice(value: str, parse: Any, label: str) -> list[Any]:
    result = []
    for index, part in enumerate(value.split(",")):
        trimmed = part.strip()
        if not trimmed:
            continue
        try:
            result.append(parse(trimmed))
        except ValueError as e:
            raise ValueError(
                f"failed to convert {trimmed!r} (element {index}) to {label} in slice"
            ) from e
    return result


def parse_int_slice(value: str) -> list[int]:
    return _parse_slice(value, lambda s: check_int_range(parse_int(s), "int"), "integer")


def parse_float_slice(value: str) -> list[float]:
    return _parse_slice(value, parse_float, "float")


def parse_bool_slice(value: str) -> list[bool]:
    return _parse_slice(value, parse_bool, "boolean")


def check_int_range(value: int, width: str) -> int:
    """Return value unchanged, or raise if it does not fit the named width."""
    low, high = INT_RANGES[width]
    if not low <= value <= high:
        raise ValueError(f"value {value} overflows {width} (range {low}..{high})")
    return value


def check_float32(value: float) -> float:
    if abs(value) > FLOAT32_MAX and value not in (float("inf"), float("-inf")):
        raise ValueError(f"value {value} overflows float32")
    return value


def auto_convert(value: str) -> Any:
    """Detect the most specific type for a raw environment string.

    Order: boolean, integer, float, duration, comma-separated list, string.
    An empty string stays an empty string.
    """
    if value == "":
        return value

    try:
        return parse_bool(value)
    except ValueError:
        pass

    # "123.0" must stay a float
    if "." not in value:
        try:
            number = parse_int(value)
        except ValueError:
            pass
        else:
            low, high = INT_RANGES["int64"]
            if low <= number <= high:
                return number

    try:
        return parse_float(value)
    except ValueError:
        pass

    if any(c in value for c in "hms") or value.endswith(("us", "ns", "µs")):
        try:
            return parse_duration(value)
        except ValueError:
            pass

    if "," in value:
        parts = parse_string_slice(value)
        if len(parts) > 1:
            return parts

    return value


def convert_by_hint(value: str, hint: str) -> Any:
    """Convert a raw string according to an explicit type hint."""
    name = hint.lower()

    if name in ("string", "str"):
        return value
    if name in ("int", "integer"):
        return check_int_range(parse_int(value), "int")
    if name in ("int8", "int16", "int32", "int64", "uint8", "uint16", "uint32", "uint64"):
        return check_int_range(parse_int(value), name)
    if name in ("uint", "unsigned"):
        return check_int_range(parse_int(value), "uint")
    if name == "float32":
        return check_float32(parse_float(value))
    if name in ("float", "float64"):
        return parse_float(value)
    if name in ("bool", "boolean"):
        return parse_bool(value)
    if name == "duration":
        return parse_duration(value)
    if name in ("time", "timestamp"):
        return parse_timestamp(value)
    if name in ("stringslice", "[]string", "strings"):
        return parse_string_slice(value)
    if name in ("intslice", "[]int", "integers"):
        return parse_int_slice(value)
    if name in ("floatslice", "[]float64", "floats"):
        return parse_float_slice(value)
    if name in ("boolslice", "[]bool", "booleans"):
        return parse_bool_slice(value)

    raise ValueError(
        f"unsupported type hint {hint!r} - supported types: {', '.join(SUPPORTED_TYPE_HINTS)}"
    )


def format_value(value: Any) -> str:
    """Render a stored value as a string (booleans lower-case, lists comma-joined)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, timedelta):
        return format_duration(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return ",".join(format_value(item) for item in value)
    return str(value)


def to_int(value: Any) -> int:
    """Coerce a stored value to int.

    Floats are accepted only when they carry no fractional part.
    """
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValueError(f"{value!r} has a fractional part")
    if isinstance(value, str):
        return parse_int(value.strip())
    raise ValueError(f"unsupported type {type(value).__name__}")


def to_float(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_float(value.strip())
    raise ValueError(f"unsupported type {type(value).__name__}")


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        return parse_bool(value)
    raise ValueError(f"unsupported type {type(value).__name__}")


def to_duration(value: Any) -> timedelta:
    """Coerce to timedelta; plain numbers are taken as seconds."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError("boolean is not a duration")
    if isinstance(value, (int, float)):
        try:
            return timedelta(seconds=value)
        except OverflowError as e:
            raise ValueError(f"duration {value!r} out of range") from e
    if isinstance(value, str):
        return parse_duration(value.strip())
    raise ValueError(f"unsupported type {type(value).__name__}")


def to_timestamp(value: Any) -> datetime:
    """Coerce to datetime; plain numbers are taken as Unix seconds (UTC)."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        raise ValueError("boolean is not a timestamp")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"timestamp {value!r} out of range") from e
    if isinstance(value, str):
        return parse_timestamp(value.strip())
    raise ValueError(f"unsupported type {type(value).__name__}")


def to_string_list(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [format_value(item) for item in value]
    if isinstance(value, str):
        return parse_string_slice(value)
    raise ValueError(f"unsupported type {type(value).__name__}")
