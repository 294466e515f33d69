"""Declarative configuration schema.

A Field describes one dotted key. Fields are only enforced by
Config.validate(); reading a value never checks its Field.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from tbp import get_version

# Called with (key, value) for every merged key; raise to report a problem
ValidatorFunc = Callable[[str, Any], None]


@dataclass
class Field:
    """Schema entry for one dotted key.

    Example:
        Field("server.port", type="int", required=True, min=1, max=65535)
        Field("log.level", type="string", enum=["debug", "info", "warning"])
        Field("db.password", type="string", sensitive=True)
    """

    name: str
    type: str = ""  # Type name, e.g. "int", "string", "duration"; empty skips the check
    required: bool = False
    default: Any = None  # Seeded into the defaults source by new_config()
    description: str = ""
    min: float | None = None  # Inclusive lower bound for numeric values
    max: float | None = None  # Inclusive upper bound for numeric values
    enum: list[Any] | None = None  # Allowed values, compared as strings
    pattern: str | None = None  # Regex the string form must match in full
    sensitive: bool = False  # Masked by Config.dump() and the printer
    deprecated: bool = False  # Presence logs a warning


@dataclass
class Metadata:
    """Schema and identity of a configuration."""

    name: str = "tbp-config"
    version: str = field(default_factory=get_version)
    environment: str = "development"
    fields: dict[str, Field] = field(default_factory=dict)
    validators: list[ValidatorFunc] = field(default_factory=list)

    def add_field(self, spec: Field) -> None:
        self.fields[spec.name] = spec

    def sensitive_keys(self) -> set[str]:
        return {name for name, spec in self.fields.items() if spec.sensitive}

    def defaults(self) -> dict[str, Any]:
        """Declared defaults, keyed by field name."""
        return {
            name: spec.default for name, spec in self.fields.items() if spec.default is not None
        }
