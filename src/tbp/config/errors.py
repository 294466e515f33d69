"""Exception types raised by the configuration engine.

All errors derive from ConfigError. Underlying causes are chained with
``raise ... from`` so the underlying exception stays reachable via
``__cause__``.
"""

from __future__ import annotations

from typing import Any


class ConfigError(Exception):
    """Base class for configuration errors."""


class SourceLoadError(ConfigError):
    """A source failed to load; the merged snapshot was left untouched."""

    def __init__(self, source: str, message: str) -> None:
        self.source = source
        super().__init__(message)


class LoadCancelledError(ConfigError):
    """A load was cancelled through its cancel event."""


class TypeConversionError(ConfigError):
    """A value could not be converted to the requested type."""

    def __init__(self, key: str, value: Any, target: str, reason: str | None = None) -> None:
        self.key = key
        self.value = value
        self.target = target
        self.reason = reason
        message = f"configuration key '{key}' value {value!r} cannot be converted to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class KeyNotFoundError(ConfigError):
    """The requested key is not present in the merged snapshot."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"configuration key '{key}' not found")


class RequiredFieldMissing(ConfigError):
    """A field declared as required has no value in any source."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"required configuration field '{key}' is missing")


class ConstraintViolation(ConfigError):
    """A present value violates a declared constraint."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(f"configuration field '{key}' {message}")


class SourceRejectedError(ConfigError):
    """A source failed admission in Config.add_source()."""


class WriteUnsupportedError(ConfigError):
    """The addressed source cannot persist values."""


class SourceNotFoundError(ConfigError):
    """No source with the requested name is registered."""


class ConfigClosedError(ConfigError):
    """The Config instance was closed and cannot be used any more."""


class AggregateConfigError(ConfigError):
    """Several problems collected into one error.

    Attributes:
        errors: The individual problems, in discovery order.
    """

    summary = "configuration errors"

    def __init__(self, errors: list[Exception]) -> None:
        self.errors = list(errors)
        details = "; ".join(str(e) for e in self.errors)
        super().__init__(f"{self.summary} ({len(self.errors)}): {details}")


class ValidationError(AggregateConfigError):
    """Config.validate() found one or more problems."""

    summary = "configuration validation failed"


class UnmarshalError(AggregateConfigError):
    """Config.unmarshal() could not bind one or more fields."""

    summary = "configuration unmarshal failed"
