"""Configuration source protocol and optional capabilities.

A source only has to provide ``name``, ``priority`` and ``load``. The
capability protocols are probed with ``isinstance`` at runtime:

    if isinstance(source, Watchable):
        source.watch(cancel, callback)

Example:
    class StaticSource:
        '''Custom source implementation.'''

        name = "static"
        priority = 60

        def load(self, cancel=None) -> dict[str, Any]:
            return {"feature.enabled": True}

Priority conventions:
    0-19: Default values
    20-79: Config files
    80-199: Environment variables
    200+: Programmatic overrides
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

# Receives the freshly loaded values of a watched source
ChangeCallback = Callable[[dict[str, Any]], None]


@runtime_checkable
class Source(Protocol):
    """Origin of flat ``dotted-key -> value`` pairs.

    Attributes:
        name: Unique name used in logs, errors and Config.write_to_source().
        priority: Higher priority wins on key collisions.
    """

    @property
    def name(self) -> str: ...

    @property
    def priority(self) -> int: ...

    def load(self, cancel: threading.Event | None = None) -> dict[str, Any]:
        """Load all values from this source.

        Returns:
            A flat dict owned by the caller.

        Raises:
            Exception: Any failure; Config.load() wraps it in SourceLoadError.
        """
        ...


@runtime_checkable
class Watchable(Protocol):
    """A source that can report its own changes."""

    def watch(self, cancel: threading.Event | None, callback: ChangeCallback) -> None:
        """Register callback and start watching without blocking."""
        ...


@runtime_checkable
class Validatable(Protocol):
    """A source that can check itself before being admitted."""

    def validate(self) -> None:
        """Raise if the source is unusable."""
        ...


@runtime_checkable
class Writable(Protocol):
    """A source that can persist values."""

    def write_config(self, values: dict[str, Any]) -> None: ...


@runtime_checkable
class Stoppable(Protocol):
    """A source holding background resources released by Config.close()."""

    def stop(self) -> None: ...
