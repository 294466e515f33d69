"""Static default values, the lowest-priority source."""

from __future__ import annotations

import copy
import threading
from typing import Any

from tbp.config.flatten import SEPARATOR, flatten
from tbp.logging import get_logger

_log = get_logger("config.defaults")

DEFAULT_PRIORITY = 10


class DefaultSource:
    """Source backed by an in-memory dict.

    Nested dicts are flattened to dotted keys on construction.

    Example:
        defaults = DefaultSource({"server": {"port": 8080}, "debug": False})
        defaults.load()  # {"server.port": 8080, "debug": False}
    """

    def __init__(
        self,
        defaults: dict[str, Any] | None = None,
        name: str = "defaults",
        priority: int = DEFAULT_PRIORITY,
    ) -> None:
        self._name = name
        self._priority = priority
        self._lock = threading.Lock()
        self._values = flatten(copy.deepcopy(defaults or {}))

    @property
    def name(self) -> str:
        return self._name

    @property
    def priority(self) -> int:
        return self._priority

    def load(self, cancel: threading.Event | None = None) -> dict[str, Any]:
        with self._lock:
            values = copy.deepcopy(self._values)
        _log.debug("Loaded %d default values", len(values))
        return values

    def add_default(self, key: str, value: Any) -> None:
        """Add or replace a default value.

        Dicts and lists are flattened under key, replacing whatever was
        stored there or beneath it before.
        """
        with self._lock:
            self._drop(key)
            self._values.update(flatten({key: copy.deepcopy(value)}))

    def remove_default(self, key: str) -> None:
        """Remove key together with any dotted keys beneath it."""
        with self._lock:
            self._drop(key)

    def _drop(self, key: str) -> None:
        prefix = f"{key}{SEPARATOR}"
        for existing in [k for k in self._values if k == key or k.startswith(prefix)]:
            del self._values[existing]
