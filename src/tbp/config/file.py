"""File-based configuration source.

Handles:
- TOML, YAML and JSON parsing (format detected from the extension)
- ``${VAR}`` and ``${VAR:-default}`` substitution from the environment
- Flattening to dotted keys, with arrays also exposed as indexed keys
- Modification-time caching, polling watch and write-back
"""

from __future__ import annotations

import json
import os
import re
import threading
from pathlib import Path
from typing import Any

import tomli
import tomli_w
import yaml
from pydantic import BaseModel, ConfigDict, Field

from tbp.config.errors import ConfigError, SourceLoadError
from tbp.config.flatten import flatten, unflatten
from tbp.config.source import ChangeCallback
from tbp.config.watcher import DEFAULT_POLL_INTERVAL, PollingWatcher, dispatch_isolated
from tbp.logging import get_logger

_log = get_logger("config.file")

DEFAULT_PRIORITY = 50
FORMATS = ("auto", "toml", "yaml", "json")

_EXTENSIONS = {
    ".toml": "toml",
    ".tml": "toml",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".json": "json",
}

# Matches ${VAR} or ${VAR:-default}; the name is anything up to "}" or ":-"
ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+?)(?::-([^}]*))?\}")


class FileSourceOptions(BaseModel):
    """Options for FileSource."""

    model_config = ConfigDict(extra="forbid")

    path: str = Field(min_length=1)
    format: str = "auto"  # auto, toml, yaml, json
    optional: bool = False  # Missing file contributes nothing instead of failing
    watch_enabled: bool = False
    priority: int = DEFAULT_PRIORITY
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    name: str | None = None  # Defaults to "file:<path>"


def substitute_env_vars(content: str, env: dict[str, str] | None = None) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` in raw file content.

    Empty variables count as unset. An unset variable without a default
    is left as written.
    """
    environ = os.environ if env is None else env

    def replace(match: re.Match[str]) -> str:
        value = environ.get(match.group(1))
        if value:
            return value
        if match.group(2) is not None:
            return match.group(2)
        return match.group(0)

    return ENV_VAR_PATTERN.sub(replace, content)


def detect_format(path: str | Path) -> str:
    """Format for a file extension; unknown extensions read as TOML."""
    return _EXTENSIONS.get(Path(path).suffix.lower(), "toml")


def parse_content(content: str, fmt: str) -> dict[str, Any]:
    """Parse a document into a nested dict.

    Raises:
        ConfigError: On syntax errors, unsupported formats or a non-mapping root.
    """
    try:
        if fmt == "toml":
            data = tomli.loads(content)
        elif fmt == "yaml":
            data = yaml.safe_load(content)
        elif fmt == "json":
            data = json.loads(content)
        else:
            raise ConfigError(f"unsupported configuration format: {fmt}")
    except (tomli.TOMLDecodeError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"failed to parse {fmt.upper()}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{fmt.upper()} document root must be a mapping, got {type(data).__name__}")
    return data


def _reject_nulls(data: Any, prefix: str = "") -> None:
    """Raise ConfigError on the first None; TOML has no null type."""
    if isinstance(data, dict):
        items = ((f"{prefix}{key}", value) for key, value in data.items())
    elif isinstance(data, list):
        items = ((f"{prefix}{index}", value) for index, value in enumerate(data))
    else:
        return
    for key, value in items:
        if value is None:
            raise ConfigError(f"cannot encode null value for '{key}' as TOML")
        _reject_nulls(value, f"{key}.")


def serialize_content(data: dict[str, Any], fmt: str) -> str:
    try:
        if fmt == "toml":
            _reject_nulls(data)
            return tomli_w.dumps(data)
        if fmt == "yaml":
            return yaml.safe_dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
        if fmt == "json":
            return json.dumps(data, indent=2, ensure_ascii=False)
    except (TypeError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"failed to encode {fmt.upper()}: {e}") from e
    raise ConfigError(f"unsupported format for writing: {fmt}")


class FileSource:
    """Source backed by a TOML, YAML or JSON file.

    Example:
        source = FileSource(path="config.toml", optional=True, watch_enabled=True)
        source.load()  # {"server.port": 8080, "tags": [...], "tags.0": ...}
    """

    def __init__(self, options: FileSourceOptions | None = None, **kwargs: Any) -> None:
        """Initialize the source.

        Args:
            options: Complete options; when omitted they are built from kwargs.
            **kwargs: FileSourceOptions fields (path, format, optional, ...).
        """
        opts = options or FileSourceOptions(**kwargs)
        self._path = Path(opts.path)
        self._format = opts.format
        self._optional = opts.optional
        self._watch_enabled = opts.watch_enabled
        self._priority = opts.priority
        self._poll_interval = opts.poll_interval
        self._name = opts.name or f"file:{opts.path}"

        self._lock = threading.RLock()
        self._values: dict[str, Any] = {}
        self._last_modified: int | None = None  # st_mtime_ns of the cached snapshot
        self._callbacks: list[ChangeCallback] = []
        self._watcher: PollingWatcher | None = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def priority(self) -> int:
        return self._priority

    @property
    def path(self) -> Path:
        return self._path

    @property
    def format(self) -> str:
        return self._format

    @property
    def optional(self) -> bool:
        return self._optional

    @property
    def watch_enabled(self) -> bool:
        return self._watch_enabled

    @property
    def last_modified(self) -> int | None:
        """Modification time (ns) of the cached snapshot, None before the first load."""
        with self._lock:
            return self._last_modified

    def resolved_format(self) -> str:
        return detect_format(self._path) if self._format == "auto" else self._format

    def load(self, cancel: threading.Event | None = None) -> dict[str, Any]:
        """Load the file, reusing the cached snapshot while its mtime is unchanged.

        Raises:
            SourceLoadError: If a required file is missing or cannot be parsed.
        """
        with self._lock:
            try:
                mtime = self._path.stat().st_mtime_ns
            except FileNotFoundError as e:
                if self._optional:
                    _log.debug("Optional config file %s does not exist, skipping", self._path)
                    return {}
                raise SourceLoadError(
                    self._name, f"configuration file {self._path} does not exist"
                ) from e
            except OSError as e:
                raise SourceLoadError(
                    self._name, f"failed to access configuration file {self._path}: {e}"
                ) from e

            if self._last_modified is not None and mtime <= self._last_modified:
                return dict(self._values)

            fmt = self.resolved_format()
            try:
                content = self._path.read_text(encoding="utf-8")
                values = self.load_from_string(content, fmt)
            except (OSError, UnicodeDecodeError, ConfigError) as e:
                raise SourceLoadError(
                    self._name, f"failed to load configuration file {self._path} as {fmt}: {e}"
                ) from e

            self._values = values
            self._last_modified = mtime
            _log.debug("Loaded %d values from %s", len(values), self._path)
            return dict(values)

    def load_from_string(self, content: str, fmt: str | None = None) -> dict[str, Any]:
        """Substitute, parse and flatten content without touching the file or cache."""
        return flatten(parse_content(substitute_env_vars(content), fmt or self.resolved_format()))

    def write_config(self, values: dict[str, Any]) -> None:
        """Write dotted-key values to the file in its format.

        Raises:
            ConfigError: If the values cannot be nested or encoded, or the write fails.
        """
        with self._lock:
            fmt = self.resolved_format()
            content = serialize_content(unflatten(values), fmt)
            try:
                self._path.write_text(content, encoding="utf-8")
            except OSError as e:
                raise ConfigError(f"failed to write configuration file {self._path}: {e}") from e
            self._last_modified = None
            _log.info("Wrote %d values to %s", len(values), self._path)

    def watch(self, cancel: threading.Event | None, callback: ChangeCallback) -> None:
        """Register callback and start polling the file (no-op unless watch_enabled)."""
        if not self._watch_enabled:
            return

        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)
            if self._watcher is not None and self._watcher.running:
                return
            baseline = (
                {self._path: self._last_modified} if self._last_modified is not None else None
            )
            self._watcher = PollingWatcher(
                [self._path],
                self._on_file_changed,
                poll_interval=self._poll_interval,
                cancel=cancel,
                baseline=baseline,
            )
            self._watcher.start()

    def _on_file_changed(self, paths: list[Path]) -> None:
        if not self._path.exists():
            _log.warning("Watched config file %s disappeared", self._path)
            return

        try:
            values = self.load()
        except SourceLoadError as e:
            _log.error("Error reloading configuration from %s: %s", self._path, e)
            return

        with self._lock:
            callbacks = list(self._callbacks)
        dispatch_isolated(callbacks, values, label="file-watch-callback")

    def stop(self) -> None:
        """Stop the polling thread, if any."""
        with self._lock:
            watcher = self._watcher
            self._watcher = None
        if watcher is not None:
            watcher.stop(timeout=self._poll_interval + 1.0)

    def validate(self) -> None:
        """Admission check: required files must exist and the format must be known.

        Raises:
            ConfigError: Describing the first problem found.
        """
        if not self._optional:
            try:
                self._path.stat()
            except FileNotFoundError as e:
                raise ConfigError(f"required configuration file {self._path} does not exist") from e
            except OSError as e:
                raise ConfigError(f"cannot access configuration file {self._path}: {e}") from e

        if self._format not in FORMATS:
            raise ConfigError(f"unsupported file format: {self._format}")
