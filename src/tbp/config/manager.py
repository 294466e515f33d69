"""The Config aggregator.

Owns the priority-sorted source list, the merged snapshot, watcher
registrations and the validation schema. One reader/writer lock guards all
of it: getters, validate() and unmarshal() read; load(), add_source(),
close() and metadata edits write.
"""

from __future__ import annotations

import copy
import dataclasses
import threading
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field as ModelField

from tbp.config import convert
from tbp.config.binding import bind
from tbp.config.changes import ConfigChange, detect_changes
from tbp.config.defaults import DefaultSource
from tbp.config.env import DEFAULT_PREFIX, EnvSource
from tbp.config.errors import (
    ConfigClosedError,
    ConfigError,
    KeyNotFoundError,
    LoadCancelledError,
    SourceLoadError,
    SourceNotFoundError,
    SourceRejectedError,
    TypeConversionError,
    UnmarshalError,
    ValidationError,
    WriteUnsupportedError,
)
from tbp.config.file import DEFAULT_PRIORITY as FILE_PRIORITY
from tbp.config.file import FileSource
from tbp.config.paths import get_config_paths
from tbp.config.schema import Field, Metadata, ValidatorFunc
from tbp.config.source import Source, Stoppable, Validatable, Watchable, Writable
from tbp.config.sync import RWLock
from tbp.config.validation import validate_values
from tbp.config.watcher import dispatch_isolated
from tbp.logging import get_logger

_log = get_logger("config")

MASK = "******"


class ConfigState(str, Enum):
    """Lifecycle of a Config instance."""

    CREATED = "created"
    LOADED = "loaded"
    VALIDATED = "validated"
    WATCHING = "watching"
    CLOSED = "closed"


@runtime_checkable
class Watcher(Protocol):
    """Receives the changes of each load that changed something."""

    def on_config_change(self, changes: Mapping[str, ConfigChange]) -> None: ...


WatcherCallback = Callable[[Mapping[str, ConfigChange]], None]


class Config:
    """Merged view over several configuration sources.

    Example:
        config = Config([DefaultSource({"debug": False}), EnvSource(prefix="APP")])
        config.load()
        config.get_bool("debug")
    """

    def __init__(
        self,
        sources: list[Any] | None = None,
        metadata: Metadata | None = None,
    ) -> None:
        self._lock = RWLock()
        self._sources: list[Any] = []
        self._values: dict[str, Any] = {}
        self._origins: dict[str, str] = {}
        self._watchers: list[WatcherCallback] = []
        self._metadata = metadata or Metadata()
        self._loaded = False
        self._validated = False
        self._watching = False
        self._watched: list[Any] = []
        self._closed = False

        for source in sources or []:
            self.add_source(source)

    def _ensure_open(self) -> None:
        if self._closed:
            raise ConfigClosedError("configuration has been closed")

    @property
    def state(self) -> ConfigState:
        if self._closed:
            return ConfigState.CLOSED
        if self._watching:
            return ConfigState.WATCHING
        if self._validated:
            return ConfigState.VALIDATED
        if self._loaded:
            return ConfigState.LOADED
        return ConfigState.CREATED

    @property
    def sources(self) -> list[Any]:
        """Registered sources, highest priority first."""
        with self._lock.read():
            return list(self._sources)

    @property
    def metadata(self) -> Metadata:
        with self._lock.read():
            return self._metadata

    # -- sources -----------------------------------------------------------

    def add_source(self, source: Any) -> None:
        """Register a source.

        Sources that can validate themselves are checked first; a rejected
        source leaves the configuration unchanged.

        Raises:
            SourceRejectedError: For None, non-sources or failed self-validation.
        """
        if source is None:
            raise SourceRejectedError("configuration source cannot be None")
        if not isinstance(source, Source):
            raise SourceRejectedError(f"{source!r} does not implement the Source protocol")
        if isinstance(source, Validatable):
            try:
                source.validate()
            except Exception as e:
                raise SourceRejectedError(f"source {source.name} failed validation: {e}") from e

        with self._lock.write():
            self._ensure_open()
            self._sources.append(source)
            # Stable: equal priorities keep insertion order
            self._sources.sort(key=lambda s: s.priority, reverse=True)
        _log.debug("Added source %s (priority %d)", source.name, source.priority)

    def remove_source(self, name: str) -> bool:
        """Unregister a source by name; takes effect on the next load()."""
        with self._lock.write():
            self._ensure_open()
            for index, source in enumerate(self._sources):
                if source.name == name:
                    del self._sources[index]
                    return True
        return False

    def _find_source(self, name: str) -> Any:
        with self._lock.read():
            for source in self._sources:
                if source.name == name:
                    return source
        raise SourceNotFoundError(f"configuration source '{name}' not found")

    def write_to_source(self, name: str, values: dict[str, Any]) -> None:
        """Persist values through a named writable source.

        Raises:
            SourceNotFoundError: No source has that name.
            WriteUnsupportedError: The source cannot write.
        """
        source = self._find_source(name)
        if not isinstance(source, Writable):
            raise WriteUnsupportedError(f"configuration source '{name}' does not support writing")
        source.write_config(values)

    # -- loading -----------------------------------------------------------

    def load(self, cancel: threading.Event | None = None) -> None:
        """Load every source and publish the merged snapshot.

        Sources merge from lowest to highest priority, so the highest wins.
        Watchers are notified on background threads when anything changed.

        Raises:
            SourceLoadError: A source failed; the previous snapshot is kept.
            LoadCancelledError: ``cancel`` was set before all sources loaded.
            ConfigClosedError: The configuration was closed.
        """
        with self._lock.write():
            self._ensure_open()

            merged: dict[str, Any] = {}
            origins: dict[str, str] = {}
            for source in reversed(self._sources):
                if cancel is not None and cancel.is_set():
                    raise LoadCancelledError("configuration load cancelled")
                try:
                    values = source.load(cancel)
                except Exception as e:
                    raise SourceLoadError(
                        source.name, f"failed to load from source {source.name}: {e}"
                    ) from e
                for key, value in values.items():
                    merged[key] = value
                    origins[key] = source.name

            old_values, old_origins = self._values, self._origins
            self._values, self._origins = merged, origins
            self._loaded = True

            watchers = list(self._watchers)
            changes = detect_changes(old_values, merged, origins, old_origins) if watchers else {}

        _log.debug("Loaded %d keys from %d sources", len(merged), len(self._sources))
        if changes:
            self._notify_watchers(watchers, changes)

    def _notify_watchers(
        self, watchers: list[WatcherCallback], changes: dict[str, ConfigChange]
    ) -> None:
        _log.debug("Notifying %d watchers of %d changes", len(watchers), len(changes))
        dispatch_isolated(watchers, MappingProxyType(changes), label="config-watcher")

    def add_watcher(self, watcher: Watcher | WatcherCallback) -> Callable[[], None]:
        """Register a watcher object or a plain callable.

        Returns:
            A function that unregisters the watcher.
        """
        callback: WatcherCallback
        if isinstance(watcher, Watcher):
            callback = watcher.on_config_change
        elif callable(watcher):
            callback = watcher
        else:
            raise TypeError(f"{watcher!r} is neither a Watcher nor callable")

        with self._lock.write():
            self._ensure_open()
            self._watchers.append(callback)

        def unregister() -> None:
            with self._lock.write():
                if callback in self._watchers:
                    self._watchers.remove(callback)

        return unregister

    def start_watching(self, cancel: threading.Event | None = None) -> None:
        """Watch every watchable source; any change triggers a full load().

        Sources already being watched are skipped, so calling this again only
        picks up sources added since.
        """
        with self._lock.write():
            self._ensure_open()
            watchable = [
                s
                for s in self._sources
                if isinstance(s, Watchable) and not any(s is w for w in self._watched)
            ]
            self._watched.extend(watchable)
            self._watching = True

        for source in watchable:
            thread = threading.Thread(
                target=self._watch_source,
                args=(source, cancel),
                name=f"tbp-config-watch-{source.name}",
                daemon=True,
            )
            thread.start()

        _log.info("Watching %d configuration sources", len(watchable))

    def _watch_source(self, source: Any, cancel: threading.Event | None) -> None:
        def reload(_values: dict[str, Any]) -> None:
            try:
                self.load(cancel)
            except ConfigClosedError:
                return
            except ConfigError as e:
                _log.error("Error reloading configuration after change in %s: %s", source.name, e)

        try:
            source.watch(cancel, reload)
        except Exception:
            _log.exception("Error watching source %s", source.name)

    # -- reading -----------------------------------------------------------

    def get(self, key: str, default: Any = None) -> Any:
        """Raw merged value, or ``default`` when the key is missing."""
        with self._lock.read():
            if key not in self._values:
                return default
            value = self._values[key]
        return copy.deepcopy(value) if isinstance(value, (list, dict)) else value

    def has(self, key: str) -> bool:
        with self._lock.read():
            return key in self._values

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    def get_all(self) -> dict[str, Any]:
        """Copy of the whole merged snapshot."""
        with self._lock.read():
            return copy.deepcopy(self._values)

    def source_of(self, key: str) -> str | None:
        """Name of the source whose value won for ``key``."""
        with self._lock.read():
            return self._origins.get(key)

    def _lookup(self, key: str) -> Any:
        with self._lock.read():
            if key not in self._values:
                raise KeyNotFoundError(key)
            return self._values[key]

    def _convert(self, key: str, converter: Callable[[Any], Any], target: str) -> Any:
        value = self._lookup(key)
        try:
            return converter(value)
        except ValueError as e:
            raise TypeConversionError(key, value, target, str(e)) from e

    def get_string(self, key: str) -> str:
        return convert.format_value(self._lookup(key))

    def get_int(self, key: str) -> int:
        return self._convert(key, convert.to_int, "int")

    def get_float(self, key: str) -> float:
        return self._convert(key, convert.to_float, "float")

    def get_bool(self, key: str) -> bool:
        return self._convert(key, convert.to_bool, "bool")

    def get_duration(self, key: str) -> timedelta:
        return self._convert(key, convert.to_duration, "duration")

    def get_time(self, key: str) -> datetime:
        return self._convert(key, convert.to_timestamp, "time")

    def get_string_list(self, key: str) -> list[str]:
        return self._convert(key, convert.to_string_list, "string list")

    def get_string_with_default(self, key: str, default: str) -> str:
        try:
            return self.get_string(key)
        except KeyNotFoundError:
            return default

    def get_int_with_default(self, key: str, default: int) -> int:
        try:
            return self.get_int(key)
        except (KeyNotFoundError, TypeConversionError):
            return default

    def get_float_with_default(self, key: str, default: float) -> float:
        try:
            return self.get_float(key)
        except (KeyNotFoundError, TypeConversionError):
            return default

    def get_bool_with_default(self, key: str, default: bool) -> bool:
        try:
            return self.get_bool(key)
        except (KeyNotFoundError, TypeConversionError):
            return default

    def get_duration_with_default(self, key: str, default: timedelta) -> timedelta:
        try:
            return self.get_duration(key)
        except (KeyNotFoundError, TypeConversionError):
            return default

    def get_time_with_default(self, key: str, default: datetime) -> datetime:
        try:
            return self.get_time(key)
        except (KeyNotFoundError, TypeConversionError):
            return default

    def get_string_list_with_default(self, key: str, default: list[str]) -> list[str]:
        try:
            return self.get_string_list(key)
        except (KeyNotFoundError, TypeConversionError):
            return default

    def unmarshal(self, target: Any) -> Any:
        """Bind the merged snapshot onto a dataclass instance.

        See tbp.config.binding for the field metadata that drives binding.

        Returns:
            ``target``, populated in place.

        Raises:
            ConfigError: If target is not a dataclass instance.
            UnmarshalError: Listing every field that could not be bound.
        """
        if isinstance(target, type) or not dataclasses.is_dataclass(target):
            raise ConfigError("unmarshal target must be a dataclass instance")

        with self._lock.read():
            values = dict(self._values)

        errors = bind(target, values)
        if errors:
            raise UnmarshalError(errors)
        return target

    def dump(self, mask_sensitive: bool = True) -> dict[str, Any]:
        """Snapshot for display, with sensitive fields (and their indexed keys) masked."""
        with self._lock.read():
            values = copy.deepcopy(self._values)
            sensitive = self._metadata.sensitive_keys()

        if mask_sensitive and sensitive:
            for key in values:
                if key in sensitive or any(key.startswith(f"{s}.") for s in sensitive):
                    values[key] = MASK
        return values

    # -- schema ------------------------------------------------------------

    def add_field_metadata(self, spec: Field) -> None:
        with self._lock.write():
            self._ensure_open()
            self._metadata.add_field(spec)

    def add_validator(self, validator: ValidatorFunc) -> None:
        """Add a function called with (key, value) for every key during validate()."""
        with self._lock.write():
            self._ensure_open()
            self._metadata.validators.append(validator)

    def validate(self, cancel: threading.Event | None = None) -> None:
        """Check the merged snapshot against the declared fields and validators.

        Raises:
            ValidationError: Carrying every problem found.
        """
        with self._lock.read():
            self._ensure_open()
            values = dict(self._values)
            metadata = dataclasses.replace(
                self._metadata,
                fields=dict(self._metadata.fields),
                validators=list(self._metadata.validators),
            )

        # Validators may read this config, so they run without the lock held
        errors = validate_values(values, metadata)

        if errors:
            raise ValidationError(errors)
        with self._lock.write():
            self._validated = True

    # -- lifecycle ---------------------------------------------------------

    def close(self) -> None:
        """Stop watching sources and drop all state. The instance is unusable afterwards."""
        with self._lock.write():
            if self._closed:
                return
            self._closed = True
            sources = self._sources
            self._sources = []
            self._values = {}
            self._origins = {}
            self._watchers = []
            self._watched = []

        for source in sources:
            if isinstance(source, Stoppable):
                try:
                    source.stop()
                except Exception:
                    _log.exception("Error stopping source %s", source.name)
        _log.debug("Configuration closed")

    def __enter__(self) -> Config:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class LoadOptions(BaseModel):
    """Options for new_config()."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    sources: list[Any] = ModelField(default_factory=list)  # Replaces the built-in sources
    environment: str = "development"
    config_paths: list[str] = ModelField(default_factory=list)  # Later paths win
    search_default_paths: bool = False  # Prepend system/user/project paths
    project_root: str | None = None
    env_prefix: str = DEFAULT_PREFIX
    defaults: dict[str, Any] = ModelField(default_factory=dict)
    validation: bool = False
    hot_reload: bool = False
    metadata: Any = None  # Metadata instance


def new_config(
    options: LoadOptions | None = None,
    cancel: threading.Event | None = None,
    **kwargs: Any,
) -> Config:
    """Build, load and optionally validate and watch a configuration.

    Without explicit sources this registers an environment source, one
    optional file source per config path and a defaults source fed from
    ``defaults`` and the declared field defaults.

    Args:
        options: Complete options; when omitted they are built from kwargs.
        cancel: Optional event that cancels loading and watching.
        **kwargs: LoadOptions fields.

    Returns:
        A loaded Config.
    """
    opts = options or LoadOptions(**kwargs)
    metadata = opts.metadata or Metadata(environment=opts.environment)
    config = Config(metadata=metadata)

    sources = list(opts.sources)
    if not sources:
        sources.append(EnvSource(prefix=opts.env_prefix))
        paths = [str(p) for p in get_config_paths(opts.project_root)] if opts.search_default_paths else []
        paths.extend(opts.config_paths)
        for index, path in enumerate(paths):
            sources.append(
                FileSource(
                    path=path,
                    optional=True,
                    watch_enabled=opts.hot_reload,
                    priority=FILE_PRIORITY + index,
                )
            )

    try:
        for source in sources:
            config.add_source(source)

        defaults = {**metadata.defaults(), **opts.defaults}
        if defaults:
            config.add_source(DefaultSource(defaults))

        config.load(cancel)
        if opts.validation:
            config.validate(cancel)
        if opts.hot_reload:
            config.start_watching(cancel)
    except ConfigError:
        config.close()
        raise

    return config
