"""Layered configuration for TBP services.

Provides a merged key/value view over prioritized sources:
- Defaults (priority 10)
- TOML/YAML/JSON files (priority 50, polled for changes)
- Environment variables (priority 100)

Example usage:
    from tbp.config import LoadOptions, new_config

    config = new_config(LoadOptions(
        env_prefix="APP",
        config_paths=["config.toml"],
        defaults={"server": {"port": 8080}},
        hot_reload=True,
    ))

    port = config.get_int("server.port")
    timeout = config.get_duration_with_default("server.timeout", timedelta(seconds=30))

    # React to reloads
    config.add_watcher(lambda changes: print(sorted(changes)))

    # Bind onto a dataclass
    settings = config.unmarshal(AppSettings())

    config.close()
"""

from tbp.config.binding import bind, setting
from tbp.config.changes import ChangeAction, ConfigChange, detect_changes
from tbp.config.convert import (
    Float32,
    Int8,
    Int16,
    Int32,
    Int64,
    Uint,
    Uint8,
    Uint16,
    Uint32,
    Uint64,
)
from tbp.config.defaults import DefaultSource
from tbp.config.env import EnvSource, EnvSourceOptions
from tbp.config.errors import (
    AggregateConfigError,
    ConfigClosedError,
    ConfigError,
    ConstraintViolation,
    KeyNotFoundError,
    LoadCancelledError,
    RequiredFieldMissing,
    SourceLoadError,
    SourceNotFoundError,
    SourceRejectedError,
    TypeConversionError,
    UnmarshalError,
    ValidationError,
    WriteUnsupportedError,
)
from tbp.config.file import FileSource, FileSourceOptions
from tbp.config.flatten import flatten, unflatten
from tbp.config.manager import Config, ConfigState, LoadOptions, Watcher, new_config
from tbp.config.paths import (
    get_config_paths,
    get_project_config_path,
    get_system_config_path,
    get_user_config_path,
)
from tbp.config.printer import print_config, render_config
from tbp.config.schema import Field, Metadata
from tbp.config.source import Source, Stoppable, Validatable, Watchable, Writable

__all__ = [
    # Main API
    "Config",
    "ConfigState",
    "LoadOptions",
    "new_config",
    "Watcher",
    "ConfigChange",
    "ChangeAction",
    "detect_changes",
    # Sources
    "Source",
    "Watchable",
    "Validatable",
    "Writable",
    "Stoppable",
    "DefaultSource",
    "EnvSource",
    "EnvSourceOptions",
    "FileSource",
    "FileSourceOptions",
    # Schema
    "Field",
    "Metadata",
    # Binding
    "bind",
    "setting",
    "Int8",
    "Int16",
    "Int32",
    "Int64",
    "Uint",
    "Uint8",
    "Uint16",
    "Uint32",
    "Uint64",
    "Float32",
    # Errors
    "ConfigError",
    "SourceLoadError",
    "LoadCancelledError",
    "TypeConversionError",
    "KeyNotFoundError",
    "RequiredFieldMissing",
    "ConstraintViolation",
    "SourceRejectedError",
    "WriteUnsupportedError",
    "SourceNotFoundError",
    "ConfigClosedError",
    "AggregateConfigError",
    "ValidationError",
    "UnmarshalError",
    # Utilities
    "flatten",
    "unflatten",
    "render_config",
    "print_config",
    "get_config_paths",
    "get_system_config_path",
    "get_user_config_path",
    "get_project_config_path",
]
