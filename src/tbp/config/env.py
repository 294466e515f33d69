"""Environment variable configuration source.

Variables named ``<PREFIX><SEPARATOR><REST>`` become dotted keys:
``TBP_SERVER_PORT=9090`` -> ``server.port = 9090``. Values are converted by
an explicit type hint or by auto-detection (bool, int, float, duration,
comma list, string).
"""

from __future__ import annotations

import os
import threading
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tbp.config import convert
from tbp.config.errors import ConfigError, TypeConversionError
from tbp.logging import get_logger

_log = get_logger("config.env")

DEFAULT_PREFIX = "TBP"
DEFAULT_SEPARATOR = "_"
DEFAULT_PRIORITY = 100


class EnvSourceOptions(BaseModel):
    """Options for EnvSource."""

    model_config = ConfigDict(extra="forbid")

    prefix: str = DEFAULT_PREFIX  # Separator is appended if missing
    separator: str = DEFAULT_SEPARATOR
    key_mapping: dict[str, str] = Field(default_factory=dict)  # Env name -> dotted key
    type_hints: dict[str, str] = Field(default_factory=dict)  # Dotted key -> type name
    case_sensitive: bool = False
    priority: int = DEFAULT_PRIORITY
    env_file: str | None = None  # Dotenv file layered underneath os.environ

    @field_validator("prefix", mode="before")
    @classmethod
    def _default_prefix(cls, value: Any) -> Any:
        return value or DEFAULT_PREFIX

    @field_validator("separator", mode="before")
    @classmethod
    def _default_separator(cls, value: Any) -> Any:
        return value or DEFAULT_SEPARATOR


class EnvSource:
    """Source backed by process environment variables.

    Example:
        source = EnvSource(prefix="APP", type_hints={"hosts": "stringslice"})
        source.load()
    """

    def __init__(self, options: EnvSourceOptions | None = None, **kwargs: Any) -> None:
        """Initialize the source.

        Args:
            options: Complete options; when omitted they are built from kwargs.
            **kwargs: EnvSourceOptions fields (prefix, separator, ...).
        """
        opts = options or EnvSourceOptions(**kwargs)
        self._lock = threading.RLock()
        self._separator = opts.separator
        self._prefix = (
            opts.prefix if opts.prefix.endswith(opts.separator) else opts.prefix + opts.separator
        )
        self._case_sensitive = opts.case_sensitive
        self._priority = opts.priority
        self._key_mapping = dict(opts.key_mapping)
        self._type_hints = dict(opts.type_hints)
        self._env_file = opts.env_file
        self._values: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return "env:" + self.prefix

    @property
    def priority(self) -> int:
        return self._priority

    @property
    def prefix(self) -> str:
        """Prefix without the trailing separator."""
        return self._prefix[: -len(self._separator)]

    @property
    def separator(self) -> str:
        return self._separator

    def _environ(self) -> dict[str, str]:
        """Process environment, layered over the dotenv file when configured."""
        environ: dict[str, str] = {}
        if self._env_file:
            file_values = dotenv_values(self._env_file)
            environ.update({k: v for k, v in file_values.items() if v is not None})
        environ.update(os.environ)
        return environ

    def load(self, cancel: threading.Event | None = None) -> dict[str, Any]:
        """Load and convert every matching environment variable.

        Raises:
            TypeConversionError: If any value fails conversion; nothing is applied.
        """
        with self._lock:
            values: dict[str, Any] = {}

            for env_key, env_value in self._environ().items():
                if not self.matches_prefix(env_key):
                    continue

                config_key = self.env_key_to_config_key(env_key)
                if not config_key:
                    continue

                try:
                    values[config_key] = self._convert_value(config_key, env_value)
                except ValueError as e:
                    raise TypeConversionError(
                        config_key,
                        env_value,
                        self._type_hints.get(config_key, "auto"),
                        f"failed to convert environment variable {env_key}: {e}",
                    ) from e

            self._values = values
            _log.debug("Loaded %d values from environment prefix %s", len(values), self.prefix)
            return dict(values)

    def matches_prefix(self, env_key: str) -> bool:
        if self._case_sensitive:
            return env_key.startswith(self._prefix)
        return env_key.upper().startswith(self._prefix.upper())

    def env_key_to_config_key(self, env_key: str) -> str:
        """Map an environment variable name to a dotted key."""
        mapped = self._key_mapping.get(env_key)
        if mapped is not None:
            return mapped

        key = env_key[len(self._prefix) :]
        return key.lower().replace(self._separator.lower(), ".")

    def config_key_to_env_key(self, config_key: str) -> str:
        """Map a dotted key back to its canonical environment variable name."""
        for env_key, mapped in self._key_mapping.items():
            if mapped == config_key:
                return env_key
        return self._prefix + config_key.upper().replace(".", self._separator)

    def get_environment_variable_name(self, config_key: str) -> str:
        return self.config_key_to_env_key(config_key)

    def _convert_value(self, key: str, value: str) -> Any:
        hint = self._type_hints.get(key)
        if hint is not None:
            return convert.convert_by_hint(value, hint)
        return convert.auto_convert(value)

    def add_key_mapping(self, env_key: str, config_key: str) -> None:
        with self._lock:
            self._key_mapping[env_key] = config_key

    def add_type_hint(self, config_key: str, type_hint: str) -> None:
        with self._lock:
            self._type_hints[config_key] = type_hint

    @property
    def key_mappings(self) -> dict[str, str]:
        with self._lock:
            return dict(self._key_mapping)

    @property
    def type_hints(self) -> dict[str, str]:
        with self._lock:
            return dict(self._type_hints)

    @staticmethod
    def supported_types() -> list[str]:
        return list(convert.SUPPORTED_TYPE_HINTS)

    def validate_environment(self, required_keys: list[str]) -> None:
        """Check that every required key has its environment variable set.

        Raises:
            ConfigError: Listing all missing variable names together.
        """
        environ = self._environ()
        missing = [
            env_key
            for env_key in (self.config_key_to_env_key(k) for k in required_keys)
            if env_key not in environ
        ]
        if missing:
            raise ConfigError(f"missing required environment variables: {', '.join(missing)}")

    def list_environment_variables(self) -> dict[str, str]:
        """Raw values of every variable matching the prefix."""
        return {k: v for k, v in self._environ().items() if self.matches_prefix(k)}

    def is_set(self, config_key: str) -> bool:
        return self.config_key_to_env_key(config_key) in self._environ()

    def get_raw(self, config_key: str) -> str | None:
        """Unconverted value for a dotted key, or None when unset."""
        return self._environ().get(self.config_key_to_env_key(config_key))

    def set_environment_variable(self, config_key: str, value: str) -> None:
        """Set the variable backing a dotted key (test helper)."""
        os.environ[self.config_key_to_env_key(config_key)] = value

    def unset_environment_variable(self, config_key: str) -> None:
        os.environ.pop(self.config_key_to_env_key(config_key), None)
