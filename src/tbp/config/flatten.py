"""Conversion between nested configuration documents and dotted keys.

Nested maps become dotted keys (``{"server": {"port": 1}}`` ->
``{"server.port": 1}``). Arrays are kept under their own key and are also
exploded into indexed keys (``tags``, ``tags.0``, ``tags.1``), recursively
through nested objects and arrays.
"""

from __future__ import annotations

from typing import Any

from tbp.config.errors import ConfigError

SEPARATOR = "."


def flatten(data: dict[str, Any], prefix: str = "") -> dict[str, Any]:
    """Flatten a nested dict into dotted keys.

    Empty nested dicts are kept as ``{}`` under their key so that
    unflatten() can restore them.

    Args:
        data: Parsed configuration document.
        prefix: Key prefix for recursion.

    Returns:
        A new flat dict.
    """
    result: dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}{SEPARATOR}{key}" if prefix else str(key)
        _flatten_value(full_key, value, result)
    return result


def _flatten_value(key: str, value: Any, result: dict[str, Any]) -> None:
    if isinstance(value, dict):
        if not value:
            result[key] = {}
            return
        for sub_key, sub_value in value.items():
            _flatten_value(f"{key}{SEPARATOR}{sub_key}", sub_value, result)
    elif isinstance(value, list):
        result[key] = list(value)
        for index, item in enumerate(value):
            _flatten_value(f"{key}{SEPARATOR}{index}", item, result)
    else:
        result[key] = value


def unflatten(flat: dict[str, Any]) -> dict[str, Any]:
    """Rebuild a nested dict from dotted keys.

    Indexed keys that sit underneath an array-valued key are skipped, since
    the array itself already carries them.

    Raises:
        ConfigError: If a key needs a nested map where a scalar is stored.
    """
    result: dict[str, Any] = {}

    for key in sorted(flat, key=lambda k: k.count(SEPARATOR)):
        if _shadowed_by_array(key, flat):
            continue

        parts = key.split(SEPARATOR)
        current = result
        for depth, part in enumerate(parts[:-1]):
            nested = current.setdefault(part, {})
            if not isinstance(nested, dict):
                prefix = SEPARATOR.join(parts[: depth + 1])
                raise ConfigError(f"key '{key}' conflicts with value stored at '{prefix}'")
            current = nested

        value = flat[key]
        current[parts[-1]] = dict(value) if isinstance(value, dict) else value

    return result


def _shadowed_by_array(key: str, flat: dict[str, Any]) -> bool:
    parts = key.split(SEPARATOR)
    for end in range(1, len(parts)):
        if isinstance(flat.get(SEPARATOR.join(parts[:end])), list):
            return True
    return False
