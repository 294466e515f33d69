"""Tests for dataclass binding."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any

import pytest

from tbp.config import (
    Config,
    ConfigError,
    DefaultSource,
    RequiredFieldMissing,
    TypeConversionError,
    UnmarshalError,
    Uint16,
    bind,
    setting,
)
from tbp.config.binding import convert_value
from tbp.config.convert import Int8


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"


@dataclass
class ServerSettings:
    host: str = setting("host", default="localhost")
    port: Uint16 = setting("port", required=True)
    timeout: timedelta = setting("timeout", default="30s")


@dataclass
class AppSettings:
    server: ServerSettings = field(default_factory=ServerSettings)
    debug: bool = False
    name: str = setting("app.name")
    tags: list[str] = field(default_factory=list)
    ports: list[int] = field(default_factory=list)
    internal: str = setting("-", value="untouched")
    level: LogLevel | None = None
    limits: dict[str, Any] = field(default_factory=dict)
    data_dir: Path | None = None


@dataclass
class Counters:
    count: int = setting("count")
    ratio: float = setting("ratio")
    label: str = setting("label")
    maybe: int | None = setting("maybe")


class TestBind:
    """Test binding flat values onto dataclasses."""

    def test_full_binding(self) -> None:
        values = {
            "server.port": 8080,
            "debug": "true",
            "app.name": "svc",
            "tags": ["a", "b"],
            "ports": "80,443",
            "internal": "overwritten?",
            "level": "debug",
            "limits.max": 5,
            "limits.min": 1,
            "data_dir": "/var/lib/svc",
        }
        settings = AppSettings()

        assert bind(settings, values) == []
        assert settings.server.host == "localhost"
        assert settings.server.port == 8080
        assert settings.server.timeout == timedelta(seconds=30)
        assert settings.debug is True
        assert settings.name == "svc"
        assert settings.tags == ["a", "b"]
        assert settings.ports == [80, 443]
        assert settings.internal == "untouched"
        assert settings.level is LogLevel.DEBUG
        assert settings.limits == {"max": 5, "min": 1}
        assert settings.data_dir == Path("/var/lib/svc")

    def test_errors_are_collected(self) -> None:
        settings = AppSettings()
        errors = bind(settings, {"debug": "maybe", "ports": "80,http"})

        keys = sorted(e.key for e in errors)
        assert keys == ["debug", "ports", "server.port"]
        assert any(isinstance(e, RequiredFieldMissing) for e in errors)
        assert all(isinstance(e, (RequiredFieldMissing, TypeConversionError)) for e in errors)

    def test_width_overflow(self) -> None:
        errors = bind(AppSettings(), {"server.port": 70000})
        assert len(errors) == 1
        assert isinstance(errors[0], TypeConversionError)
        assert "uint16" in str(errors[0])

    def test_missing_scalars_get_zero_values(self) -> None:
        counters = Counters()
        assert bind(counters, {}) == []
        assert counters.count == 0
        assert counters.ratio == 0.0
        assert counters.label == ""
        assert counters.maybe is None

    def test_enum_by_member_name(self) -> None:
        settings = AppSettings()
        bind(settings, {"server.port": 1, "level": "INFO"})
        assert settings.level is LogLevel.INFO


class TestConvertValue:
    """Test single value conversion."""

    def test_numeric_widening(self) -> None:
        assert convert_value(float, 3) == 3.0
        assert convert_value(int, 3.0) == 3
        assert convert_value(Int8, "-128") == -128
        with pytest.raises(ValueError, match="overflows int8"):
            convert_value(Int8, 128)

    def test_list_element_error(self) -> None:
        with pytest.raises(ValueError, match="element 1"):
            convert_value(list[int], [1, "x"])

    def test_unsupported_type(self) -> None:
        with pytest.raises(ValueError, match="unsupported field type"):
            convert_value(complex, "1")


class TestUnmarshal:
    """Test Config.unmarshal()."""

    def test_unmarshal_dataclass(self) -> None:
        config = Config([DefaultSource({"server": {"port": 9000, "timeout": "1m"}, "debug": True})])
        config.load()

        settings = config.unmarshal(AppSettings())

        assert settings.server.port == 9000
        assert settings.server.timeout == timedelta(minutes=1)
        assert settings.debug is True

    def test_unmarshal_reports_every_failure(self) -> None:
        config = Config([DefaultSource({"debug": "maybe"})])
        config.load()

        with pytest.raises(UnmarshalError) as exc_info:
            config.unmarshal(AppSettings())
        assert len(exc_info.value.errors) == 2

    @pytest.mark.parametrize("target", [AppSettings, {"a": 1}, None])
    def test_rejects_non_dataclass_instances(self, target: Any) -> None:
        config = Config()
        with pytest.raises(ConfigError, match="must be a dataclass instance"):
            config.unmarshal(target)
