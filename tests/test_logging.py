"""Tests for the tbp logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tbp import logging as tbp_logging


class TestResolveLevel:
    """Test level resolution."""

    def test_names(self) -> None:
        assert tbp_logging.resolve_level("debug") == logging.DEBUG
        assert tbp_logging.resolve_level("WARN") == logging.WARNING
        assert tbp_logging.resolve_level("trace") == tbp_logging.TRACE
        assert tbp_logging.resolve_level("bogus") == logging.INFO
        assert tbp_logging.resolve_level() == logging.INFO

    def test_verbosity_overrides_name(self) -> None:
        assert tbp_logging.resolve_level("debug", verbose=0) == logging.ERROR
        assert tbp_logging.resolve_level(verbose=3) == tbp_logging.VERBOSE
        assert tbp_logging.resolve_level(verbose=9) == tbp_logging.TRACE


class TestSetupLogging:
    """Test handler installation."""

    def test_file_logging(self, tmp_path: Path) -> None:
        log_file = tmp_path / "tbp.log"
        tbp_logging.setup_logging(level="debug", file=str(log_file))

        tbp_logging.get_logger("config").debug("loaded %d keys", 3)
        for handler in tbp_logging.logger.handlers:
            handler.flush()

        text = log_file.read_text()
        assert "debug: tbp.config: loaded 3 keys" in text

    def test_env_variable_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        log_file = tmp_path / "env.log"
        monkeypatch.setenv(tbp_logging.LOG_ENV_VAR, str(log_file))

        tbp_logging.setup_logging(verbose=2)
        tbp_logging.get_logger().info("hello")
        for handler in tbp_logging.logger.handlers:
            handler.flush()

        assert "info: tbp: hello" in log_file.read_text()

    def test_second_call_is_noop(self, tmp_path: Path) -> None:
        tbp_logging.setup_logging(file=str(tmp_path / "a.log"))
        tbp_logging.setup_logging(file=str(tmp_path / "b.log"))

        assert len(tbp_logging.logger.handlers) == 1
        assert not (tmp_path / "b.log").exists()

    def test_child_logger_names(self) -> None:
        assert tbp_logging.get_logger("config.file").name == "tbp.config.file"
        assert tbp_logging.get_logger().name == "tbp"

    def test_engine_modules_log_under_tbp(self, tmp_path: Path) -> None:
        from tbp.config import defaults, file, manager

        assert file._log.name == "tbp.config.file"
        assert manager._log.name == "tbp.config"
        assert defaults._log.name == "tbp.config.defaults"

        log_file = tmp_path / "engine.log"
        tbp_logging.setup_logging(level="debug", file=str(log_file))
        defaults.DefaultSource({"a": 1}).load()
        for handler in tbp_logging.logger.handlers:
            handler.flush()

        assert "debug: tbp.config.defaults: Loaded 1 default values" in log_file.read_text()
