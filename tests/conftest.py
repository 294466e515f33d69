"""Root pytest configuration for all tests."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from tbp.logging import reset_logging

TEST_PREFIXES = ("TEST_", "APP_", "TBP_")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove prefixed variables so sources only see what a test sets."""
    for key in list(os.environ):
        if key.upper().startswith(TEST_PREFIXES):
            monkeypatch.delenv(key)


@pytest.fixture(autouse=True)
def reset_tbp_logging():
    """Leave the tbp logger without handlers between tests."""
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def rewrite() -> Callable[[Path, str], None]:
    """Atomically replace a file with a strictly newer modification time.

    Pollers never observe a half-written file, and coarse filesystem
    timestamps cannot hide the change.
    """

    def _rewrite(path: Path, content: str) -> None:
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(content, encoding="utf-8")
        old = path.stat().st_mtime_ns if path.exists() else 0
        newer = max(old + 2_000_000_000, tmp.stat().st_mtime_ns)
        os.utime(tmp, ns=(newer, newer))
        os.replace(tmp, path)

    return _rewrite
