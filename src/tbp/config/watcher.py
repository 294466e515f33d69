"""File watching and isolated callback dispatch.

Uses polling for cross-platform compatibility without additional
dependencies. Monitors file modification times from a daemon thread.
"""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from tbp.logging import get_logger

_log = get_logger("config.watcher")

# Default poll interval in seconds
DEFAULT_POLL_INTERVAL = 1.0


def dispatch_isolated(
    callbacks: Iterable[Callable[..., Any]],
    *args: Any,
    label: str = "callback",
) -> list[threading.Thread]:
    """Run each callback on its own daemon thread.

    An exception in one callback is logged and never reaches the caller or
    the other callbacks.

    Returns:
        The started threads (callers normally ignore them).
    """
    threads = []
    for callback in callbacks:

        def run(cb: Callable[..., Any] = callback) -> None:
            try:
                cb(*args)
            except Exception:
                _log.exception("Error in %s %r", label, cb)

        thread = threading.Thread(target=run, name=f"tbp-config-{label}", daemon=True)
        thread.start()
        threads.append(thread)
    return threads


class PollingWatcher:
    """Watches files for changes and reports them.

    Polls modification times every ``poll_interval`` seconds. A path that
    is created, modified or deleted is passed to ``on_change``.
    """

    def __init__(
        self,
        paths: Iterable[str | Path],
        on_change: Callable[[list[Path]], None],
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        cancel: threading.Event | None = None,
        baseline: dict[Path, int] | None = None,
    ) -> None:
        """Initialize the watcher.

        Args:
            paths: Files to watch.
            on_change: Called with the changed paths from the polling thread.
            poll_interval: How often to check for changes (seconds).
            cancel: Optional event that stops the watcher when set.
            baseline: Known modification times (ns) to compare the first poll against.
        """
        self._paths = [Path(p) for p in paths]
        self._on_change = on_change
        self._poll_interval = poll_interval
        self._cancel = cancel
        self._baseline = baseline
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._mtimes: dict[Path, int] = {}

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _check_mtimes(self) -> dict[Path, int]:
        """Get current modification times for all watched files."""
        mtimes: dict[Path, int] = {}
        for path in self._paths:
            with contextlib.suppress(OSError):
                mtimes[path] = path.stat().st_mtime_ns
        return mtimes

    def _detect_changes(self) -> list[Path]:
        """Detect which files have changed since last check.

        Returns:
            List of paths that were created, modified, or deleted.
        """
        current = self._check_mtimes()
        changed: list[Path] = []

        for path, old_mtime in self._mtimes.items():
            new_mtime = current.get(path)
            if new_mtime is None or new_mtime != old_mtime:
                changed.append(path)

        for path in current:
            if path not in self._mtimes:
                changed.append(path)

        self._mtimes = current
        return changed

    def _cancelled(self) -> bool:
        return self._stop.is_set() or (self._cancel is not None and self._cancel.is_set())

    def _poll_loop(self) -> None:
        """Main polling loop."""
        self._mtimes = dict(self._baseline) if self._baseline is not None else self._check_mtimes()

        while not self._stop.wait(self._poll_interval):
            if self._cancelled():
                break

            changed = self._detect_changes()
            if changed:
                _log.info("Config file changed: %s", [str(p) for p in changed])
                try:
                    self._on_change(changed)
                except Exception:
                    _log.exception("Error handling change of %s", [str(p) for p in changed])

        _log.debug("Polling stopped for %s", [str(p) for p in self._paths])

    def start(self) -> None:
        """Start watching for changes on a daemon thread."""
        if self.running:
            return

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            name="tbp-config-watcher",
            daemon=True,
        )
        self._thread.start()
        _log.debug("Config watcher started (interval=%.2fs)", self._poll_interval)

    def stop(self, timeout: float | None = None) -> None:
        """Stop watching for changes."""
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        _log.debug("Config watcher stopped")

    def __enter__(self) -> PollingWatcher:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
