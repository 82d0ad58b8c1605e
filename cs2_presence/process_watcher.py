"""Polls for the game process and reports liveness transitions."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Iterable, Optional, Sequence

import psutil

from . import LOGGER_NAME

_LOGGER = logging.getLogger(f"{LOGGER_NAME}.ProcessWatcher")

GAME_PROCESS_NAMES = ("cs2", "csgo", "Counter-Strike 2", "Counter-Strike Global Offensive")
Callback = Callable[[], None]


def _strip_exe(name: str) -> str:
    lowered = name.strip().lower()
    return lowered[:-4] if lowered.endswith(".exe") else lowered


def count_processes(name: str, processes: Optional[Iterable[psutil.Process]] = None) -> int:
    """Count live processes whose name matches ``name`` (case-insensitive, ``.exe`` optional)."""
    target = _strip_exe(name)
    source = processes if processes is not None else psutil.process_iter(attrs=["name"])
    total = 0
    for proc in source:
        try:
            proc_name = proc.info.get("name") if hasattr(proc, "info") else proc.name()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
        if proc_name and _strip_exe(proc_name) == target:
            total += 1
    return total


class GameProcessWatcher:
    """Owns the "is the game running" flag and flips it on a fixed cadence."""

    def __init__(
        self,
        on_started: Callback,
        on_stopped: Callback,
        *,
        poll_interval: float = 5.0,
        process_names: Sequence[str] = GAME_PROCESS_NAMES,
        counter: Callable[[str], int] = count_processes,
    ) -> None:
        self._on_started = on_started
        self._on_stopped = on_stopped
        self._poll_interval = poll_interval
        self._process_names = tuple(process_names)
        self._counter = counter
        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="CS2Presence-ProcessWatcher", daemon=True)
        self._thread.start()
        _LOGGER.info("Game process monitor started.")

    def stop(self) -> bool:
        self._stop_event.set()
        thread = self._thread
        joined = True
        if thread is not None:
            thread.join(timeout=5.0)
            joined = not thread.is_alive()
            if not joined:
                _LOGGER.warning("Game process monitor did not exit cleanly within 5.0s")
        self._thread = None
        _LOGGER.info("Game process monitor stopped.")
        return joined

    def check_once(self) -> Optional[bool]:
        """Poll once; returns the new liveness on a transition, else ``None``."""
        try:
            running = self._detect()
        except (psutil.Error, OSError) as exc:
            _LOGGER.warning("Error checking game process: %s", exc)
            return None
        if running == self._running:
            return None
        self._running = running
        if running:
            _LOGGER.info("CS2 is now running.")
            self._notify(self._on_started)
        else:
            _LOGGER.info("CS2 is no longer running.")
            self._notify(self._on_stopped)
        return running

    # Internal helpers -----------------------------------------------------

    def _run(self) -> None:
        while not self._stop_event.is_set():
            self.check_once()
            self._stop_event.wait(self._poll_interval)

    def _detect(self) -> bool:
        return any(self._counter(name) > 0 for name in self._process_names)

    def _notify(self, callback: Callback) -> None:
        try:
            callback()
        except Exception:
            _LOGGER.exception("Game process transition callback failed")
