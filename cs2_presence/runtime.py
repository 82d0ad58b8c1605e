"""Startup and shutdown wiring for the presence bridge."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from . import LOGGER_NAME
from .gsi_server import GameStateServer
from .preferences import Preferences
from .presence_client import PresenceClient, PypresenceClient
from .presence_sync import PresenceSynchronizer
from .process_watcher import GameProcessWatcher

_LOGGER = logging.getLogger(f"{LOGGER_NAME}.Runtime")


class PresenceRuntime:
    """Owns every long-lived component so nothing lives in module globals."""

    def __init__(
        self,
        preferences: Preferences,
        *,
        client: Optional[PresenceClient] = None,
        watcher: Optional[GameProcessWatcher] = None,
        server: Optional[GameStateServer] = None,
    ) -> None:
        self.preferences = preferences
        self.client = client if client is not None else PypresenceClient(preferences.application_id)
        self.synchronizer = PresenceSynchronizer(self.client, preferences, is_game_running=self._is_game_running)
        self._watcher: GameProcessWatcher = watcher if watcher is not None else GameProcessWatcher(
            on_started=self.synchronizer.game_started,
            on_stopped=self.synchronizer.game_stopped,
            poll_interval=preferences.process_poll_interval,
        )
        self.server = server if server is not None else GameStateServer(
            preferences.host,
            preferences.http_port,
            self.synchronizer.handle_state,
        )
        self._lock = threading.Lock()
        self._running = False

    @property
    def watcher(self) -> GameProcessWatcher:
        return self._watcher

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> bool:
        with self._lock:
            if self._running:
                return True
            if not self.synchronizer.initialize():
                _LOGGER.warning("Discord not reachable at startup; will retry on the next presence update")
            self.watcher.start()
            if not self.server.start():
                _LOGGER.error("Game state server failed to start; running in degraded mode.")
                self.watcher.stop()
                return False
            self._running = True
        _LOGGER.info("Rich presence bridge started (listening on %s)", self.server.url)
        return True

    def stop(self) -> None:
        with self._lock:
            if not self._running:
                return
            self._running = False
        _LOGGER.info("Rich presence bridge stopping")
        self.server.stop()
        if not self.watcher.stop():
            _LOGGER.warning("Game process monitor stop reported incomplete shutdown")
        self.synchronizer.shutdown()

    def _is_game_running(self) -> bool:
        return self._watcher.is_running
