"""Match lifecycle tracking over normalized game state."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Tuple

from . import LOGGER_NAME
from .game_state import MENU, UNKNOWN, NormalizedState

_LOGGER = logging.getLogger(f"{LOGGER_NAME}.MatchTracker")


class MatchEvent(str, Enum):
    ENTERED_MATCH = "entered_match"
    LEFT_MATCH = "left_match"
    MAP_CHANGED = "map_changed"


@dataclass
class MatchState:
    is_in_match: bool = False
    last_known_map: str = UNKNOWN
    start_time: float = field(default_factory=time.time)


@dataclass(frozen=True)
class MatchUpdate:
    """Outcome of folding one snapshot into the match state."""

    events: Tuple[MatchEvent, ...] = ()
    is_in_match: bool = False
    last_known_map: str = UNKNOWN
    is_esc_menu: bool = False

    @property
    def transitioned(self) -> bool:
        return bool(self.events)


class MatchTracker:
    """Holds the last known snapshot and the match-lifecycle flags.

    All reads and writes go through ``lock``. The presence synchronizer passes
    its own re-entrant lock in so a tracker update and the dispatch decision
    that follows it form one critical section.
    """

    def __init__(
        self,
        lock: Optional[threading.RLock] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._lock = lock if lock is not None else threading.RLock()
        self._clock = clock
        self._state = MatchState(start_time=clock())
        self._latest = NormalizedState()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def latest(self) -> NormalizedState:
        with self._lock:
            return self._latest

    def snapshot(self) -> MatchState:
        with self._lock:
            return MatchState(
                is_in_match=self._state.is_in_match,
                last_known_map=self._state.last_known_map,
                start_time=self._state.start_time,
            )

    def apply(self, state: Optional[NormalizedState]) -> MatchUpdate:
        if state is None:
            _LOGGER.error("Ignoring empty game state update")
            with self._lock:
                return self._update(())
        with self._lock:
            self._latest = state
            has_map_data = state.has_map_data
            events: Tuple[MatchEvent, ...] = ()
            if has_map_data and not self._state.is_in_match:
                self._state.is_in_match = True
                self._state.last_known_map = state.current_map
                events = (MatchEvent.ENTERED_MATCH,)
                _LOGGER.info("Player entered match on map: %s", state.current_map)
            elif not has_map_data and self._state.is_in_match:
                self._state.is_in_match = False
                self._state.last_known_map = UNKNOWN
                events = (MatchEvent.LEFT_MATCH,)
                _LOGGER.info("Player returned to main menu")
            elif has_map_data and state.current_map != self._state.last_known_map:
                previous = self._state.last_known_map
                self._state.last_known_map = state.current_map
                events = (MatchEvent.MAP_CHANGED,)
                _LOGGER.info("Map changed: %s -> %s", previous, state.current_map)
            is_esc_menu = self._state.is_in_match and state.current_activity == MENU and has_map_data
            return self._update(events, is_esc_menu)

    def reset(self) -> None:
        """Drop back to "not in match" without touching the start time."""
        with self._lock:
            self._state.is_in_match = False
            self._state.last_known_map = UNKNOWN
            self._latest = NormalizedState()

    def mark_game_started(self) -> None:
        with self._lock:
            self.reset()
            self._state.start_time = self._clock()

    def _update(self, events: Tuple[MatchEvent, ...], is_esc_menu: bool = False) -> MatchUpdate:
        return MatchUpdate(
            events=events,
            is_in_match=self._state.is_in_match,
            last_known_map=self._state.last_known_map,
            is_esc_menu=is_esc_menu,
        )
