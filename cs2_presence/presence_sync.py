"""Builds rich presence payloads from tracked match state and dispatches them."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from . import LOGGER_NAME
from .game_state import PLAYING, SPECTATOR, UNKNOWN, NormalizedState, format_game_mode
from .match_tracker import MatchState, MatchTracker, MatchUpdate
from .preferences import Preferences
from .presence_client import ClientState, PresenceClient, PresenceClientError

_LOGGER = logging.getLogger(f"{LOGGER_NAME}.Presence")

LARGE_IMAGE_KEY = "cs2_logo"
LARGE_IMAGE_TEXT = "Counter-Strike 2"
GAME_LABEL = "CS2"
MENU_DETAILS = "In Main Menu"
MENU_STATE = "Waiting for a match"
IN_MATCH_STATE = "In a match"
STANDARD_MAP_PREFIXES = frozenset({"de", "cs", "ar", "gg"})
RECONNECT_DELAY = 1.0


@dataclass(frozen=True)
class DisplayOptions:
    show_map: bool = True
    show_game_mode: bool = True
    show_score: bool = True
    show_team: bool = True

    @classmethod
    def from_preferences(cls, preferences: Preferences) -> "DisplayOptions":
        return cls(
            show_map=preferences.show_map,
            show_game_mode=preferences.show_game_mode,
            show_score=preferences.show_score,
            show_team=preferences.show_team,
        )


@dataclass(frozen=True)
class PresencePayload:
    details: str
    state: str
    large_image: str = LARGE_IMAGE_KEY
    large_text: str = LARGE_IMAGE_TEXT
    small_image: Optional[str] = None
    small_text: Optional[str] = None
    start: Optional[int] = None

    def fingerprint(self) -> str:
        """Change-detection key over the displayed fields; ``start`` is not included."""
        return "|".join((self.details, self.state, self.large_image, self.small_text or ""))

    def to_kwargs(self) -> Dict[str, Any]:
        fields = {
            "details": self.details,
            "state": self.state,
            "large_image": self.large_image,
            "large_text": self.large_text,
            "small_image": self.small_image,
            "small_text": self.small_text,
            "start": self.start,
        }
        return {key: value for key, value in fields.items() if value is not None}


# Payload composition --------------------------------------------------------


def map_image_key(map_name: Optional[str]) -> Optional[str]:
    """Derive the small-image asset key for a map name.

    Official map families keep their prefix (``de_dust2``); any other prefixed
    name is reduced to its final segment (``workshop_foo_bar`` -> ``bar``).
    """
    if not map_name or map_name == UNKNOWN:
        return None
    base = map_name
    if "_" in map_name:
        prefix = map_name.split("_", 1)[0]
        if prefix.lower() not in STANDARD_MAP_PREFIXES:
            base = map_name.rsplit("_", 1)[1]
    return base.lower() or None


def compose_team_segment(state: NormalizedState) -> str:
    is_spectator = state.current_team == SPECTATOR
    is_dead = state.has_player_state and not state.player_alive
    if is_spectator and state.current_activity == PLAYING and is_dead:
        if state.player_team and state.player_team != SPECTATOR:
            return f"Team: {state.player_team} (Dead)"
        return "Dead"
    if is_spectator:
        return "Spectating"
    if not state.current_team:
        return ""
    segment = f"Team: {state.current_team}"
    if is_dead:
        segment += " (Dead)"
    return segment


def build_details(map_name: str, game_mode: str, options: DisplayOptions) -> str:
    parts = []
    if options.show_map and map_name and map_name != UNKNOWN:
        parts.append(f"Map: {map_name}")
    if options.show_game_mode and game_mode and game_mode != UNKNOWN:
        parts.append(f"Mode: {format_game_mode(game_mode)}")
    return " | ".join(parts) if parts else f"Playing {GAME_LABEL}"


def build_state_text(state: NormalizedState, options: DisplayOptions) -> str:
    parts = []
    if options.show_score:
        parts.append(f"Score: CT {state.ct_score} - T {state.t_score}")
    if options.show_team:
        team_segment = compose_team_segment(state)
        if team_segment:
            parts.append(team_segment)
    return " | ".join(parts) if parts else IN_MATCH_STATE


def build_menu_payload(start_time: Optional[float] = None) -> PresencePayload:
    return PresencePayload(
        details=MENU_DETAILS,
        state=MENU_STATE,
        start=int(start_time) if start_time is not None else None,
    )


def build_presence(match: MatchState, state: NormalizedState, options: DisplayOptions) -> PresencePayload:
    if not match.is_in_match:
        return build_menu_payload(match.start_time)
    map_name = match.last_known_map
    image_key = map_image_key(map_name)
    return PresencePayload(
        details=build_details(map_name, state.current_game_mode, options),
        state=build_state_text(state, options),
        small_image=image_key,
        small_text=map_name if image_key else None,
        start=int(match.start_time),
    )


# Synchronizer ---------------------------------------------------------------


class PresenceSynchronizer:
    """Owns the match tracker plus the dispatch bookkeeping behind one lock.

    Every entry point takes the same re-entrant lock, so reading the match
    state, computing the transition, building the payload, comparing hashes
    and recording the dispatch happen as one atomic step. A failed client call
    disposes the connection under the lock; the retry wait and reconnect run
    after the entry point has released it.
    """

    def __init__(
        self,
        client: PresenceClient,
        preferences: Preferences,
        is_game_running: Callable[[], bool],
        *,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        retry_delay: float = RECONNECT_DELAY,
    ) -> None:
        self._client = client
        self._is_game_running = is_game_running
        self._options = DisplayOptions.from_preferences(preferences)
        self._min_interval = float(preferences.min_update_interval)
        self._clock = clock
        self._sleep = sleep
        self._retry_delay = retry_delay
        self._lock = threading.RLock()
        self._tracker = MatchTracker(lock=self._lock, clock=wall_clock)
        self._last_hash: Optional[str] = None
        self._last_dispatch: Optional[float] = None
        self._cleared = True
        self._reconnect_pending = False
        self._reconnecting = False
        self._closed = False
        client.add_listener(self._on_client_state)

    @property
    def tracker(self) -> MatchTracker:
        return self._tracker

    @property
    def is_cleared(self) -> bool:
        with self._lock:
            return self._cleared

    # Lifecycle ------------------------------------------------------------

    def initialize(self) -> bool:
        with self._lock:
            self._closed = False
            return self._connect()

    def shutdown(self) -> None:
        with self._lock:
            self._clear_locked()
            self._reconnect_pending = False
            self._closed = True
            self._client.dispose()
            self._last_hash = None

    # Entry points ---------------------------------------------------------

    def handle_state(self, state: Optional[NormalizedState]) -> bool:
        """Fold one normalized snapshot into the tracker and sync presence."""
        with self._lock:
            update = self._tracker.apply(state)
            if update.is_esc_menu:
                _LOGGER.debug("Escape menu open during match; keeping match presence")
            dispatched = self._sync_locked(update)
        self._recover()
        return dispatched

    def sync_presence(self, update: Optional[MatchUpdate] = None) -> bool:
        with self._lock:
            dispatched = self._sync_locked(update)
        self._recover()
        return dispatched

    def set_default_presence(self) -> bool:
        with self._lock:
            if not self._is_game_running():
                self._clear_locked()
                dispatched = False
            else:
                self._tracker.mark_game_started()
                _LOGGER.info("Setting default Discord presence")
                payload = build_menu_payload(self._tracker.snapshot().start_time)
                dispatched = self._dispatch_locked(payload, force=True)
        self._recover()
        return dispatched

    def clear_presence(self) -> bool:
        with self._lock:
            cleared = self._clear_locked()
        self._recover()
        return cleared

    def game_started(self) -> None:
        self.set_default_presence()

    def game_stopped(self) -> None:
        with self._lock:
            self._clear_locked()
            self._tracker.reset()
        self._recover()

    # Internal helpers -----------------------------------------------------

    def _sync_locked(self, update: Optional[MatchUpdate]) -> bool:
        if not self._is_game_running():
            if not self._cleared:
                self._clear_locked()
                self._tracker.reset()
            return False
        payload = build_presence(self._tracker.snapshot(), self._tracker.latest, self._options)
        transitioned = update is not None and update.transitioned
        return self._dispatch_locked(payload, force=transitioned)

    def _dispatch_locked(self, payload: PresencePayload, *, force: bool) -> bool:
        fingerprint = payload.fingerprint()
        if fingerprint == self._last_hash and not force:
            return False
        if self._reconnect_pending or self._reconnecting:
            _LOGGER.debug("Presence update dropped while the Discord client reconnects")
            return False
        now = self._clock()
        if self._last_dispatch is not None and now - self._last_dispatch < self._min_interval:
            _LOGGER.debug("Presence update throttled (%.2fs since last dispatch)", now - self._last_dispatch)
            return False
        self._last_dispatch = now
        try:
            self._client.set_presence(payload.to_kwargs())
        except PresenceClientError as exc:
            _LOGGER.warning("Error updating presence: %s", exc)
            self._discard_client()
            return False
        self._last_hash = fingerprint
        self._cleared = False
        if payload.details == MENU_DETAILS:
            _LOGGER.info("Updated presence: In main menu")
        else:
            _LOGGER.info("Updated presence: %s | %s", payload.details, payload.state)
        return True

    def _clear_locked(self) -> bool:
        if self._cleared:
            return False
        if not (self._reconnect_pending or self._reconnecting):
            try:
                self._client.clear_presence()
            except PresenceClientError as exc:
                _LOGGER.warning("Error clearing presence: %s", exc)
                self._discard_client()
        self._cleared = True
        self._last_hash = None
        return True

    def _discard_client(self) -> None:
        self._client.dispose()
        self._last_hash = None
        self._reconnect_pending = True

    def _recover(self) -> None:
        """Wait out the retry delay without the lock held, then reconnect."""
        with self._lock:
            if not self._reconnect_pending or self._reconnecting:
                return
            self._reconnect_pending = False
            self._reconnecting = True
        try:
            self._sleep(self._retry_delay)
            with self._lock:
                if self._closed:
                    return
                if not self._connect():
                    _LOGGER.warning("Discord client unavailable; presence left stale until the next update")
        finally:
            with self._lock:
                self._reconnecting = False

    def _connect(self) -> bool:
        try:
            self._client.initialize()
        except PresenceClientError as exc:
            _LOGGER.warning("%s", exc)
            return False
        return True

    def _on_client_state(self, previous: ClientState, current: ClientState) -> None:
        if current is ClientState.READY:
            _LOGGER.info("Connected to Discord successfully.")
        elif current is ClientState.ERROR:
            _LOGGER.warning("Discord connection error (was %s); make sure Discord is running.", previous.value)
        else:
            _LOGGER.debug("Discord client state %s -> %s", previous.value, current.value)
