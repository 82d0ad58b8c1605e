"""Discord IPC client adapter with an explicit connection state machine."""
from __future__ import annotations

import asyncio
import logging
import threading
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Protocol

from pypresence import Presence, PyPresenceException

from . import LOGGER_NAME

_LOGGER = logging.getLogger(f"{LOGGER_NAME}.PresenceClient")

StateListener = Callable[["ClientState", "ClientState"], None]


class ClientState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    ERROR = "error"


class ClientEvent(str, Enum):
    CONNECT = "connect"
    CONNECTED = "connected"
    FAILED = "failed"
    DISPOSED = "disposed"


_TRANSITIONS = {
    (ClientState.DISCONNECTED, ClientEvent.CONNECT): ClientState.CONNECTING,
    (ClientState.ERROR, ClientEvent.CONNECT): ClientState.CONNECTING,
    (ClientState.CONNECTING, ClientEvent.CONNECTED): ClientState.READY,
    (ClientState.CONNECTING, ClientEvent.FAILED): ClientState.ERROR,
    (ClientState.READY, ClientEvent.FAILED): ClientState.ERROR,
}


def next_state(state: ClientState, event: ClientEvent) -> ClientState:
    """Pure transition function; unknown pairs leave the state unchanged."""
    if event is ClientEvent.DISPOSED:
        return ClientState.DISCONNECTED
    return _TRANSITIONS.get((state, event), state)


class PresenceClientError(RuntimeError):
    """Raised when the presence client cannot complete a call."""


class PresenceClient(Protocol):
    @property
    def state(self) -> ClientState: ...

    def initialize(self) -> None: ...
    def set_presence(self, payload: Mapping[str, Any]) -> None: ...
    def clear_presence(self) -> None: ...
    def dispose(self) -> None: ...
    def add_listener(self, listener: StateListener) -> None: ...


_CLIENT_ERRORS = (PyPresenceException, OSError, RuntimeError, asyncio.TimeoutError)


class PypresenceClient:
    """Wraps :class:`pypresence.Presence` so every call is fallible and bounded."""

    def __init__(
        self,
        application_id: str,
        *,
        connection_timeout: float = 5.0,
        response_timeout: float = 5.0,
        presence_factory: Callable[..., Any] = Presence,
    ) -> None:
        self._application_id = application_id
        self._connection_timeout = connection_timeout
        self._response_timeout = response_timeout
        self._presence_factory = presence_factory
        self._rpc: Optional[Any] = None
        self._state = ClientState.DISCONNECTED
        self._state_lock = threading.Lock()
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ClientState.READY and self._rpc is not None

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def initialize(self) -> None:
        self._transition(ClientEvent.CONNECT)
        try:
            rpc = self._presence_factory(
                self._application_id,
                connection_timeout=self._connection_timeout,
                response_timeout=self._response_timeout,
            )
            rpc.connect()
        except _CLIENT_ERRORS as exc:
            self._rpc = None
            self._transition(ClientEvent.FAILED)
            raise PresenceClientError(f"Failed to connect to Discord: {exc}") from exc
        self._rpc = rpc
        self._transition(ClientEvent.CONNECTED)

    def set_presence(self, payload: Mapping[str, Any]) -> None:
        self._call("update", **dict(payload))

    def clear_presence(self) -> None:
        self._call("clear")

    def dispose(self) -> None:
        rpc = self._rpc
        self._rpc = None
        if rpc is not None:
            try:
                rpc.close()
            except _CLIENT_ERRORS as exc:
                _LOGGER.debug("Error closing Discord IPC connection: %s", exc)
        self._transition(ClientEvent.DISPOSED)

    # Internal helpers -----------------------------------------------------

    def _call(self, method: str, **kwargs: Any) -> None:
        rpc = self._rpc
        if rpc is None or self._state is not ClientState.READY:
            raise PresenceClientError(f"Discord client not ready (state={self._state.value})")
        try:
            getattr(rpc, method)(**kwargs)
        except _CLIENT_ERRORS as exc:
            self._transition(ClientEvent.FAILED)
            raise PresenceClientError(f"Discord {method} failed: {exc}") from exc

    def _transition(self, event: ClientEvent) -> None:
        with self._state_lock:
            previous = self._state
            self._state = next_state(previous, event)
            current = self._state
        if current is previous:
            return
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception as exc:
                _LOGGER.warning("Presence state listener raised error: %s", exc)
