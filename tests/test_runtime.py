from __future__ import annotations

from cs2_presence.preferences import Preferences
from cs2_presence.presence_client import ClientState
from cs2_presence.process_watcher import GameProcessWatcher
from cs2_presence.runtime import PresenceRuntime


class _DummyClient:
    def __init__(self) -> None:
        self.state = ClientState.DISCONNECTED
        self.calls = []

    def add_listener(self, listener) -> None:
        pass

    def initialize(self) -> None:
        self.calls.append("initialize")
        self.state = ClientState.READY

    def set_presence(self, payload) -> None:
        self.calls.append(("set", payload["details"]))

    def clear_presence(self) -> None:
        self.calls.append("clear")

    def dispose(self) -> None:
        self.calls.append("dispose")


class _DummyWatcher:
    def __init__(self, order, stop_result: bool = True) -> None:
        self.order = order
        self.stop_result = stop_result
        self.is_running = False

    def start(self) -> None:
        self.order.append("watcher.start")

    def stop(self) -> bool:
        self.order.append("watcher.stop")
        return self.stop_result


class _DummyServer:
    url = "http://127.0.0.1:3000/"

    def __init__(self, order, should_start: bool = True) -> None:
        self.order = order
        self.should_start = should_start

    def start(self) -> bool:
        self.order.append("server.start")
        return self.should_start

    def stop(self) -> None:
        self.order.append("server.stop")


def _runtime(tmp_path, *, server_ok: bool = True):
    order = []
    client = _DummyClient()
    runtime = PresenceRuntime(
        Preferences(tmp_path),
        client=client,
        watcher=_DummyWatcher(order),
        server=_DummyServer(order, should_start=server_ok),
    )
    return runtime, client, order


def test_start_and_stop_order(tmp_path):
    runtime, client, order = _runtime(tmp_path)

    assert runtime.start() is True
    assert runtime.running is True
    runtime.stop()
    runtime.stop()

    assert order == ["watcher.start", "server.start", "server.stop", "watcher.stop"]
    assert client.calls == ["initialize", "dispose"]
    assert runtime.running is False


def test_server_failure_stops_watcher(tmp_path):
    runtime, _client, order = _runtime(tmp_path, server_ok=False)

    assert runtime.start() is False

    assert order == ["watcher.start", "server.start", "watcher.stop"]
    assert runtime.running is False


def test_presence_follows_watcher_liveness(tmp_path):
    runtime, client, _order = _runtime(tmp_path)
    runtime.start()

    runtime.watcher.is_running = True
    runtime.synchronizer.game_started()
    assert client.calls[-1] == ("set", "In Main Menu")

    runtime.watcher.is_running = False
    runtime.synchronizer.game_stopped()
    assert client.calls[-1] == "clear"
    runtime.stop()


def test_default_watcher_is_built_and_drives_liveness(tmp_path):
    client = _DummyClient()
    runtime = PresenceRuntime(Preferences(tmp_path), client=client, server=_DummyServer([]))

    assert isinstance(runtime.watcher, GameProcessWatcher)
    assert runtime.watcher.is_running is False
    assert runtime.synchronizer.set_default_presence() is False
    assert client.calls == []
