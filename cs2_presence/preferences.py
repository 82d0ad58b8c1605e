"""JSON-backed runtime configuration for the presence bridge."""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

CONFIG_FILE = "config.json"
DEFAULT_APPLICATION_ID = "1352354388399882333"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_HTTP_PORT = 3000
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MIN_UPDATE_INTERVAL = 1.0
_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _coerce_bool(raw: Any, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return bool(raw)
    if isinstance(raw, str):
        token = raw.strip().lower()
        if token in {"1", "true", "yes", "on"}:
            return True
        if token in {"0", "false", "no", "off"}:
            return False
    return default


@dataclass
class Preferences:
    """Simple JSON-backed configuration store.

    Constructed once at startup and handed to every component that needs it.
    Values that fail to parse fall back to their defaults one field at a time.
    """

    config_dir: Path
    host: str = DEFAULT_HOST
    http_port: int = DEFAULT_HTTP_PORT
    application_id: str = DEFAULT_APPLICATION_ID
    show_map: bool = True
    show_game_mode: bool = True
    show_score: bool = True
    show_team: bool = True
    process_poll_interval: float = DEFAULT_POLL_INTERVAL
    min_update_interval: float = DEFAULT_MIN_UPDATE_INTERVAL
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        self.config_dir = Path(self.config_dir)
        self._path = self.config_dir / CONFIG_FILE
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def listen_url(self) -> str:
        return f"http://{self.host}:{self.http_port}/"

    # Persistence ---------------------------------------------------------

    def _load(self) -> None:
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return
        except (OSError, json.JSONDecodeError):
            return
        if not isinstance(data, dict):
            return
        host = str(data.get("host", DEFAULT_HOST) or "").strip()
        self.host = host or DEFAULT_HOST
        try:
            port = int(data.get("http_port", DEFAULT_HTTP_PORT))
        except (TypeError, ValueError):
            port = DEFAULT_HTTP_PORT
        self.http_port = port if 1 <= port <= 65535 else DEFAULT_HTTP_PORT
        app_id = str(data.get("application_id", DEFAULT_APPLICATION_ID) or "").strip()
        self.application_id = app_id or DEFAULT_APPLICATION_ID
        self.show_map = _coerce_bool(data.get("show_map"), True)
        self.show_game_mode = _coerce_bool(data.get("show_game_mode"), True)
        self.show_score = _coerce_bool(data.get("show_score"), True)
        self.show_team = _coerce_bool(data.get("show_team"), True)
        try:
            interval = float(data.get("process_poll_interval", DEFAULT_POLL_INTERVAL))
        except (TypeError, ValueError):
            interval = DEFAULT_POLL_INTERVAL
        self.process_poll_interval = max(1.0, min(interval, 60.0))
        try:
            min_interval = float(data.get("min_update_interval", DEFAULT_MIN_UPDATE_INTERVAL))
        except (TypeError, ValueError):
            min_interval = DEFAULT_MIN_UPDATE_INTERVAL
        self.min_update_interval = max(0.5, min_interval)
        level = str(data.get("log_level", "INFO") or "INFO").strip().upper()
        self.log_level = level if level in _LOG_LEVELS else "INFO"

    def save(self) -> None:
        payload: Dict[str, Any] = {
            "host": str(self.host or DEFAULT_HOST),
            "http_port": int(self.http_port),
            "application_id": str(self.application_id or DEFAULT_APPLICATION_ID),
            "show_map": bool(self.show_map),
            "show_game_mode": bool(self.show_game_mode),
            "show_score": bool(self.show_score),
            "show_team": bool(self.show_team),
            "process_poll_interval": float(self.process_poll_interval),
            "min_update_interval": float(self.min_update_interval),
            "log_level": str(self.log_level or "INFO"),
        }
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
