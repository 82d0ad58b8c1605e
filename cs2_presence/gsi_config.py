"""Renders the game-side integration descriptor that points CS2 at the bridge."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Mapping, Optional, Tuple

from . import LOGGER_NAME

_LOGGER = logging.getLogger(f"{LOGGER_NAME}.GSIConfig")

GSI_CONFIG_FILENAME = "gamestate_integration_cs2rpc.cfg"
GSI_SUBDIR = "gamestate_integration"
DEFAULT_NAME = "CS2 Rich Presence"
DEFAULT_TIMINGS = (
    ("timeout", "5.0"),
    ("buffer", "0.1"),
    ("throttle", "0.5"),
    ("heartbeat", "60.0"),
)
DEFAULT_DATA = {
    "provider": True,
    "map": True,
    "round": True,
    "player_id": True,
    "player_state": True,
    "player_weapons": False,
    "player_match_stats": False,
}


def _kv_line(key: str, value: str, indent: int) -> str:
    quoted = f'"{key}"'
    return f'{" " * indent}{quoted:<22} "{value}"'


def render_gsi_config(
    host: str,
    port: int,
    *,
    name: str = DEFAULT_NAME,
    data: Optional[Mapping[str, bool]] = None,
) -> str:
    """Return the KeyValues text for a ``gamestate_integration_*.cfg`` file."""
    categories = dict(DEFAULT_DATA)
    if data:
        categories.update({key: bool(value) for key, value in data.items()})
    lines = [f'"{name}"', "{", _kv_line("uri", f"http://{host}:{port}", 4)]
    lines.extend(_kv_line(key, value, 4) for key, value in DEFAULT_TIMINGS)
    lines.append('    "data"')
    lines.append("    {")
    lines.extend(_kv_line(key, "1" if enabled else "0", 8) for key, enabled in categories.items())
    lines.append("    }")
    lines.append("}")
    return "\n".join(lines) + "\n"


def write_gsi_config(
    cfg_dir: Path,
    host: str,
    port: int,
    *,
    data: Optional[Mapping[str, bool]] = None,
) -> Tuple[Path, bool]:
    """Write the descriptor under ``cfg_dir``; existing files are left alone.

    Returns the target path and whether a file was written.
    """
    cfg_dir = Path(cfg_dir)
    target_dir = cfg_dir / GSI_SUBDIR
    try:
        target_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        _LOGGER.warning("Failed to create %s (%s); using %s", target_dir, exc, cfg_dir)
        target_dir = cfg_dir
    target = target_dir / GSI_CONFIG_FILENAME
    if target.exists():
        _LOGGER.info("CS2 GSI config already exists at: %s", target)
        return target, False
    target.write_text(render_gsi_config(host, port, data=data), encoding="utf-8")
    _LOGGER.info("CS2 GSI config created at: %s", target)
    return target, True
