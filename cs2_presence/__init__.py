"""Bridge Counter-Strike 2 Game State Integration pushes to Discord rich presence."""
from __future__ import annotations

from .version import __version__

LOGGER_NAME = "CS2Presence"
LOG_TAG = "CS2-RichPresence"

__all__ = ["LOGGER_NAME", "LOG_TAG", "__version__"]
