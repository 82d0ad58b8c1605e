"""Central version information for the CS2 rich presence bridge."""
from __future__ import annotations

__version__ = "1.2.0"
