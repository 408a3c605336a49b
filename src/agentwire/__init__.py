"""Client-side protocol layer for streaming agent engines."""

from __future__ import annotations

__version__ = "0.1.0"
