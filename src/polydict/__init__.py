"""polydict: one query surface over local, web and LLM dictionaries."""

from __future__ import annotations

__version__ = "0.1.0"
