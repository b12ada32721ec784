"""Centralized color constants (GitHub Dark palette)."""

ACCENT = "#7FA6D9"
BORDER = "#30363D"
DIM = "#6E7681"
TEXT = "#E6EDF3"
MUTED = "#8B949E"
SEPARATOR = "#484F58"

SUCCESS = "#57DB9C"
WARN = "#E3B341"
ERROR = "#F85149"
INFO = "#58A6FF"

__all__ = [
    "ACCENT", "BORDER", "DIM", "TEXT", "MUTED", "SEPARATOR",
    "SUCCESS", "WARN", "ERROR", "INFO",
]
