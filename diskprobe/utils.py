from __future__ import annotations
from typing import Tuple

from .models import Measurement

UNITS = ("B", "KB", "MB", "GB", "TB", "PB")
UNMEASURED = "-"

def scale_bytes(num: int) -> Tuple[float, str]:
    """Largest binary unit that keeps the value under 1024 (PB is the ceiling)."""
    value = float(num)
    for unit in UNITS[:-1]:
        if value < 1024.0:
            return value, unit
        value /= 1024.0
    return value, UNITS[-1]

def format_bytes(num: int) -> str:
    if num < 0:
        return str(num)
    value, unit = scale_bytes(num)
    if unit == "B":
        return f"{int(value)} B"
    return f"{value:.2f} {unit}"

def format_measured(m: Measurement) -> str:
    """Formatted size, or "-" when the size was never actually measured."""
    return format_bytes(m.bytes) if m.measured else UNMEASURED
