"""Unit-aware formatting for metric values."""

from __future__ import annotations

_BYTE_UNITS = ["B", "KB", "MB", "GB", "TB", "PB"]


def format_bytes(value: float) -> str:
    size = float(value)
    for unit in _BYTE_UNITS:
        if abs(size) < 1024 or unit == _BYTE_UNITS[-1]:
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}{_BYTE_UNITS[-1]}"


def format_duration_ms(value: float) -> str:
    if abs(value) < 1000:
        return f"{value:g}ms"
    seconds = value / 1000
    if abs(seconds) < 60:
        return f"{seconds:.1f}s"
    return f"{seconds / 60:.1f}m"


def format_number(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}"


def format_by_unit(value: float, unit: str = "number") -> str:
    """Render ``value`` for humans according to a metric unit."""
    if unit == "bytes":
        return format_bytes(value)
    if unit == "timeMs":
        return format_duration_ms(value)
    if unit == "percentage":
        return f"{value:.0f}%" if float(value).is_integer() else f"{value:.1f}%"
    return format_number(value)
