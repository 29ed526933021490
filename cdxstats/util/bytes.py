"""
Utility functions for byte/size formatting
"""

from typing import List

UNITS: List[str] = ["B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB"]


def human_size(num_bytes: int) -> str:
    """
    Format bytes as human-readable string using binary prefixes.

    The largest unit that keeps the mantissa at or above 1 is chosen.
    Plain bytes are printed without decimals, every other unit with one.

    Args:
        num_bytes: Number of bytes

    Returns:
        Formatted string (e.g., "1023 B", "1.2 KiB")
    """
    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(UNITS) - 1:
        value /= 1024
        unit += 1
    precision = 1 if unit else 0
    return f"{value:.{precision}f} {UNITS[unit]}"
