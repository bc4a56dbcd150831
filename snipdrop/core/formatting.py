"""Human-readable formatting helpers."""

import math

_SUFFIXES = ["B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB"]
_UNIT = 1024.0


def humanize_bytes(num_bytes: int) -> str:
    """Format a byte count with binary units, e.g. 1536 -> '1.5 KiB'."""
    if num_bytes < _UNIT:
        return f"{int(num_bytes)} B"
    base = min(int(math.log2(num_bytes)) // 10, len(_SUFFIXES) - 1)
    units = math.floor(num_bytes / _UNIT**base * 100) / 100
    text = f"{units:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SUFFIXES[base]}"
