"""Human readable byte sizes.

Partition sizes show up in two spellings: parted's byte unit output
("536870912B") and the configuration document ("512MiB", "1GB"). Both go
through parse_size(). Binary prefixes (KiB, MiB, ...) are powers of 1024,
decimal prefixes (K/KB, M/MB, ...) are powers of 1000.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

SIZE_UNPARSEABLE = -1

_SIZE_RE = re.compile(r"^\s*(?P<number>\d+(?:\.\d+)?)\s*(?P<unit>[A-Za-z]*)\s*$")

_PREFIXES = "KMGTPE"

UNITS: dict[str, int] = {"B": 1, "": 1}
for _power, _prefix in enumerate(_PREFIXES, start=1):
    UNITS[_prefix] = 1000**_power
    UNITS[f"{_prefix}B"] = 1000**_power
    UNITS[f"{_prefix}IB"] = 1024**_power
    UNITS[f"{_prefix}I"] = 1024**_power


def parse_size(text: str) -> int:
    """Convert a size string such as "512MiB" or "1048576B" to bytes.

    Raises:
        ValueError: If the number or the unit is not recognized
    """
    if text is None:
        raise ValueError("size cannot be empty")
    match = _SIZE_RE.match(text)
    if not match:
        raise ValueError(f"{text!r} is not a valid size")
    unit = match.group("unit").upper()
    if unit not in UNITS:
        raise ValueError(f"unrecognized unit {match.group('unit')!r} in {text!r}")
    try:
        number = Decimal(match.group("number"))
    except InvalidOperation as error:
        raise ValueError(f"{text!r} is not a valid size") from error
    return int(number * UNITS[unit])


def decode_size(text: str) -> int:
    """Like parse_size(), but returns SIZE_UNPARSEABLE instead of raising."""
    try:
        return parse_size(text)
    except ValueError:
        return SIZE_UNPARSEABLE


def human_size(size_bytes):
    if size_bytes is None:
        return "0B"
    size = float(size_bytes)
    sign = "-" if size < 0 else ""
    size = abs(size)
    for unit in ["B", "KiB", "MiB", "GiB", "TiB"]:
        if size < 1024.0:
            return f"{sign}{size:.1f}{unit}"
        size /= 1024.0
    return f"{sign}{size:.1f}PiB"
