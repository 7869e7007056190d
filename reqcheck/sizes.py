"""
Shorthand byte-size parsing for php.ini style values.

``128M``, ``16k`` and ``1G`` are binary multiples; unit-less values are
bytes and ``-1`` means "no limit". Parsing never raises: malformed input
degrades to ``0`` or to whatever leading integer can be read.
"""

import math
import re
from typing import Optional, Union

ByteSize = Union[int, float]

# Compares greater than every finite size
UNBOUNDED: float = math.inf

_UNITS = {
    "g": 1024 ** 3,
    "m": 1024 ** 2,
    "k": 1024,
}

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def leading_int(value: Optional[str]) -> int:
    """Read the leading integer of a string the way PHP casts it, 0 when there is none."""
    match = _LEADING_INT.match(value or "")
    return int(match.group(1)) if match else 0


def parse_shorthand_size(raw: Optional[str]) -> ByteSize:
    """
    Convert a shorthand size into a byte count.

    Args:
        raw: Directive value such as ``"128M"``; ``None`` is treated as empty

    Returns:
        Number of bytes, or ``UNBOUNDED`` for ``"-1"``
    """
    size = (raw or "").strip()

    if size == "-1":
        return UNBOUNDED

    if size.isdigit() and size.isascii():
        return int(size)

    unit = size[-1:].lower()
    amount = leading_int(size[:-1])

    multiplier = _UNITS.get(unit)
    if multiplier is None:
        return amount
    return amount * multiplier


def is_unbounded(size: ByteSize) -> bool:
    return math.isinf(size)


def format_byte_size(size: ByteSize) -> str:
    """Render a size in mebibytes the way php.ini messages do (``128M``)."""
    if is_unbounded(size):
        return "unlimited"
    megabytes = size / 1048576
    if megabytes == int(megabytes):
        return f"{int(megabytes)}M"
    return f"{megabytes:.2f}M"
