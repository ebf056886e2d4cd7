from __future__ import annotations

import re
from datetime import time
from decimal import Decimal
from fractions import Fraction
from typing import Tuple, Union


Number = Union[int, float, str, Decimal, Fraction]

_CLOCK_RE = re.compile(r"^\s*(\d{1,2})\s*[hH:]\s*(\d{2})?\s*$")


def parse_clock(value: str) -> time:
    """Parse ``8h30``, ``08:30`` or ``14h`` into a :class:`time`."""

    match = _CLOCK_RE.match(value or "")
    if match is None:
        raise ValueError(f"Horaire invalide : {value!r}")
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    if hours > 23 or minutes > 59:
        raise ValueError(f"Horaire invalide : {value!r}")
    return time(hours, minutes)


def format_clock(value: time) -> str:
    return f"{value.hour}h{value.minute:02d}"


def parse_period(value: str) -> Tuple[time, time]:
    """Parse a ``8h30-10h00`` range."""

    start_raw, separator, end_raw = (value or "").partition("-")
    if not separator:
        raise ValueError(f"Créneau invalide : {value!r}")
    start, end = parse_clock(start_raw), parse_clock(end_raw)
    if end <= start:
        raise ValueError(f"Créneau invalide : {value!r}")
    return start, end


def as_hours(value: Number | None) -> Fraction:
    """Convert a volume to an exact fraction of hours.

    Floats go through their shortest repr so that ``1.5`` stays ``3/2`` and
    ``0.1`` does not turn into a binary approximation.
    """

    if value is None:
        return Fraction(0)
    if isinstance(value, Fraction):
        return value
    if isinstance(value, float):
        return Fraction(repr(value))
    if isinstance(value, Decimal):
        return Fraction(value)
    return Fraction(str(value).strip().replace(",", "."))


def as_float(value: Fraction, digits: int = 2) -> float:
    return round(float(value), digits)
