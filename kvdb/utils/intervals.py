"""Parsing of human-readable retention intervals.

Accepted forms, mirroring the PostgreSQL ``INTERVAL`` input syntax:
- a bare number of seconds: ``"3600"``, ``"0.5"``
- one or more ``<amount> <unit>`` pairs: ``"30 days"``, ``"1 hour 30 minutes"``,
  ``"90s"``, ``"2 weeks, 3 days"``, ``"1 month"``, ``"2 mons"``, ``"1 year"``
- a clock component ``HH:MM[:SS]``, alone or after other pairs:
  ``"02:00"``, ``"1 day 02:00:00"``

Calendar units are approximated with fixed lengths: a month is 30 days and
a year is 365.25 days, the same factors PostgreSQL uses when it converts an
interval to an epoch.
"""

from __future__ import annotations

import math
import re
from datetime import timedelta

# Sentinel meaning "retention cleanup is disabled"
CLEANUP_DISABLED = "default_disabled"

_DAY = 86400

_UNIT_SECONDS: dict[str, float] = {
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": _DAY,
    "day": _DAY,
    "days": _DAY,
    "w": 7 * _DAY,
    "week": 7 * _DAY,
    "weeks": 7 * _DAY,
    "mon": 30 * _DAY,
    "mons": 30 * _DAY,
    "month": 30 * _DAY,
    "months": 30 * _DAY,
    "y": 365.25 * _DAY,
    "yr": 365.25 * _DAY,
    "yrs": 365.25 * _DAY,
    "year": 365.25 * _DAY,
    "years": 365.25 * _DAY,
}

_PART_RE = re.compile(
    r"(?P<hours>\d+):(?P<minutes>\d{1,2})(?::(?P<seconds>\d{1,2}(?:\.\d+)?))?"
    r"|(?P<amount>\d+(?:\.\d+)?)\s*(?P<unit>[a-z]+)"
)


def parse_interval(text: str | None) -> timedelta | None:
    """Parse an interval string into a timedelta.

    Args:
        text: Interval expression, empty/None or the disabled sentinel.

    Returns:
        The parsed duration, or None when cleanup is disabled.

    Raises:
        ValueError: If the expression cannot be parsed or is not positive.
    """
    if text is None:
        return None
    normalized = text.strip().lower()
    if not normalized or normalized == CLEANUP_DISABLED:
        return None

    try:
        seconds = float(normalized)
    except ValueError:
        seconds = _parse_parts(normalized)

    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"Interval must be positive: {text!r}")
    return timedelta(seconds=seconds)


def _parse_parts(normalized: str) -> float:
    total = 0.0
    position = 0
    for match in _PART_RE.finditer(normalized):
        gap = normalized[position:match.start()]
        if gap.strip(" ,"):
            raise ValueError(f"Invalid interval: {normalized!r}")
        total += _part_seconds(match, normalized)
        position = match.end()

    if position == 0 or normalized[position:].strip(" ,"):
        raise ValueError(f"Invalid interval: {normalized!r}")
    return total


def _part_seconds(match: re.Match[str], normalized: str) -> float:
    if match["hours"] is not None:
        minutes = int(match["minutes"])
        seconds = float(match["seconds"] or 0)
        if minutes >= 60 or seconds >= 60:
            raise ValueError(f"Invalid clock component in {normalized!r}")
        return int(match["hours"]) * 3600 + minutes * 60 + seconds

    unit = match["unit"]
    if unit not in _UNIT_SECONDS:
        raise ValueError(f"Unknown interval unit {unit!r} in {normalized!r}")
    return float(match["amount"]) * _UNIT_SECONDS[unit]
