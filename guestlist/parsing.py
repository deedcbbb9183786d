"""Parsing and formatting of the free-text values a scheduler enters.

Floor grants are typed as comma-separated tokens such as ``"1,3,5"`` or
``"2-4,7"``. Parsing is lenient: malformed tokens are dropped instead of
failing the whole input, and an empty result is left for the caller to reject.
"""

from __future__ import annotations

import datetime as dt
import re
from typing import Iterable

# Leading integer prefix, in the spirit of a lenient ``parseInt``: optional
# sign, digits, anything after the digits is ignored.
INT_PREFIX_PATTERN = re.compile(r"^\s*([+-]?\d+)")
ARRIVAL_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")

NOT_SPECIFIED = "Not specified"


def parse_floor_access(text: str) -> list[int]:
    """Convert floor-access text into an ascending list of distinct floors.

    Single values must be positive. Range bounds are only required to parse
    and be ordered, so ``"0-2"`` yields ``[0, 1, 2]`` while ``"0"`` yields
    nothing. Reversed ranges (``"5-3"``) are dropped.
    """

    floors: set[int] = set()
    for part in text.split(","):
        part = part.strip()
        if "-" in part:
            pieces = part.split("-")
            start = _parse_int(pieces[0])
            end = _parse_int(pieces[1])
            if start is not None and end is not None and start <= end:
                floors.update(range(start, end + 1))
        else:
            value = _parse_int(part)
            if value is not None and value > 0:
                floors.add(value)
    return sorted(floors)


def widest_range(text: str) -> int:
    """Return the member count of the largest well-formed range in ``text``."""

    widest = 0
    for part in text.split(","):
        if "-" not in part:
            continue
        pieces = part.strip().split("-")
        start = _parse_int(pieces[0])
        end = _parse_int(pieces[1])
        if start is not None and end is not None and start <= end:
            widest = max(widest, end - start + 1)
    return widest


def coerce_floors(value: object) -> tuple[int, ...]:
    """Normalise a floor grant read back from a store into a FloorSet."""

    if value is None:
        return ()
    if isinstance(value, str):
        # Older rows kept the raw text instead of the parsed list.
        return tuple(parse_floor_access(value))
    floors: set[int] = set()
    for item in value:  # type: ignore[union-attr]
        if isinstance(item, bool):
            continue
        if isinstance(item, int):
            floors.add(item)
            continue
        parsed = _parse_int(str(item))
        if parsed is not None:
            floors.add(parsed)
    return tuple(sorted(floors))


def format_floors(floors: Iterable[int]) -> str:
    text = ", ".join(str(floor) for floor in floors)
    return text or NOT_SPECIFIED


def normalize_visit_date(value: str | dt.date) -> dt.date:
    """Return the visit date for ``value`` (a date or a ``YYYY-MM-DD`` string)."""

    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    try:
        return dt.date.fromisoformat(value.strip())
    except (AttributeError, ValueError) as exc:
        raise ValueError(f"Invalid visit date: {value!r}") from exc


def normalize_arrival(value: str | None) -> str | None:
    """Return ``HH:MM:SS`` for an ``HH:MM`` or ``HH:MM:SS`` arrival time."""

    if value is None or not value.strip():
        return None
    match = ARRIVAL_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f"Invalid arrival time: {value!r}")
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"Invalid arrival time: {value!r}")
    return f"{hour:02d}:{minute:02d}:{second:02d}"


def format_arrival(value: str | None) -> str:
    """Render an arrival time for people, e.g. ``"14:30:00"`` -> ``"2:30 PM"``."""

    if not value:
        return NOT_SPECIFIED
    try:
        canonical = normalize_arrival(value)
    except ValueError:
        # Rows written by other clients may hold free text such as "2:30 PM".
        return value.strip()
    hour, minute = int(canonical[0:2]), int(canonical[3:5])
    suffix = "AM" if hour < 12 else "PM"
    return f"{hour % 12 or 12}:{minute:02d} {suffix}"


def format_visit_date(value: dt.date) -> str:
    return f"{value:%A}, {value:%B} {value.day}, {value.year}"


def _parse_int(text: str) -> int | None:
    match = INT_PREFIX_PATTERN.match(text)
    return int(match.group(1)) if match else None


__all__ = [
    "coerce_floors",
    "format_arrival",
    "format_floors",
    "format_visit_date",
    "normalize_arrival",
    "normalize_visit_date",
    "parse_floor_access",
    "widest_range",
]
