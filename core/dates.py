"""Calendar-date helpers for effective-date strings.

Dates arrive as ``YYYY-MM-DD`` or ``MM/DD/YYYY``. Both are built from their
explicit year/month/day parts so no timezone can move a date by a day.
"""

from __future__ import annotations

import re
from datetime import date
from typing import Optional

from core.errors import DateParseError

_ISO = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ].*)?\s*$")
_US = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")


def parse_date(value: object) -> date:
    if isinstance(value, date):
        return value
    s = "" if value is None else str(value)
    match = _ISO.match(s)
    if match:
        year, month, day = (int(g) for g in match.groups())
    else:
        match = _US.match(s)
        if not match:
            raise DateParseError(f"Invalid date format: {s!r}")
        month, day, year = (int(g) for g in match.groups())
    try:
        return date(year, month, day)
    except ValueError as exc:
        raise DateParseError(f"Invalid date: {s!r} ({exc})") from exc


def try_parse_date(value: object) -> Optional[date]:
    try:
        return parse_date(value)
    except DateParseError:
        return None


def format_date(value: object) -> str:
    """Render as MM/DD/YYYY; unparseable input is returned unchanged."""
    if value is None or value == "":
        return "-"
    parsed = try_parse_date(value)
    if parsed is None:
        return str(value)
    return f"{parsed.month:02d}/{parsed.day:02d}/{parsed.year}"
