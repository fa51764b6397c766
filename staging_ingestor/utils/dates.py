"""Date normalization shared by every row parser.

All parsers emit date cells as canonical ``yyyy-mm-dd`` strings (or ``None``),
so staged rows compare identically regardless of the source file format.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any

import pandas as pd

_DAY_FIRST = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_ISO = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


def _format(year: int, month: int, day: int) -> str | None:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_date(value: Any) -> str | None:
    """Return ``value`` as a ``yyyy-mm-dd`` string, or ``None`` when unparseable.

    Accepted forms, in order: ``datetime``/``date`` objects, ``dd/mm/yyyy`` and
    ``d-m-yyyy`` (day first), ISO ``yyyy-mm-dd``, then a generic timestamp parse
    for text containing at least one digit. Relative words such as ``now`` or
    ``today`` are therefore unparseable. Never raises.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = str(value).strip()
    if not text:
        return None

    match = _DAY_FIRST.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return _format(year, month, day)

    match = _ISO.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _format(year, month, day)

    if not any(char.isdigit() for char in text):
        return None
    try:
        parsed = pd.Timestamp(text)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(parsed):
        return None
    return parsed.date().isoformat()
