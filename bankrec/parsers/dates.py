"""Normalize the date formats found in bank statement exports."""

import re
from datetime import date, datetime
from typing import Any, Optional

import pandas as pd

# Textual month formats accepted before the numeric heuristics
NAMED_MONTH_FORMATS = [
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%d-%b-%Y",
    "%d-%B-%Y",
]

DAY_MONTH_YEAR = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
YEAR_MONTH_DAY = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


def normalize_date(value: Any) -> Optional[date]:
    """
    Convert a raw statement cell into a calendar date.

    Tries, in order: native date values, ISO-8601 and named-month text,
    ``D/M/YYYY`` or ``D-M-YYYY`` (day-first only when the first group is
    greater than 12, month-first otherwise), then unpadded ``YYYY-M-D``.

    Ambiguous dates such as ``03/05/2024`` resolve month-first (5 March).
    There is no locale in a CSV to tell them apart.

    Returns:
        The date, or None when the value cannot be read as one.
    """
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp, datetime)):
        return None if pd.isna(value) else value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    return _parse_native(text) or _parse_day_month(text) or _parse_year_month_day(text)


def _parse_native(text: str) -> Optional[date]:
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(iso).date()
    except ValueError:
        pass

    for fmt in NAMED_MONTH_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    return None


def _parse_day_month(text: str) -> Optional[date]:
    match = DAY_MONTH_YEAR.match(text)
    if not match:
        return None

    first, second, year = (int(group) for group in match.groups())
    if first > 12:
        day, month = first, second
    else:
        month, day = first, second

    return _safe_date(year, month, day)


def _parse_year_month_day(text: str) -> Optional[date]:
    match = YEAR_MONTH_DAY.match(text)
    if not match:
        return None
    year, month, day = (int(group) for group in match.groups())
    return _safe_date(year, month, day)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None
