"""Tolerant number, date and time parsing for broker tradebook cells.

Spreadsheet exports are messy: amounts carry currency symbols and thousands
separators, losses arrive in accounting parentheses, formula errors leak into
cells and dates come as ISO strings, day-first or month-first numerics,
textual month names or raw Excel serials. Everything here degrades to ``0``
or ``None`` instead of raising so a single bad cell never aborts an import.
"""
from __future__ import annotations

import logging
import math
import re
from datetime import date, datetime, time, timedelta
from enum import Enum
from numbers import Number
from typing import Optional

logger = logging.getLogger(__name__)

SPREADSHEET_ERRORS = frozenset({"#DIV/0!", "#N/A", "#ERROR!", "#VALUE!", "#REF!", "#NAME?", "#NULL!", "#NUM!"})

# Excel stores dates as days since 1899-12-30 (which also absorbs the 1900 leap bug).
EXCEL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_MIN = 20000  # 1954-10-03
EXCEL_SERIAL_MAX = 80000  # 2119-01-10

MONTHS = {
    "jan": 1, "january": 1,
    "feb": 2, "february": 2,
    "mar": 3, "march": 3,
    "apr": 4, "april": 4,
    "may": 5,
    "jun": 6, "june": 6,
    "jul": 7, "july": 7,
    "aug": 8, "august": 8,
    "sep": 9, "sept": 9, "september": 9,
    "oct": 10, "october": 10,
    "nov": 11, "november": 11,
    "dec": 12, "december": 12,
}

_SIMPLE_NUMBER = re.compile(r"^-?\d+(\.\d*)?$")
_STRIP_CHARS = re.compile(r"[₹$€£¥,\s%\"']")
_NON_NUMERIC = re.compile(r"[^\d.\-]")
_DECIMAL_COMMA = re.compile(r"^-?\d+,\d{1,2}$")

_ISO = re.compile(r"^(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})(?:[T\s].*)?$")
_NUMERIC = re.compile(r"^(\d{1,2})[-/.](\d{1,2})(?:[-/.](\d{2}|\d{4}))?(?:\s.*)?$")
_EXCEL_TEXT = re.compile(r"^\d{5}(\.\d+)?$")
_DAY_MONTH_TEXT = re.compile(r"^(\d{1,2})[\s\-/]+([A-Za-z]{3,9})\.?(?:[\s\-/,]+(\d{2}|\d{4}))?(?:\s.*)?$")
_MONTH_DAY_TEXT = re.compile(r"^([A-Za-z]{3,9})\.?[\s\-/]+(\d{1,2})(?:[\s,\-/]+(\d{2}|\d{4}))?(?:\s.*)?$")
_TIME = re.compile(r"(\d{1,2}):(\d{2})(?::(\d{2}))?(?:\.\d+)?\s*([AaPp][Mm])?")


class DateFormat(str, Enum):
    AUTO = "auto"
    ISO = "iso"
    DMY_SLASH = "dmy_slash"
    DMY_DASH = "dmy_dash"
    DMY_DOT = "dmy_dot"
    MDY_SLASH = "mdy_slash"
    DMY_TEXT_FULL = "dmy_text_full"
    DMY_TEXT_SHORT = "dmy_text_short"
    DMY_TEXT_NO_YEAR = "dmy_text_no_year"
    MDY_TEXT_FULL = "mdy_text_full"
    MDY_TEXT_SHORT = "mdy_text_short"


def parse_number(value: object) -> float:
    """Parse a spreadsheet cell into a float, returning ``0.0`` when unusable."""

    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, Number):
        number = float(value)  # type: ignore[arg-type]
        return number if math.isfinite(number) else 0.0

    text = str(value).strip()
    if not text or text.upper() in SPREADSHEET_ERRORS:
        return 0.0
    if _SIMPLE_NUMBER.match(text):
        return float(text)

    negative = text.startswith("(") and text.endswith(")")
    if negative:
        text = text[1:-1]

    if _DECIMAL_COMMA.match(text.replace(" ", "")):
        text = text.replace(",", ".")
    cleaned = _NON_NUMERIC.sub("", _STRIP_CHARS.sub("", text))
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return -abs(number) if negative else number


def excel_serial_to_date(serial: float) -> Optional[date]:
    if not EXCEL_SERIAL_MIN <= serial <= EXCEL_SERIAL_MAX:
        return None
    return EXCEL_EPOCH + timedelta(days=int(serial))


def _expand_year(year: int) -> int:
    return year + 2000 if year < 100 else year


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _month_number(name: str) -> Optional[int]:
    return MONTHS.get(name.lower().rstrip("."))


def _default_year(default_year: Optional[int]) -> int:
    return default_year if default_year is not None else date.today().year


def _parse_text_month(text: str, *, day_first: bool, default_year: Optional[int]) -> Optional[date]:
    pattern = _DAY_MONTH_TEXT if day_first else _MONTH_DAY_TEXT
    match = pattern.match(text)
    if not match:
        return None
    if day_first:
        day_text, month_text, year_text = match.groups()
    else:
        month_text, day_text, year_text = match.groups()
    month = _month_number(month_text)
    if month is None:
        return None
    year = _expand_year(int(year_text)) if year_text else _default_year(default_year)
    return _safe_date(year, month, int(day_text))


def _parse_numeric(text: str, *, day_first: bool, default_year: Optional[int]) -> Optional[date]:
    match = _NUMERIC.match(text)
    if not match:
        return None
    first, second, year_text = match.groups()
    year = _expand_year(int(year_text)) if year_text else _default_year(default_year)
    if day_first:
        return _safe_date(year, int(second), int(first))
    return _safe_date(year, int(first), int(second))


def is_ambiguous_date(value: object) -> bool:
    """True when a numeric date could be read both day-first and month-first."""

    if not isinstance(value, str):
        return False
    match = _NUMERIC.match(value.strip())
    if not match:
        return False
    first, second = int(match.group(1)), int(match.group(2))
    return first <= 12 and second <= 12 and first != second


def _parse_auto(text: str, default_year: Optional[int]) -> Optional[date]:
    match = _ISO.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return _safe_date(year, month, day)

    if _EXCEL_TEXT.match(text):
        return excel_serial_to_date(float(text))

    parsed = _parse_text_month(text, day_first=True, default_year=default_year)
    if parsed is None:
        parsed = _parse_text_month(text, day_first=False, default_year=default_year)
    if parsed is not None:
        return parsed

    match = _NUMERIC.match(text)
    if match:
        first, second = int(match.group(1)), int(match.group(2))
        # Day above 12 settles the order; otherwise Indian tradebooks are day-first.
        day_first = not (first <= 12 < second)
        return _parse_numeric(text, day_first=day_first, default_year=default_year)

    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None


def parse_date(
    value: object,
    fmt: DateFormat | str = DateFormat.AUTO,
    *,
    default_year: Optional[int] = None,
) -> Optional[date]:
    """Parse a date cell, honouring an explicit format hint when given.

    ``default_year`` fills in year-less values such as ``24 Jul``. Genuinely
    ambiguous numerics (``03/04/2024``) resolve day-first in auto mode; callers
    wanting to flag them should check :func:`is_ambiguous_date`.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, Number):
        number = float(value)  # type: ignore[arg-type]
        return excel_serial_to_date(number) if math.isfinite(number) else None

    text = str(value).strip()
    if not text:
        return None

    fmt = DateFormat(fmt)
    if fmt is DateFormat.AUTO:
        return _parse_auto(text, default_year)
    if fmt is DateFormat.ISO:
        match = _ISO.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            return _safe_date(year, month, day)
    elif fmt in (DateFormat.DMY_SLASH, DateFormat.DMY_DASH, DateFormat.DMY_DOT):
        parsed = _parse_numeric(text, day_first=True, default_year=default_year)
        if parsed is not None:
            return parsed
    elif fmt is DateFormat.MDY_SLASH:
        parsed = _parse_numeric(text, day_first=False, default_year=default_year)
        if parsed is not None:
            return parsed
    elif fmt in (DateFormat.DMY_TEXT_FULL, DateFormat.DMY_TEXT_SHORT, DateFormat.DMY_TEXT_NO_YEAR):
        parsed = _parse_text_month(text, day_first=True, default_year=default_year)
        if parsed is not None:
            return parsed
    elif fmt in (DateFormat.MDY_TEXT_FULL, DateFormat.MDY_TEXT_SHORT):
        parsed = _parse_text_month(text, day_first=False, default_year=default_year)
        if parsed is not None:
            return parsed

    logger.debug("Date %r did not match hint %s; falling back to auto detection", text, fmt.value)
    return _parse_auto(text, default_year)


def parse_time(value: object) -> Optional[time]:
    """Extract a wall-clock time from a time or timestamp cell."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    if isinstance(value, Number) and not isinstance(value, bool):
        fraction = float(value) % 1  # type: ignore[arg-type]
        if not math.isfinite(fraction) or fraction == 0:
            return None
        seconds = int(round(fraction * 86400)) % 86400
        return time(seconds // 3600, (seconds % 3600) // 60, seconds % 60)

    match = _TIME.search(str(value))
    if not match:
        return None
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    meridiem = (match.group(4) or "").lower()
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    try:
        return time(hour, minute, second)
    except ValueError:
        return None


__all__ = [
    "DateFormat",
    "EXCEL_EPOCH",
    "MONTHS",
    "SPREADSHEET_ERRORS",
    "excel_serial_to_date",
    "is_ambiguous_date",
    "parse_date",
    "parse_number",
    "parse_time",
]
