"""Harvest date normalization."""

import calendar
import re

EXPECTED_FORMATS = "Expected DD-MM-YYYY or YYYY-MM-DD"

_ISO_RE = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})$")
_DMY_RE = re.compile(r"^([0-9]{2})-([0-9]{2})-([0-9]{4})$")


def _check(value: str, year: int, month: int, day: int) -> None:
    if month < 1 or month > 12:
        raise ValueError(f"Invalid date format: {value}. Invalid month {month:02d}. {EXPECTED_FORMATS}")
    last_day = calendar.monthrange(year, month)[1]
    if day < 1 or day > last_day:
        raise ValueError(f"Invalid date format: {value}. Invalid day {day:02d}. {EXPECTED_FORMATS}")


def normalize_date(value: str) -> str:
    """
    Normalize a harvest date to ``YYYY-MM-DD``.

    Accepts ``YYYY-MM-DD`` (returned unchanged) and ``DD-MM-YYYY``. Day and month
    ranges are checked against the calendar, so US-style ``MM-DD-YYYY`` input
    with a day above 12 is rejected rather than silently swapped.
    """
    value = (value or "").strip()

    iso = _ISO_RE.match(value)
    if iso:
        year, month, day = (int(part) for part in iso.groups())
        _check(value, year, month, day)
        return value

    dmy = _DMY_RE.match(value)
    if dmy:
        day, month, year = (int(part) for part in dmy.groups())
        _check(value, year, month, day)
        return f"{year:04d}-{month:02d}-{day:02d}"

    raise ValueError(f"Invalid date format: {value!r}. {EXPECTED_FORMATS}")
