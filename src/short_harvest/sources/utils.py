"""Utility helpers for scraping."""
from __future__ import annotations

import re
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from dateutil import parser

from ..errors import InvalidDateError, MalformedNumberError


DATE_SHAPE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")

# Positions are published once a day, no later than 15:30 local time.
DISCLOSURE_TIME = time(15, 30)


def parse_weight(value: str | None) -> float:
    """Parse a comma decimal percentage such as ``"0,52"``.

    Weights are not range checked.
    """

    if value is None or not value.strip():
        raise MalformedNumberError("Missing short position weight")
    cleaned = value.strip().replace("%", "").strip().replace(",", ".")
    try:
        return float(cleaned)
    except ValueError as exc:
        raise MalformedNumberError(f"Unparseable short position weight: {value!r}") from exc


def parse_position_date(value: str | None) -> date:
    """Parse a ``dd/mm/YYYY`` position date.

    dateutil swaps day and month when the month is out of range, so the parsed
    fields are checked against the text.
    """

    match = DATE_SHAPE.match(value.strip()) if value is not None else None
    if match is None:
        raise InvalidDateError(f"Failed to parse the short position open date: {value!r}")
    day, month, year = (int(group) for group in match.groups())
    try:
        parsed = parser.parse(match.group(0), dayfirst=True).date()
    except (ValueError, OverflowError) as exc:
        raise InvalidDateError(f"Failed to parse the short position open date: {value!r}") from exc
    if (parsed.day, parsed.month, parsed.year) != (day, month, year):
        raise InvalidDateError(f"Position date is not day/month/year: {value!r}")
    return parsed


def disclosure_timestamp(day: date, tz: ZoneInfo | str) -> datetime:
    """Pin ``day`` to the daily disclosure time in ``tz`` and convert it to UTC.

    Local times that are skipped or repeated by a DST transition do not map to a
    single instant and are rejected.
    """

    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    local = datetime.combine(day, DISCLOSURE_TIME, tzinfo=zone)
    if local.utcoffset() != local.replace(fold=1).utcoffset():
        raise InvalidDateError(f"{local.isoformat()} does not map to a single UTC instant")
    return local.astimezone(timezone.utc)


__all__ = ["parse_weight", "parse_position_date", "disclosure_timestamp", "DISCLOSURE_TIME"]
