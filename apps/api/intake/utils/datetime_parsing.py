"""Datetime parsing helpers for spreadsheet timestamps."""

from __future__ import annotations

import re
from datetime import datetime, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DATETIME_FORMATS: list[str] = [
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%m-%d-%Y %H:%M:%S",
    "%m-%d-%Y %H:%M",
    "%m/%d/%Y",
    "%m-%d-%Y",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
]


def parse_sheet_datetime(raw_value: str | None) -> datetime | None:
    """Parse a timestamp or date cell as written by the form/spreadsheet.

    Naive values are treated as UTC. Returns None when nothing matches.
    """
    if not raw_value:
        return None
    value = raw_value.strip()
    if not value:
        return None

    # Epoch timestamps (seconds or milliseconds)
    if re.fullmatch(r"\d{10,13}", value):
        ts = int(value)
        if len(value) == 13:
            ts = ts / 1000
        return datetime.fromtimestamp(ts, tz=timezone.utc)

    # ISO 8601 timestamps
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    except ValueError:
        pass

    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def sheet_sort_timestamp(timestamp: str | None, date_value: str | None = None) -> float:
    """Sort key for a sheet row.

    Uses the timestamp cell when it is non-empty, otherwise the date cell.
    Unparseable values sort as epoch 0.
    """
    raw = (timestamp or "").strip() or (date_value or "").strip()
    parsed = parse_sheet_datetime(raw)
    return (parsed or EPOCH).timestamp()
