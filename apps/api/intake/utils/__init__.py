"""Utility modules."""

from intake.utils.datetime_parsing import parse_sheet_datetime, sheet_sort_timestamp
from intake.utils.normalization import (
    normalize_email,
    normalize_name,
    normalize_phone,
    split_full_name,
)

__all__ = [
    # Normalization
    "normalize_email",
    "normalize_name",
    "normalize_phone",
    "split_full_name",
    # Datetime
    "parse_sheet_datetime",
    "sheet_sort_timestamp",
]
