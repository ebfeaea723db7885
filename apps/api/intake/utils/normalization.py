"""Data normalization utilities for consistent data quality."""

import re
from typing import Optional


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Normalize email to lowercase.

    Args:
        email: Raw email input

    Returns:
        Lowercased email or None if empty
    """
    if not email:
        return None
    return email.strip().lower() or None


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize name by stripping whitespace and collapsing multiple spaces.

    Args:
        name: Raw name input

    Returns:
        Cleaned name or None if empty
    """
    if not name:
        return None
    return " ".join(name.split()) or None


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Tidy a free-form phone number.

    Keeps the caller's formatting (sheet users type extensions and
    international prefixes) but collapses whitespace and drops values
    with no digits at all.
    """
    if not phone:
        return None
    cleaned = " ".join(phone.split())
    if not re.search(r"\d", cleaned):
        return None
    return cleaned


def split_full_name(full_name: Optional[str]) -> tuple[str, str]:
    """Split a full name into (first word, last word).

    A single-word name is returned as both parts.
    """
    parts = (normalize_name(full_name) or "").split(" ")
    if not parts[0]:
        return "", ""
    return parts[0], parts[-1]
