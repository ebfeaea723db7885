"""Recover field names from the spreadsheet's header row.

The form tool writes header cells like ``"Client Full Name (required)"`` and
staff sometimes paste sample data into them, so only the first token of each
header cell is kept and lookups are case-insensitive substring matches.

A few fields cannot be found reliably by name at all (several headers share
the ``Client`` / ``Customer`` first token). Those are read from fixed column
positions instead, listed in ``TRUSTED_COLUMN_OFFSETS``. The two tables
never share a field.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# =============================================================================
# Lookup tables
# =============================================================================

# Fields read by fixed zero-based column position, bypassing header names.
TRUSTED_COLUMN_OFFSETS: dict[str, int] = {
    "client_full_name": 10,  # K  Client Full Name
    "email": 11,  # L  E-mail
    "address": 12,  # M  Address
    "phone_number": 14,  # O  Customer Phone Number
    "service_requested": 20,  # U  Service Requested (shares the "Service" token)
}

# Fields read by partial header name. First matching header wins, so
# "Client" resolves to "Client ID" and "Customer" to "Customer Status".
NAME_LOOKUPS: dict[str, str] = {
    "form_emailer_status": "FormEmailer",
    "client_id": "Client",
    "invoice_status": "Invoice",
    "estimate_status": "Estimate",
    "status": "Customer",
    "responsable": "Responsable",
    "timestamp": "Timestamp",
    "date": "Date",
    "channel": "Channel",
    "service_type": "Service",
    "customer_type": "Customer",
    "technical_description": "Technical",
    "price": "Price",
    "company_name": "Company",
    "project_address": "Project",
    "urgency_level": "Urgency",
    "preferred_contact_method": "Preferred",
    "additional_notes": "Additional",
    "budget_range": "Budget",
    "expected_timeline": "Expected",
    "special_requirements": "Special",
}


# =============================================================================
# Header recovery
# =============================================================================

def recover_headers(header_row: list[str]) -> list[str]:
    """Keep the text before the first whitespace of each header cell."""
    headers = []
    for cell in header_row:
        tokens = (cell or "").split()
        headers.append(tokens[0] if tokens else "")
    return headers


@dataclass
class RecoveredSchema:
    """Recovered header names plus lookup helpers for one ingestion pass."""

    headers: list[str]
    _lowered: list[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._lowered = [header.lower() for header in self.headers]

    @classmethod
    def from_header_row(cls, header_row: list[str]) -> "RecoveredSchema":
        return cls(headers=recover_headers(header_row))

    def find_index(self, partial_name: str) -> int | None:
        needle = partial_name.lower()
        for index, header in enumerate(self._lowered):
            if needle in header:
                return index
        return None

    def get_value(self, row: list[str], partial_name: str) -> str:
        """Value of the first header containing ``partial_name``, or ``""``."""
        index = self.find_index(partial_name)
        if index is None or index >= len(row):
            return ""
        return row[index] or ""

    @staticmethod
    def get_trusted(row: list[str], field_name: str) -> str:
        """Value at the fixed column offset for ``field_name``, or ``""``."""
        offset = TRUSTED_COLUMN_OFFSETS[field_name]
        if offset >= len(row):
            return ""
        return row[offset] or ""

    def extract(self, row: list[str]) -> dict[str, str]:
        """All known fields for a row: trusted offsets first, then names."""
        values = {name: self.get_trusted(row, name) for name in TRUSTED_COLUMN_OFFSETS}
        for field_name, partial in NAME_LOOKUPS.items():
            values[field_name] = self.get_value(row, partial)
        return values
