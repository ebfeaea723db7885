"""Canonical shape of a client row recovered from the spreadsheet export."""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict

from intake.db.enums import (
    DEFAULT_CHANNEL,
    DEFAULT_CLIENT_STATUS,
    DEFAULT_CONTACT_METHOD,
    DEFAULT_CUSTOMER_TYPE,
    DEFAULT_ESTIMATE_STATUS,
    DEFAULT_INVOICE_STATUS,
    DEFAULT_NOTIFICATION_STATUS,
    DEFAULT_URGENCY_LEVEL,
    Channel,
    ClientStatus,
    ContactMethod,
    CustomerType,
    EstimateStatus,
    InvoiceStatus,
    NotificationStatus,
    UrgencyLevel,
)
from intake.schemas.client import CLIENT_ID_PATTERN


_CLIENT_ID_RE = re.compile(CLIENT_ID_PATTERN)


def _coerce(value: str, enum_cls, default):
    """Map a free-text cell onto an enum value (case-insensitive), else default."""
    cleaned = (value or "").strip().lower()
    for member in enum_cls:
        if member.value.lower() == cleaned:
            return member.value
    return default.value


class SheetClientRecord(BaseModel):
    """
    One spreadsheet row after schema recovery.

    Every field is declared and defaults to ``""``; unknown keys are rejected.
    ``row_index`` is the 1-based sheet row at ingestion time and is only valid
    for writes issued from that same ingestion pass.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    row_index: int

    # Positional (trusted offsets)
    client_full_name: str = ""
    email: str = ""
    address: str = ""
    phone_number: str = ""

    # Name lookups
    form_emailer_status: str = ""
    client_id: str = ""
    invoice_status: str = ""
    estimate_status: str = ""
    status: str = ""
    responsable: str = ""
    timestamp: str = ""
    date: str = ""
    channel: str = ""
    service_type: str = ""
    customer_type: str = ""
    technical_description: str = ""
    price: str = ""
    company_name: str = ""
    project_address: str = ""
    service_requested: str = ""
    urgency_level: str = ""
    preferred_contact_method: str = ""
    additional_notes: str = ""
    special_requirements: str = ""
    budget_range: str = ""
    expected_timeline: str = ""

    @property
    def has_client_id(self) -> bool:
        return bool(_CLIENT_ID_RE.match(self.client_id.strip()))

    def to_import_payload(self, default_company: str) -> dict[str, Any]:
        """
        Build a ``ClientImport`` payload.

        Option fields are coerced to the recognized values; the "Customer"
        header collision means customer_type often carries a status string,
        which falls back to the default here.
        """
        payload: dict[str, Any] = {
            "client_id": self.client_id.strip() if self.has_client_id else None,
            "client_full_name": self.client_full_name,
            "email": self.email,
            "phone_number": self.phone_number or None,
            "company_name": self.company_name or default_company,
            "service_type": self.service_type or self.service_requested,
            "project_address": self.project_address or self.address,
            "technical_description": self.technical_description or None,
            "budget_range": self.budget_range or None,
            "expected_timeline": self.expected_timeline or None,
            "additional_notes": self.additional_notes or None,
            "special_requirements": self.special_requirements or None,
            "responsable": self.responsable or None,
            "urgency_level": _coerce(self.urgency_level, UrgencyLevel, DEFAULT_URGENCY_LEVEL),
            "customer_type": _coerce(self.customer_type, CustomerType, DEFAULT_CUSTOMER_TYPE),
            "preferred_contact_method": _coerce(
                self.preferred_contact_method, ContactMethod, DEFAULT_CONTACT_METHOD
            ),
            "channel": _coerce(self.channel, Channel, DEFAULT_CHANNEL),
            "status": _coerce(self.status, ClientStatus, DEFAULT_CLIENT_STATUS),
            "invoice_status": _coerce(self.invoice_status, InvoiceStatus, DEFAULT_INVOICE_STATUS),
            "estimate_status": _coerce(
                self.estimate_status, EstimateStatus, DEFAULT_ESTIMATE_STATUS
            ),
            "form_emailer_status": _coerce(
                self.form_emailer_status, NotificationStatus, DEFAULT_NOTIFICATION_STATUS
            ),
            "sheet_row_index": self.row_index,
        }
        return payload
