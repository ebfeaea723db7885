"""Pydantic schemas for clients."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from intake.db.enums import (
    Channel,
    ClientStatus,
    ContactMethod,
    CustomerType,
    EstimateStatus,
    InvoiceStatus,
    NotificationStatus,
    UrgencyLevel,
)
from intake.utils.normalization import normalize_email, normalize_name, normalize_phone

CLIENT_ID_PATTERN = r"^CLI\d{6}[A-Z0-9]{3}$"

# Columns that must keep a value once a client exists
NON_NULLABLE_FIELDS = (
    "client_full_name",
    "email",
    "service_type",
    "project_address",
    "urgency_level",
    "customer_type",
    "preferred_contact_method",
    "channel",
    "status",
    "invoice_status",
    "estimate_status",
    "form_emailer_status",
)


class ClientCreate(BaseModel):
    """Input schema for creating a client. Unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid")

    client_id: str | None = Field(None, pattern=CLIENT_ID_PATTERN)

    # Contact (required)
    client_full_name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    service_type: str = Field(..., min_length=1, max_length=100)
    project_address: str = Field(..., min_length=1)

    # Contact (optional)
    phone_number: str | None = Field(None, max_length=20)
    company_name: str | None = Field(None, max_length=100)

    # Project details
    urgency_level: UrgencyLevel | None = None
    customer_type: CustomerType | None = None
    technical_description: str | None = None
    budget_range: str | None = Field(None, max_length=50)
    expected_timeline: str | None = Field(None, max_length=50)
    preferred_contact_method: ContactMethod | None = None
    additional_notes: str | None = None
    special_requirements: str | None = None
    channel: Channel | None = None
    responsable: str | None = Field(None, max_length=100)

    @field_validator("client_full_name", mode="before")
    @classmethod
    def clean_name(cls, v):
        if isinstance(v, str):
            return normalize_name(v) or ""
        return v

    @field_validator("email", mode="before")
    @classmethod
    def clean_email(cls, v):
        if isinstance(v, str):
            return normalize_email(v) or ""
        return v

    @field_validator("phone_number", mode="before")
    @classmethod
    def clean_phone(cls, v):
        if isinstance(v, str):
            return normalize_phone(v)
        return v

    @field_validator(
        "service_type",
        "project_address",
        "company_name",
        "technical_description",
        "budget_range",
        "expected_timeline",
        "additional_notes",
        "special_requirements",
        "responsable",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class ClientImport(ClientCreate):
    """A client arriving from an external source, workflow fields included."""

    status: ClientStatus | None = None
    invoice_status: InvoiceStatus | None = None
    estimate_status: EstimateStatus | None = None
    form_emailer_status: NotificationStatus | None = None
    sheet_row_index: int | None = Field(None, ge=1)


class ClientUpdate(BaseModel):
    """Patch schema for an existing client. client_id cannot be changed."""

    model_config = ConfigDict(extra="forbid")

    client_full_name: str | None = Field(None, min_length=1, max_length=100)
    email: EmailStr | None = None
    phone_number: str | None = Field(None, max_length=20)
    company_name: str | None = Field(None, max_length=100)
    service_type: str | None = Field(None, min_length=1, max_length=100)
    project_address: str | None = Field(None, min_length=1)
    urgency_level: UrgencyLevel | None = None
    customer_type: CustomerType | None = None
    technical_description: str | None = None
    budget_range: str | None = Field(None, max_length=50)
    expected_timeline: str | None = Field(None, max_length=50)
    preferred_contact_method: ContactMethod | None = None
    additional_notes: str | None = None
    special_requirements: str | None = None
    channel: Channel | None = None
    responsable: str | None = Field(None, max_length=100)

    status: ClientStatus | None = None
    invoice_status: InvoiceStatus | None = None
    estimate_status: EstimateStatus | None = None
    form_emailer_status: NotificationStatus | None = None

    @model_validator(mode="after")
    def reject_null_required(self):
        nulls = sorted(
            name for name in NON_NULLABLE_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        )
        if nulls:
            raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return self

    @field_validator("client_full_name", mode="before")
    @classmethod
    def clean_name(cls, v):
        if isinstance(v, str):
            return normalize_name(v) or ""
        return v

    @field_validator("email", mode="before")
    @classmethod
    def clean_email(cls, v):
        if isinstance(v, str):
            return normalize_email(v) or ""
        return v

    @field_validator("phone_number", mode="before")
    @classmethod
    def clean_phone(cls, v):
        if isinstance(v, str):
            return normalize_phone(v)
        return v

    @field_validator(
        "service_type",
        "project_address",
        "company_name",
        "technical_description",
        "budget_range",
        "expected_timeline",
        "additional_notes",
        "special_requirements",
        "responsable",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


class ClientRead(BaseModel):
    """Client as returned to callers."""

    model_config = ConfigDict(from_attributes=True)

    client_id: str
    sheet_row_index: int | None = None
    company_name: str | None = None
    service_type: str
    urgency_level: str
    client_full_name: str
    email: str
    phone_number: str | None = None
    customer_type: str
    project_address: str
    technical_description: str | None = None
    budget_range: str | None = None
    expected_timeline: str | None = None
    preferred_contact_method: str
    additional_notes: str | None = None
    special_requirements: str | None = None
    channel: str
    responsable: str | None = None
    status: str
    form_emailer_status: str
    invoice_status: str
    estimate_status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ClientPage(BaseModel):
    clients: list[ClientRead]
    pagination: Pagination


class ClientStats(BaseModel):
    total: int = 0
    new_leads: int = 0
    contacted: int = 0
    quoted: int = 0
    pending_inspection: int = 0
    in_progress: int = 0
    completed: int = 0
    cancelled: int = 0


class ImportFailure(BaseModel):
    """One rejected record from an import batch."""

    index: int
    client_id: str | None = None
    reason: str
    errors: list[Any] = Field(default_factory=list)


class ImportSummary(BaseModel):
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    error_details: list[ImportFailure] = Field(default_factory=list)
    imported_ids: list[str] = Field(default_factory=list)


class OperationResult(BaseModel):
    """Uniform result of every public client operation."""

    success: bool
    message: str
    data: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, message: str, data: Any = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, message: str, error: str) -> "OperationResult":
        return cls(success=False, message=message, error=error)
