"""SQLAlchemy ORM models for clients, audit trail, reports and system config."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import (
    Date,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from intake.db.base import Base
from intake.db.enums import (
    DEFAULT_CHANNEL,
    DEFAULT_CLIENT_STATUS,
    DEFAULT_CONTACT_METHOD,
    DEFAULT_CUSTOMER_TYPE,
    DEFAULT_ESTIMATE_STATUS,
    DEFAULT_INVOICE_STATUS,
    DEFAULT_NOTIFICATION_STATUS,
    DEFAULT_URGENCY_LEVEL,
    ConfigType,
    ReportStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Clients
# =============================================================================

class Client(Base):
    """
    Canonical client record.

    client_id is the stable business identifier (CLI + 6 digits + 3 chars).
    sheet_row_index is the last row observed in the spreadsheet mirror; it is
    informational only and never used to address a write.
    """
    __tablename__ = "clients"
    __table_args__ = (
        Index("idx_clients_status", "status"),
        Index("idx_clients_created_at", "created_at"),
        Index("idx_clients_email", "email"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    client_id: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    sheet_row_index: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Profile
    company_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    service_type: Mapped[str] = mapped_column(String(100))
    urgency_level: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_URGENCY_LEVEL.value, server_default=DEFAULT_URGENCY_LEVEL.value
    )
    client_full_name: Mapped[str] = mapped_column(String(100))
    email: Mapped[str] = mapped_column(String(255))
    phone_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    customer_type: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_CUSTOMER_TYPE.value, server_default=DEFAULT_CUSTOMER_TYPE.value
    )
    project_address: Mapped[str] = mapped_column(Text)
    technical_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    budget_range: Mapped[str | None] = mapped_column(String(50), nullable=True)
    expected_timeline: Mapped[str | None] = mapped_column(String(50), nullable=True)
    preferred_contact_method: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_CONTACT_METHOD.value, server_default=DEFAULT_CONTACT_METHOD.value
    )
    additional_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    special_requirements: Mapped[str | None] = mapped_column(Text, nullable=True)
    channel: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_CHANNEL.value, server_default=DEFAULT_CHANNEL.value
    )
    responsable: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Workflow
    status: Mapped[str] = mapped_column(
        String(30), default=DEFAULT_CLIENT_STATUS.value, server_default=DEFAULT_CLIENT_STATUS.value
    )
    form_emailer_status: Mapped[str] = mapped_column(
        String(20),
        default=DEFAULT_NOTIFICATION_STATUS.value,
        server_default=DEFAULT_NOTIFICATION_STATUS.value,
    )
    invoice_status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_INVOICE_STATUS.value, server_default=DEFAULT_INVOICE_STATUS.value
    )
    estimate_status: Mapped[str] = mapped_column(
        String(20), default=DEFAULT_ESTIMATE_STATUS.value, server_default=DEFAULT_ESTIMATE_STATUS.value
    )

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, server_default=func.now()
    )

    reports: Mapped[list["Report"]] = relationship(
        back_populates="client",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Report(Base):
    """Inspection report attached to a client. Removed with its client."""
    __tablename__ = "reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    report_id: Mapped[str] = mapped_column(String(20), unique=True)
    client_id: Mapped[str] = mapped_column(
        String(20),
        ForeignKey("clients.client_id", ondelete="CASCADE"),
        index=True,
    )
    report_type: Mapped[str] = mapped_column(String(100))
    inspection_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    findings: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommendations: Mapped[str | None] = mapped_column(Text, nullable=True)
    photos: Mapped[list[Any] | None] = mapped_column(JSON, nullable=True)
    inspector: Mapped[str | None] = mapped_column(String(100), nullable=True)
    next_inspection_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=ReportStatus.DRAFT.value, server_default=ReportStatus.DRAFT.value
    )

    created_at: Mapped[datetime] = mapped_column(default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, server_default=func.now()
    )

    client: Mapped["Client"] = relationship(back_populates="reports")


# =============================================================================
# Audit + Config
# =============================================================================

class AuditLog(Base):
    """
    Append-only audit trail for client mutations.

    record_id holds the client_id. new_values is NULL for deletes.
    Rows are never updated or deleted by application code.
    """
    __tablename__ = "audit_log"
    __table_args__ = (
        Index("idx_audit_record_created", "record_id", "created_at"),
        Index("idx_audit_action_created", "action", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    action: Mapped[str] = mapped_column(String(50))
    table_name: Mapped[str] = mapped_column(String(50))
    record_id: Mapped[str] = mapped_column(String(50))
    old_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    new_values: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, server_default=func.now())


class SystemConfig(Base):
    """Runtime feature toggles and business defaults."""
    __tablename__ = "system_config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    config_key: Mapped[str] = mapped_column(String(100), unique=True)
    config_value: Mapped[str | None] = mapped_column(Text, nullable=True)
    config_type: Mapped[str] = mapped_column(
        String(20), default=ConfigType.STRING.value, server_default=ConfigType.STRING.value
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=_utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        default=_utcnow, onupdate=_utcnow, server_default=func.now()
    )
