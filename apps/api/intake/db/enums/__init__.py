"""Enum definitions for application constants."""

from intake.db.enums.audit import AuditAction
from intake.db.enums.clients import (
    Channel,
    ClientStatus,
    ContactMethod,
    CustomerType,
    EstimateStatus,
    InvoiceStatus,
    NotificationStatus,
    ReportStatus,
    UrgencyLevel,
)
from intake.db.enums.defaults import (
    DEFAULT_CHANNEL,
    DEFAULT_CLIENT_STATUS,
    DEFAULT_CONTACT_METHOD,
    DEFAULT_CUSTOMER_TYPE,
    DEFAULT_ESTIMATE_STATUS,
    DEFAULT_INVOICE_STATUS,
    DEFAULT_NOTIFICATION_STATUS,
    DEFAULT_URGENCY_LEVEL,
)
from intake.db.enums.system import ConfigType

__all__ = [
    "AuditAction",
    "Channel",
    "ClientStatus",
    "ConfigType",
    "ContactMethod",
    "CustomerType",
    "EstimateStatus",
    "InvoiceStatus",
    "NotificationStatus",
    "ReportStatus",
    "UrgencyLevel",
    "DEFAULT_CHANNEL",
    "DEFAULT_CLIENT_STATUS",
    "DEFAULT_CONTACT_METHOD",
    "DEFAULT_CUSTOMER_TYPE",
    "DEFAULT_ESTIMATE_STATUS",
    "DEFAULT_INVOICE_STATUS",
    "DEFAULT_NOTIFICATION_STATUS",
    "DEFAULT_URGENCY_LEVEL",
]
