"""Default values applied when a new client omits optional fields."""

from intake.db.enums.clients import (
    Channel,
    ClientStatus,
    ContactMethod,
    CustomerType,
    EstimateStatus,
    InvoiceStatus,
    NotificationStatus,
    UrgencyLevel,
)

DEFAULT_CLIENT_STATUS: ClientStatus = ClientStatus.NEW_LEAD
DEFAULT_URGENCY_LEVEL: UrgencyLevel = UrgencyLevel.MEDIUM
DEFAULT_CUSTOMER_TYPE: CustomerType = CustomerType.RESIDENTIAL
DEFAULT_CONTACT_METHOD: ContactMethod = ContactMethod.PHONE
DEFAULT_CHANNEL: Channel = Channel.WEBSITE
DEFAULT_INVOICE_STATUS: InvoiceStatus = InvoiceStatus.PENDING
DEFAULT_ESTIMATE_STATUS: EstimateStatus = EstimateStatus.PENDING
DEFAULT_NOTIFICATION_STATUS: NotificationStatus = NotificationStatus.PENDING
