"""Client profile and workflow enums."""

from enum import Enum


class ClientStatus(str, Enum):
    """
    Client lifecycle status.

    Nominal flow: New Lead -> Contacted -> Quoted -> Pending Inspection ->
    In Progress -> Completed | Cancelled. Transitions are not enforced.
    """
    NEW_LEAD = "New Lead"
    CONTACTED = "Contacted"
    QUOTED = "Quoted"
    PENDING_INSPECTION = "Pending Inspection"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class InvoiceStatus(str, Enum):
    PENDING = "Pending"
    SENT = "Sent"
    PAID = "Paid"


class EstimateStatus(str, Enum):
    PENDING = "Pending"
    SENT = "Sent"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"


class NotificationStatus(str, Enum):
    """Status of the intake confirmation email."""
    PENDING = "Pending"
    SENT = "Sent"
    FAILED = "Failed"


class CustomerType(str, Enum):
    RESIDENTIAL = "Residential"
    COMMERCIAL = "Commercial"
    INDUSTRIAL = "Industrial"


class ContactMethod(str, Enum):
    PHONE = "Phone"
    EMAIL = "Email"
    TEXT = "Text"


class Channel(str, Enum):
    """Where the lead came from."""
    WEBSITE = "Website"
    PHONE = "Phone"
    REFERRAL = "Referral"
    WALK_IN = "Walk-in"


class UrgencyLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    EMERGENCY = "Emergency"


class ReportStatus(str, Enum):
    DRAFT = "Draft"
    COMPLETED = "Completed"
    SENT = "Sent"
    ARCHIVED = "Archived"
