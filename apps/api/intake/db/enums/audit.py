"""Audit trail enums."""

from enum import Enum


class AuditAction(str, Enum):
    """
    Mutating operations recorded in the audit log.

    Exactly one entry is written per successful operation.
    """
    CREATE_CLIENT = "CREATE_CLIENT"
    UPDATE_CLIENT = "UPDATE_CLIENT"
    UPDATE_STATUS = "UPDATE_STATUS"
    DELETE_CLIENT = "DELETE_CLIENT"
