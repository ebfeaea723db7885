"""Error taxonomy for client record operations.

Callers distinguish "your input was wrong" (validation, not found, conflict)
from "a backend was unreachable" (upstream). Mirror failures are logged by
the coordinator and never reach callers of a write.
"""

from __future__ import annotations

from typing import Any


class ClientSyncError(Exception):
    """Base class for client sync errors."""

    def __init__(self, message: str, *, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class ClientValidationError(ClientSyncError):
    """Input is missing required fields or carries invalid option values."""

    pass


class ClientNotFoundError(ClientSyncError):
    """No client exists with the requested client_id."""

    def __init__(self, client_id: str):
        super().__init__(f"Client not found: {client_id}", details={"client_id": client_id})
        self.client_id = client_id


class ClientConflictError(ClientSyncError):
    """A client with the same client_id already exists."""

    def __init__(self, client_id: str):
        super().__init__(f"Client already exists: {client_id}", details={"client_id": client_id})
        self.client_id = client_id


class UpstreamError(ClientSyncError):
    """The relational store (or a required upstream) is unavailable."""

    pass


class MirrorError(ClientSyncError):
    """The spreadsheet mirror rejected or failed a read or write."""

    def __init__(self, message: str, *, status_code: int | None = None, details: Any = None):
        super().__init__(message, details=details)
        self.status_code = status_code


class ParseError(ClientSyncError):
    """Tabular text could not be parsed."""

    pass
