"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    client_id: str | None = None,
    row_index: int | None = None,
    operation: str | None = None,
    actor: str | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Return a PII-safe log context dict.

    Only identifiers go in here. Actor emails must already be hashed.
    """
    context: dict[str, Any] = {}
    if client_id:
        context["client_id"] = client_id
    if row_index is not None:
        context["row_index"] = row_index
    if operation:
        context["operation"] = operation
    if actor:
        context["actor"] = actor
    if request_id:
        context["request_id"] = request_id
    return context
