"""Audit trail service - append-only record of client mutations.

One entry per successful mutating operation, written in the same
transaction as the change it describes.

Guidelines:
- Raw actor email and snapshots go to audit_log only
- Application logs use hash_email, never the raw address
- Entries are never updated or deleted
"""

from __future__ import annotations

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from intake.db.enums import AuditAction
from intake.db.models import AuditLog, Client

CLIENTS_TABLE = "clients"

# Columns excluded from snapshots (surrogate key, not business data)
SNAPSHOT_EXCLUDE = {"id"}


def hash_email(email: str | None) -> str:
    """Hash email for log lines (prefix + SHA256 suffix for debugging)."""
    if not email:
        return ""
    prefix = email.split("@")[0][:3] if "@" in email else email[:3]
    suffix = hashlib.sha256(email.lower().encode()).hexdigest()[:12]
    return f"{prefix}...@[hash:{suffix}]"


def canonical_json(obj: dict | None) -> str:
    """
    Serialize object to canonical JSON.

    Uses sorted keys, compact separators, and str() for non-JSON types.
    """
    return json.dumps(obj or {}, sort_keys=True, separators=(",", ":"), default=str)


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def client_snapshot(client: Client) -> dict[str, Any]:
    """JSON-safe dict of every client column."""
    return {
        column.key: _json_value(getattr(client, column.key))
        for column in Client.__table__.columns
        if column.key not in SNAPSHOT_EXCLUDE
    }


def log_event(
    db: Session,
    action: AuditAction,
    record_id: str,
    *,
    table_name: str = CLIENTS_TABLE,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    user_email: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """
    Append an audit entry.

    Args:
        db: Database session (caller commits)
        action: Operation tag
        record_id: Business identifier of the affected record (client_id)
        old_values: State before the change (None for creates)
        new_values: State after the change (None for deletes)
        user_email: Actor, when known
        ip_address: Origin IP, when known
        user_agent: Origin user agent, truncated to 500 chars

    Returns:
        The flushed audit entry
    """
    entry = AuditLog(
        action=action.value,
        table_name=table_name,
        record_id=record_id,
        old_values=json.loads(canonical_json(old_values)) if old_values is not None else None,
        new_values=json.loads(canonical_json(new_values)) if new_values is not None else None,
        user_email=user_email,
        ip_address=ip_address[:45] if ip_address else None,
        user_agent=user_agent[:500] if user_agent else None,
    )
    db.add(entry)
    db.flush()
    return entry


def list_entries(
    db: Session,
    *,
    record_id: str | None = None,
    action: AuditAction | None = None,
    limit: int = 100,
) -> list[AuditLog]:
    """Most recent audit entries first, optionally filtered."""
    query = db.query(AuditLog)
    if record_id:
        query = query.filter(AuditLog.record_id == record_id)
    if action:
        query = query.filter(AuditLog.action == action.value)
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
