"""Periodic reconciliation between the intake sheet and the relational store.

pull: sheet rows without a matching client are imported; rows the form tool
      created without an id get the generated client_id written back into
      the row found in the same ingestion pass. A row already imported on an
      earlier pass (same position, email and name) only has its write-back
      retried, and non-empty id cells are never overwritten.
push: recent clients that have no row in the sheet are appended.
"""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any

import anyio
from sqlalchemy.orm import Session

from intake.core.cache import SHEET_VIEW_PREFIX
from intake.core.config import Settings, settings as default_settings
from intake.core.exceptions import ClientSyncError, MirrorError
from intake.core.structured_logging import build_log_context
from intake.db.models import Client
from intake.schemas.sheet import SheetClientRecord
from intake.services import audit_service
from intake.services.client_service import ClientService
from intake.services.sheets_client import build_mirror_row
from intake.utils.normalization import normalize_email, normalize_name

logger = logging.getLogger(__name__)


@dataclass
class SyncStats:
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    total_imported: int = 0
    total_linked: int = 0
    total_pushed: int = 0
    total_errors: int = 0


@dataclass
class SyncRunResult:
    imported: int = 0
    skipped: int = 0
    linked: int = 0
    ids_written: int = 0
    pushed: int = 0
    errors: list[str] = field(default_factory=list)


class SyncService:
    def __init__(self, db: Session, client_service: ClientService, config: Settings | None = None):
        self.db = db
        self.client_service = client_service
        self.sheets = client_service.sheets
        self.cache = client_service.cache
        self.config = config or client_service.config or default_settings
        self.is_running = False
        self.last_sync: datetime | None = None
        self.stats = SyncStats()
        self.recent_errors: list[dict[str, str]] = []

    # =========================================================================
    # Pull (sheet -> relational)
    # =========================================================================

    async def pull_from_sheet(self, result: SyncRunResult | None = None) -> SyncRunResult:
        result = result or SyncRunResult()
        records = await self.sheets.fetch_records()
        in_sheet = {record.client_id.strip() for record in records if record.has_client_id}

        with self.client_service._relational("sync_pull"):
            default_company = self.client_service.default_company()
            known = {
                client_id: row_index
                for client_id, row_index in self.db.query(Client.client_id, Client.sheet_row_index).all()
            }

        write_backs: list[tuple[int, str]] = []
        for record in records:
            if record.has_client_id and record.client_id.strip() in known:
                client_id = record.client_id.strip()
                if known[client_id] != record.row_index:
                    with self.client_service._relational("sync_pull"):
                        self.db.query(Client).filter(Client.client_id == client_id).update(
                            {Client.sheet_row_index: record.row_index}, synchronize_session=False
                        )
                    result.linked += 1
                continue

            if not record.has_client_id:
                with self.client_service._relational("sync_pull"):
                    previous = self._previous_import(record)
                if previous is not None and previous.client_id not in in_sheet:
                    # Imported on an earlier pass whose write-back never landed
                    result.skipped += 1
                    if not record.client_id.strip():
                        write_backs.append((record.row_index, previous.client_id))
                    continue

            outcome = await self.client_service.import_from_external_source(
                [record.to_import_payload(default_company)], actor_email="system:sheet-sync"
            )
            summary = outcome.data
            if summary["imported"]:
                result.imported += 1
                new_id = summary["imported_ids"][0]
                # Legacy ids typed into the sheet are left alone
                if not record.client_id.strip():
                    write_backs.append((record.row_index, new_id))
            else:
                result.skipped += summary["skipped"]
                for failure in summary["error_details"]:
                    result.errors.append(f"row {record.row_index}: {failure['reason']}")

        with self.client_service._relational("sync_pull"):
            self.db.commit()
        if result.linked:
            self.client_service._after_write()

        for row_index, client_id in write_backs:
            try:
                await self.sheets.write_client_id(row_index, client_id)
                result.ids_written += 1
            except MirrorError as exc:
                result.errors.append(f"row {row_index}: client_id write-back failed: {exc.message}")
                logger.warning(
                    "client_id write-back failed: %s",
                    exc.message,
                    extra=build_log_context(client_id=client_id, row_index=row_index, operation="sync_pull"),
                )
        if write_backs:
            self.cache.invalidate_later(SHEET_VIEW_PREFIX, self.config.MIRROR_INVALIDATION_DELAY_SECONDS)
        return result

    def _previous_import(self, record: SheetClientRecord) -> Client | None:
        """Client already imported from this row, matched on position, email and name."""
        email = normalize_email(record.email)
        name = normalize_name(record.client_full_name)
        if not email or not name:
            return None
        return (
            self.db.query(Client)
            .filter(
                Client.sheet_row_index == record.row_index,
                Client.email == email,
                Client.client_full_name == name,
            )
            .order_by(Client.id)
            .first()
        )

    # =========================================================================
    # Push (relational -> sheet)
    # =========================================================================

    async def push_missing_to_sheet(
        self, limit: int | None = None, result: SyncRunResult | None = None
    ) -> SyncRunResult:
        result = result or SyncRunResult()
        limit = limit or self.config.SYNC_RECENT_PUSH_LIMIT
        records = await self.sheets.fetch_records()
        in_sheet = {record.client_id.strip() for record in records if record.client_id}

        with self.client_service._relational("sync_push"):
            recent = (
                self.db.query(Client)
                .order_by(Client.created_at.desc(), Client.id.desc())
                .limit(limit)
                .all()
            )
        for client in reversed(recent):
            # Rows pulled from the sheet already exist there
            if client.client_id in in_sheet or client.sheet_row_index is not None:
                continue
            try:
                await self.sheets.append_row(build_mirror_row(audit_service.client_snapshot(client)))
                result.pushed += 1
            except MirrorError as exc:
                result.errors.append(f"{client.client_id}: append failed: {exc.message}")
                logger.warning(
                    "Sheet append failed: %s",
                    exc.message,
                    extra=build_log_context(client_id=client.client_id, operation="sync_push"),
                )
        if result.pushed:
            self.cache.invalidate_later(SHEET_VIEW_PREFIX, self.config.MIRROR_INVALIDATION_DELAY_SECONDS)
        return result

    # =========================================================================
    # Orchestration
    # =========================================================================

    def _record_error(self, message: str) -> None:
        self.recent_errors.append(
            {"timestamp": datetime.now(timezone.utc).isoformat(), "error": message}
        )
        self.recent_errors = self.recent_errors[-self.config.SYNC_ERROR_HISTORY:]

    async def full_sync(self) -> dict[str, Any]:
        """Pull then push. Skipped when a run is already in progress."""
        if self.is_running:
            logger.info("Sync already running, skipping")
            return {"success": False, "message": "Sync already in progress"}

        self.is_running = True
        self.stats.total_syncs += 1
        started = time.monotonic()
        result = SyncRunResult()
        try:
            await self.pull_from_sheet(result)
            await self.push_missing_to_sheet(result=result)
        except ClientSyncError as exc:
            self.stats.failed_syncs += 1
            self.stats.total_errors += 1
            self._record_error(exc.message)
            logger.error("Sync failed: %s", exc.message, extra=build_log_context(operation="full_sync"))
            return {"success": False, "message": exc.message, "result": asdict(result)}
        finally:
            self.is_running = False
            self.last_sync = datetime.now(timezone.utc)

        self.stats.successful_syncs += 1
        self.stats.total_imported += result.imported
        self.stats.total_linked += result.linked
        self.stats.total_pushed += result.pushed
        self.stats.total_errors += len(result.errors)
        for error in result.errors:
            self._record_error(error)

        duration_ms = round((time.monotonic() - started) * 1000)
        logger.info(
            "Sync finished imported=%s linked=%s pushed=%s errors=%s duration_ms=%s",
            result.imported,
            result.linked,
            result.pushed,
            len(result.errors),
            duration_ms,
            extra=build_log_context(operation="full_sync"),
        )
        return {
            "success": True,
            "message": "Sync completed",
            "result": asdict(result),
            "duration_ms": duration_ms,
        }

    def get_status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "last_sync": self.last_sync.isoformat() if self.last_sync else None,
            "stats": asdict(self.stats),
            "recent_errors": list(self.recent_errors),
        }

    async def run_periodic(
        self, interval_minutes: int | None = None, *, iterations: int | None = None
    ) -> None:
        """Run full_sync every ``interval_minutes`` (forever unless ``iterations``)."""
        if interval_minutes is None:
            interval_minutes = self.config.SYNC_INTERVAL_MINUTES
        interval = interval_minutes * 60
        count = 0
        while iterations is None or count < iterations:
            await self.full_sync()
            count += 1
            if iterations is not None and count >= iterations:
                break
            await anyio.sleep(interval)
