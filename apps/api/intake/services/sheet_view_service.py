"""Legacy spreadsheet view of clients, served through the TTL cache.

This is the read path for the intake sheet only. Canonical queries go to
the relational store (see client_service).
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from intake.core.cache import SHEET_VIEW_PREFIX, TTLCache
from intake.core.exceptions import MirrorError
from intake.db.enums import ClientStatus, InvoiceStatus
from intake.schemas.sheet import SheetClientRecord
from intake.services.sheet_reconciler import find_record
from intake.services.sheets_client import SheetsClient

logger = logging.getLogger(__name__)

RECORDS_KEY = f"{SHEET_VIEW_PREFIX}records"
STATS_KEY = f"{SHEET_VIEW_PREFIX}stats"


class SheetViewService:
    def __init__(self, cache: TTLCache, sheets: SheetsClient):
        self.cache = cache
        self.sheets = sheets

    async def get_sheet_clients(self, *, force_refresh: bool = False) -> list[SheetClientRecord]:
        """Records from the cache, or a fresh ingestion pass on miss/expiry.

        An unreachable sheet yields an empty list (not cached).
        """
        if not force_refresh:
            cached = self.cache.get(RECORDS_KEY)
            if cached is not None:
                return [SheetClientRecord(**item) for item in cached]

        try:
            records = await self.sheets.fetch_records()
        except MirrorError as exc:
            logger.warning("Sheet view unavailable: %s", exc.message)
            return []

        self.cache.set(RECORDS_KEY, [record.model_dump() for record in records])
        return records

    async def find_fresh_record(self, client_id: str) -> SheetClientRecord | None:
        """Locate a client in a new ingestion pass, bypassing the cache.

        Used by the write path so a cell write never targets a stale row.
        Raises MirrorError when the sheet cannot be read.
        """
        return find_record(await self.sheets.fetch_records(), client_id)

    async def get_sheet_statistics(self) -> dict[str, Any]:
        """Onboarding counters plus breakdowns by service type and responsible."""
        cached = self.cache.get(STATS_KEY)
        if cached is not None:
            return cached

        records = await self.get_sheet_clients()
        total = len(records)
        active = sum(1 for r in records if r.status == ClientStatus.IN_PROGRESS.value)
        pending = sum(1 for r in records if r.status == ClientStatus.PENDING_INSPECTION.value)
        stats = {
            "total_clients": total,
            "new_leads": sum(1 for r in records if r.status == ClientStatus.NEW_LEAD.value),
            "active_clients": active,
            "pending_clients": pending,
            "completed_invoices": sum(
                1 for r in records if r.invoice_status == InvoiceStatus.PAID.value
            ),
            "pending_invoices": sum(
                1 for r in records if r.invoice_status == InvoiceStatus.PENDING.value
            ),
            "compliance_rate": round(active / total * 100) if total else 0,
            "by_service_type": dict(Counter(r.service_type or "Unknown" for r in records)),
            "by_responsible": dict(Counter(r.responsable or "Unassigned" for r in records)),
        }
        self.cache.set(STATS_KEY, stats)
        return stats

    def invalidate(self) -> None:
        self.cache.invalidate(SHEET_VIEW_PREFIX)
