"""Client service - relational writes, best-effort mirroring, audit trail.

Write path for every mutation:
1. validate input (pydantic schemas)
2. write to the relational store and append the audit entry in one commit
3. invalidate relational views in the cache immediately
4. hand the spreadsheet mirror / CRM webhook to the background dispatcher

Step 2 decides the outcome. Anything after it is advisory: mirror and
webhook failures are logged by the dispatcher and never reach the caller.
"""

from __future__ import annotations

import logging
import math
import secrets
import string
import time
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Iterator, Mapping

from pydantic import BaseModel, ValidationError
from sqlalchemy import func, or_, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from intake.core.cache import DB_VIEW_PREFIX, SHEET_VIEW_PREFIX, TTLCache
from intake.core.config import Settings, settings as default_settings
from intake.core.exceptions import (
    ClientConflictError,
    ClientNotFoundError,
    ClientValidationError,
    MirrorError,
    UpstreamError,
)
from intake.core.structured_logging import build_log_context
from intake.db.enums import (
    DEFAULT_CHANNEL,
    DEFAULT_CLIENT_STATUS,
    DEFAULT_CONTACT_METHOD,
    DEFAULT_CUSTOMER_TYPE,
    DEFAULT_URGENCY_LEVEL,
    AuditAction,
    ClientStatus,
)
from intake.db.models import Client
from intake.schemas.client import (
    ClientCreate,
    ClientImport,
    ClientPage,
    ClientRead,
    ClientStats,
    ClientUpdate,
    ImportFailure,
    ImportSummary,
    OperationResult,
    Pagination,
)
from intake.services import audit_service, system_config_service
from intake.services.crm_webhook_service import CrmWebhookClient
from intake.services.dispatch import BackgroundDispatcher
from intake.services.sheet_view_service import SheetViewService
from intake.services.sheets_client import SheetsClient, build_cell_updates, build_mirror_row

logger = logging.getLogger(__name__)

CLIENT_ID_PREFIX = "CLI"
CLIENT_ID_ALPHABET = string.ascii_uppercase + string.digits
CLIENT_ID_ATTEMPTS = 3
MAX_PAGE_SIZE = 100

# Workflow fields that only imports may set directly on insert
IMPORT_WORKFLOW_FIELDS = ("status", "invoice_status", "estimate_status", "form_emailer_status")


def generate_client_id(now_ms: int | None = None) -> str:
    """CLI + last 6 digits of the millisecond clock + 3 random [A-Z0-9]."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(CLIENT_ID_ALPHABET) for _ in range(3))
    return f"{CLIENT_ID_PREFIX}{str(now_ms)[-6:].zfill(6)}{suffix}"


def _is_client_id_conflict(error: IntegrityError) -> bool:
    message = str(error.orig) if error.orig else str(error)
    return "client_id" in message


def _validate(schema: type[BaseModel], data: Any) -> Any:
    if isinstance(data, schema):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        errors = exc.errors(include_url=False, include_context=False)
        fields = sorted({".".join(str(p) for p in err["loc"]) for err in errors})
        raise ClientValidationError(
            f"Invalid client data: {', '.join(fields) or 'input'}",
            details=errors,
        ) from exc


def _serialize(client: Client) -> dict[str, Any]:
    return ClientRead.model_validate(client).model_dump(mode="json")


def _plain(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: getattr(value, "value", value) for key, value in values.items()}


class ClientService:
    """
    Coordinator for client reads and writes.

    All collaborators are injected so tests can supply isolated instances.
    """

    def __init__(
        self,
        db: Session,
        *,
        cache: TTLCache,
        sheets: SheetsClient | None = None,
        crm: CrmWebhookClient | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        config: Settings | None = None,
    ):
        self.db = db
        self.cache = cache
        self.config = config or default_settings
        self.sheets = sheets or SheetsClient(self.config)
        self.crm = crm or CrmWebhookClient(self.config)
        self.dispatcher = dispatcher or BackgroundDispatcher()
        self.sheet_view = SheetViewService(cache, self.sheets)

    # =========================================================================
    # Helpers
    # =========================================================================

    @contextmanager
    def _relational(self, operation: str) -> Iterator[None]:
        """Turn store outages into UpstreamError after rolling back."""
        try:
            yield
        except IntegrityError as exc:
            self.db.rollback()
            raise ClientValidationError(
                f"Relational store rejected {operation}", details=str(exc.orig)
            ) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error(
                "Relational store error during %s: %s",
                operation,
                exc.__class__.__name__,
                extra=build_log_context(operation=operation),
            )
            raise UpstreamError(f"Relational store unavailable during {operation}") from exc

    def _get_or_404(self, client_id: str) -> Client:
        client = self.db.query(Client).filter(Client.client_id == client_id).first()
        if client is None:
            raise ClientNotFoundError(client_id)
        return client

    def _cached(self, key: str, loader) -> Any:
        full_key = f"{DB_VIEW_PREFIX}{key}"
        cached = self.cache.get(full_key)
        if cached is not None:
            return cached
        with self._relational(key.split(":")[0]):
            value = loader()
        self.cache.set(full_key, value)
        return value

    def default_company(self) -> str:
        return system_config_service.get_value(
            self.db, system_config_service.DEFAULT_COMPANY, self.config.DEFAULT_COMPANY_NAME
        ) or self.config.DEFAULT_COMPANY_NAME

    def _mirror_enabled(self) -> bool:
        return self.sheets.is_configured and system_config_service.is_enabled(
            self.db, system_config_service.SHEETS_MIRROR_ENABLED
        )

    def _crm_enabled(self) -> bool:
        return self.crm.is_configured and system_config_service.is_enabled(
            self.db, system_config_service.CRM_WEBHOOK_ENABLED
        )

    def _after_write(self) -> None:
        self.cache.invalidate(DB_VIEW_PREFIX)

    def _build_client(self, payload: ClientCreate, client_id: str, default_company: str) -> Client:
        client = Client(
            client_id=client_id,
            company_name=payload.company_name or default_company,
            service_type=payload.service_type,
            urgency_level=(payload.urgency_level or DEFAULT_URGENCY_LEVEL).value,
            client_full_name=payload.client_full_name,
            email=payload.email,
            phone_number=payload.phone_number,
            customer_type=(payload.customer_type or DEFAULT_CUSTOMER_TYPE).value,
            project_address=payload.project_address,
            technical_description=payload.technical_description,
            budget_range=payload.budget_range,
            expected_timeline=payload.expected_timeline,
            preferred_contact_method=(payload.preferred_contact_method or DEFAULT_CONTACT_METHOD).value,
            additional_notes=payload.additional_notes,
            special_requirements=payload.special_requirements,
            channel=(payload.channel or DEFAULT_CHANNEL).value,
            responsable=payload.responsable,
            status=DEFAULT_CLIENT_STATUS.value,
        )
        if isinstance(payload, ClientImport):
            for field_name in IMPORT_WORKFLOW_FIELDS:
                value = getattr(payload, field_name)
                if value is not None:
                    setattr(client, field_name, value.value)
            client.sheet_row_index = payload.sheet_row_index
        return client

    def _insert(
        self,
        payload: ClientCreate,
        *,
        operation: str,
        user_email: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Client:
        """Insert a client plus its CREATE_CLIENT audit entry in one commit.

        Generated ids are retried on collision; an explicit id that already
        exists raises ClientConflictError.
        """
        explicit_id = payload.client_id
        with self._relational(operation):
            if explicit_id and self.db.query(Client.id).filter(Client.client_id == explicit_id).first():
                raise ClientConflictError(explicit_id)
            default_company = self.default_company()

            for attempt in range(CLIENT_ID_ATTEMPTS):
                client_id = explicit_id or generate_client_id()
                client = self._build_client(payload, client_id, default_company)
                self.db.add(client)
                try:
                    self.db.flush()
                    audit_service.log_event(
                        self.db,
                        AuditAction.CREATE_CLIENT,
                        client_id,
                        new_values=audit_service.client_snapshot(client),
                        user_email=user_email,
                        ip_address=ip_address,
                        user_agent=user_agent,
                    )
                    self.db.commit()
                    self.db.refresh(client)
                    return client
                except IntegrityError as exc:
                    self.db.rollback()
                    if not _is_client_id_conflict(exc):
                        raise ClientValidationError(
                            f"Relational store rejected {operation}", details=str(exc.orig)
                        ) from exc
                    if explicit_id:
                        raise ClientConflictError(explicit_id) from exc
                    if attempt == CLIENT_ID_ATTEMPTS - 1:
                        raise UpstreamError("Could not allocate a unique client_id") from exc
                    logger.info("client_id collision, retrying attempt=%s", attempt + 1)
        raise UpstreamError("Could not allocate a unique client_id")

    # =========================================================================
    # Background side effects
    # =========================================================================

    async def _mirror_append(self, snapshot: dict[str, Any]) -> None:
        await self.sheets.append_row(build_mirror_row(snapshot))
        self.cache.invalidate_later(SHEET_VIEW_PREFIX, self.config.MIRROR_INVALIDATION_DELAY_SECONDS)
        logger.info(
            "Mirrored new client to sheet",
            extra=build_log_context(client_id=snapshot.get("client_id"), operation="mirror_append"),
        )

    async def _mirror_update(self, client_id: str, changes: dict[str, Any]) -> None:
        cells = build_cell_updates(changes)
        if not cells:
            return
        record = await self.sheet_view.find_fresh_record(client_id)
        if record is None:
            raise MirrorError(f"Client {client_id} has no row in the mirror")
        await self.sheets.batch_update_cells(record.row_index, cells)
        self.cache.invalidate_later(SHEET_VIEW_PREFIX, self.config.MIRROR_INVALIDATION_DELAY_SECONDS)
        logger.info(
            "Mirrored client update to sheet fields=%s",
            sorted(cells),
            extra=build_log_context(
                client_id=client_id, row_index=record.row_index, operation="mirror_update"
            ),
        )

    def _dispatch_mirror_update(self, client_id: str, changes: dict[str, Any], operation: str) -> None:
        if not self._mirror_enabled():
            return
        self.dispatcher.submit(
            self._mirror_update(client_id, changes),
            name=f"mirror_update:{client_id}",
            log_extra=build_log_context(client_id=client_id, operation=operation),
        )

    # =========================================================================
    # Writes
    # =========================================================================

    async def create_client(
        self,
        data: ClientCreate | Mapping[str, Any],
        *,
        actor_email: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> OperationResult:
        """Create a client; mirror + CRM webhook run in the background."""
        payload = _validate(ClientCreate, data)
        client = self._insert(
            payload,
            operation="create_client",
            user_email=actor_email,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self._after_write()

        snapshot = audit_service.client_snapshot(client)
        log_extra = build_log_context(
            client_id=client.client_id,
            operation="create_client",
            actor=audit_service.hash_email(actor_email),
        )
        if self._mirror_enabled():
            self.dispatcher.submit(
                self._mirror_append(snapshot),
                name=f"mirror_append:{client.client_id}",
                log_extra=log_extra,
            )
        if self._crm_enabled():
            self.dispatcher.submit(
                self.crm.send_new_client(snapshot),
                name=f"crm_webhook:{client.client_id}",
                log_extra=log_extra,
            )

        logger.info("Client created", extra=log_extra)
        return OperationResult.ok("Client created successfully", data=_serialize(client))

    async def update_client(
        self,
        client_id: str,
        patch: ClientUpdate | Mapping[str, Any],
        *,
        actor_email: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> OperationResult:
        """Apply a partial update. Audited with full before/after snapshots."""
        update = _validate(ClientUpdate, patch)
        changes = _plain(update.model_dump(exclude_unset=True))
        if not changes:
            raise ClientValidationError("No fields to update")

        with self._relational("update_client"):
            client = self._get_or_404(client_id)
            old_values = audit_service.client_snapshot(client)
            for field_name, value in changes.items():
                setattr(client, field_name, value)
            self.db.flush()
            audit_service.log_event(
                self.db,
                AuditAction.UPDATE_CLIENT,
                client_id,
                old_values=old_values,
                new_values=audit_service.client_snapshot(client),
                user_email=actor_email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            self.db.commit()
            self.db.refresh(client)
        self._after_write()
        self._dispatch_mirror_update(client_id, changes, "update_client")

        logger.info(
            "Client updated fields=%s",
            sorted(changes),
            extra=build_log_context(
                client_id=client_id,
                operation="update_client",
                actor=audit_service.hash_email(actor_email),
            ),
        )
        return OperationResult.ok("Client updated successfully", data=_serialize(client))

    async def update_client_status(
        self,
        client_id: str,
        status: ClientStatus | str,
        *,
        actor_email: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> OperationResult:
        """Set the lifecycle status. Any known status is accepted from any other."""
        try:
            new_status = ClientStatus(status).value
        except ValueError as exc:
            raise ClientValidationError(f"Unknown status: {status}", details={"status": status}) from exc

        with self._relational("update_client_status"):
            client = self._get_or_404(client_id)
            old_status = client.status
            client.status = new_status
            audit_service.log_event(
                self.db,
                AuditAction.UPDATE_STATUS,
                client_id,
                old_values={"status": old_status},
                new_values={"status": new_status},
                user_email=actor_email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            self.db.commit()
            self.db.refresh(client)
        self._after_write()
        self._dispatch_mirror_update(client_id, {"status": new_status}, "update_client_status")

        logger.info(
            "Client status changed %s -> %s",
            old_status,
            new_status,
            extra=build_log_context(client_id=client_id, operation="update_client_status"),
        )
        return OperationResult.ok("Client status updated successfully", data=_serialize(client))

    async def delete_client(
        self,
        client_id: str,
        *,
        actor_email: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> OperationResult:
        """Delete a client (reports cascade). The mirror row is left in place."""
        with self._relational("delete_client"):
            client = self._get_or_404(client_id)
            old_values = audit_service.client_snapshot(client)
            self.db.delete(client)
            audit_service.log_event(
                self.db,
                AuditAction.DELETE_CLIENT,
                client_id,
                old_values=old_values,
                new_values=None,
                user_email=actor_email,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            self.db.commit()
        self._after_write()

        # Removing a sheet row would shift every later row index
        logger.info(
            "Client deleted; mirror row kept",
            extra=build_log_context(client_id=client_id, operation="delete_client"),
        )
        return OperationResult.ok("Client deleted successfully", data={"client_id": client_id})

    async def import_from_external_source(
        self,
        batch: Iterable[ClientImport | Mapping[str, Any]],
        *,
        actor_email: str | None = None,
    ) -> OperationResult:
        """
        Insert each record independently.

        Existing client_ids are skipped (recorded as conflicts), invalid
        records are counted as errors. Imported rows are not mirrored back.
        """
        summary = ImportSummary()
        for index, item in enumerate(batch):
            raw_id = item.get("client_id") if isinstance(item, Mapping) else getattr(item, "client_id", None)
            try:
                payload = _validate(ClientImport, item)
                client = self._insert(payload, operation="import_client", user_email=actor_email)
            except ClientValidationError as exc:
                summary.errors += 1
                summary.error_details.append(
                    ImportFailure(
                        index=index,
                        client_id=raw_id,
                        reason=exc.message,
                        errors=exc.details if isinstance(exc.details, list) else [],
                    )
                )
                continue
            except ClientConflictError as exc:
                summary.skipped += 1
                summary.error_details.append(
                    ImportFailure(index=index, client_id=exc.client_id, reason="conflict")
                )
                continue
            summary.imported += 1
            summary.imported_ids.append(client.client_id)

        if summary.imported:
            self._after_write()
        logger.info(
            "Import finished imported=%s skipped=%s errors=%s",
            summary.imported,
            summary.skipped,
            summary.errors,
            extra=build_log_context(operation="import_from_external_source"),
        )
        return OperationResult.ok(
            f"Imported {summary.imported} clients, skipped {summary.skipped}, errors {summary.errors}",
            data=summary.model_dump(mode="json"),
        )

    # =========================================================================
    # Reads (relational store only)
    # =========================================================================

    async def get_client_by_id(self, client_id: str) -> OperationResult:
        def load() -> dict[str, Any]:
            return _serialize(self._get_or_404(client_id))

        data = self._cached(f"client:{client_id}", load)
        return OperationResult.ok("Client retrieved successfully", data=data)

    async def list_clients(self, page: int = 1, limit: int = 20) -> OperationResult:
        """Newest clients first with page metadata."""
        if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
            raise ClientValidationError(
                f"page must be >= 1 and limit between 1 and {MAX_PAGE_SIZE}",
                details={"page": page, "limit": limit},
            )

        def load() -> dict[str, Any]:
            query = self.db.query(Client)
            total = query.count()
            clients = (
                query.order_by(Client.created_at.desc(), Client.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            result = ClientPage(
                clients=[ClientRead.model_validate(c) for c in clients],
                pagination=Pagination(
                    page=page,
                    limit=limit,
                    total=total,
                    pages=math.ceil(total / limit) if total else 0,
                ),
            )
            return result.model_dump(mode="json")

        data = self._cached(f"list:{page}:{limit}", load)
        return OperationResult.ok("Clients retrieved successfully", data=data)

    async def search_clients(self, term: str, limit: int = 50) -> OperationResult:
        """Case-insensitive match on name, email, phone, company, id, service, address."""
        cleaned = (term or "").strip()
        if not cleaned:
            raise ClientValidationError("Search term is required")

        pattern = f"%{cleaned}%"
        with self._relational("search_clients"):
            clients = (
                self.db.query(Client)
                .filter(
                    or_(
                        Client.client_full_name.ilike(pattern),
                        Client.email.ilike(pattern),
                        Client.phone_number.ilike(pattern),
                        Client.company_name.ilike(pattern),
                        Client.client_id.ilike(pattern),
                        Client.service_type.ilike(pattern),
                        Client.project_address.ilike(pattern),
                    )
                )
                .order_by(Client.created_at.desc(), Client.id.desc())
                .limit(limit)
                .all()
            )
        return OperationResult.ok(
            f"Found {len(clients)} clients", data=[_serialize(c) for c in clients]
        )

    async def get_recent_clients(self, limit: int = 10) -> OperationResult:
        def load() -> list[dict[str, Any]]:
            clients = (
                self.db.query(Client)
                .order_by(Client.created_at.desc(), Client.id.desc())
                .limit(limit)
                .all()
            )
            return [_serialize(c) for c in clients]

        data = self._cached(f"recent:{limit}", load)
        return OperationResult.ok("Recent clients retrieved successfully", data=data)

    async def get_clients_by_status(self, status: ClientStatus | str, limit: int = 50) -> OperationResult:
        try:
            status_value = ClientStatus(status).value
        except ValueError as exc:
            raise ClientValidationError(f"Unknown status: {status}", details={"status": status}) from exc

        def load() -> list[dict[str, Any]]:
            clients = (
                self.db.query(Client)
                .filter(Client.status == status_value)
                .order_by(Client.created_at.desc(), Client.id.desc())
                .limit(limit)
                .all()
            )
            return [_serialize(c) for c in clients]

        data = self._cached(f"status:{status_value}:{limit}", load)
        return OperationResult.ok(f"Clients with status {status_value}", data=data)

    async def get_new_leads(self) -> OperationResult:
        result = await self.get_clients_by_status(ClientStatus.NEW_LEAD)
        return OperationResult.ok("New leads retrieved successfully", data=result.data)

    async def get_client_stats(self) -> OperationResult:
        """Counts per lifecycle status."""

        def load() -> dict[str, int]:
            rows = self.db.query(Client.status, func.count(Client.id)).group_by(Client.status).all()
            counts = {status: count for status, count in rows}
            stats = ClientStats(
                total=sum(counts.values()),
                new_leads=counts.get(ClientStatus.NEW_LEAD.value, 0),
                contacted=counts.get(ClientStatus.CONTACTED.value, 0),
                quoted=counts.get(ClientStatus.QUOTED.value, 0),
                pending_inspection=counts.get(ClientStatus.PENDING_INSPECTION.value, 0),
                in_progress=counts.get(ClientStatus.IN_PROGRESS.value, 0),
                completed=counts.get(ClientStatus.COMPLETED.value, 0),
                cancelled=counts.get(ClientStatus.CANCELLED.value, 0),
            )
            return stats.model_dump()

        data = self._cached("stats", load)
        return OperationResult.ok("Client statistics retrieved successfully", data=data)

    async def get_monthly_stats(self, months: int = 12) -> OperationResult:
        """New and completed clients per calendar month, oldest month first."""
        if months < 1:
            raise ClientValidationError("months must be >= 1", details={"months": months})

        def load() -> list[dict[str, Any]]:
            since = datetime.now(timezone.utc) - timedelta(days=31 * months)
            rows = (
                self.db.query(Client.created_at, Client.status)
                .filter(Client.created_at >= since)
                .all()
            )
            buckets: dict[str, dict[str, Any]] = {}
            for created_at, status in rows:
                month = created_at.strftime("%Y-%m")
                bucket = buckets.setdefault(month, {"month": month, "total": 0, "completed": 0})
                bucket["total"] += 1
                if status == ClientStatus.COMPLETED.value:
                    bucket["completed"] += 1
            return [buckets[month] for month in sorted(buckets)][-months:]

        data = self._cached(f"monthly:{months}", load)
        return OperationResult.ok("Monthly statistics retrieved successfully", data=data)

    async def export_all(self) -> OperationResult:
        with self._relational("export_all"):
            clients = self.db.query(Client).order_by(Client.created_at.asc(), Client.id.asc()).all()
        return OperationResult.ok(
            f"Exported {len(clients)} clients", data=[_serialize(c) for c in clients]
        )

    # =========================================================================
    # Health
    # =========================================================================

    async def health_check(self) -> OperationResult:
        """Relational store reachability only. See mirror_diagnostics for the sheet."""
        checked_at = datetime.now(timezone.utc).isoformat()
        try:
            self.db.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Health check failed: %s", exc.__class__.__name__)
            return OperationResult(
                success=False,
                message="Relational store unreachable",
                data={"status": "unhealthy", "database": "unreachable", "checked_at": checked_at},
                error=exc.__class__.__name__,
            )
        return OperationResult.ok(
            "Service is healthy",
            data={"status": "healthy", "database": "connected", "checked_at": checked_at},
        )

    async def mirror_diagnostics(self) -> OperationResult:
        """Spreadsheet reachability and row count, via a fresh ingestion pass."""
        if not self.sheets.is_configured:
            return OperationResult(
                success=False,
                message="Spreadsheet mirror is not configured",
                data={"status": "not_configured"},
                error="not_configured",
            )
        started = time.monotonic()
        try:
            records = await self.sheets.fetch_records()
        except MirrorError as exc:
            return OperationResult(
                success=False,
                message="Spreadsheet mirror unreachable",
                data={"status": "unreachable", "status_code": exc.status_code},
                error=exc.message,
            )
        return OperationResult.ok(
            "Spreadsheet mirror reachable",
            data={
                "status": "reachable",
                "records": len(records),
                "latency_ms": round((time.monotonic() - started) * 1000),
            },
        )
