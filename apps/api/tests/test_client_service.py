"""Tests for ClientService writes: relational outcome, audit trail, mirror side effects."""

import asyncio
import re

import pytest
from sqlalchemy.exc import OperationalError

from conftest import make_sheet_row
from intake.core.exceptions import (
    ClientConflictError,
    ClientNotFoundError,
    ClientValidationError,
    UpstreamError,
)
from intake.db.enums import AuditAction, ConfigType
from intake.db.models import Client, Report
from intake.schemas.client import CLIENT_ID_PATTERN
from intake.services import audit_service, system_config_service
from intake.services.client_service import generate_client_id
from intake.services.sheet_view_service import RECORDS_KEY


def _down(*args, **kwargs):
    raise OperationalError("SELECT", {}, Exception("database is down"))


# =============================================================================
# Client ids
# =============================================================================

def test_generate_client_id_format():
    client_id = generate_client_id(now_ms=1_700_000_123_456)
    assert client_id.startswith("CLI123456")
    assert re.match(CLIENT_ID_PATTERN, client_id)


def test_generate_client_id_pads_short_clock():
    assert generate_client_id(now_ms=42).startswith("CLI000042")


# =============================================================================
# Create
# =============================================================================

@pytest.mark.asyncio
async def test_create_applies_defaults(service, jane):
    result = await service.create_client(jane)

    assert result.success is True
    data = result.data
    assert re.match(CLIENT_ID_PATTERN, data["client_id"])
    assert data["status"] == "New Lead"
    assert data["urgency_level"] == "Medium"
    assert data["customer_type"] == "Residential"
    assert data["preferred_contact_method"] == "Phone"
    assert data["channel"] == "Website"
    assert data["invoice_status"] == "Pending"
    assert data["estimate_status"] == "Pending"
    assert data["form_emailer_status"] == "Pending"
    assert data["company_name"] == "IRIAS Ironworks"
    assert data["created_at"] is not None
    await service.dispatcher.drain()


@pytest.mark.asyncio
async def test_create_ids_are_unique(service, jane):
    ids = set()
    for n in range(5):
        result = await service.create_client({**jane, "email": f"jane{n}@x.com"})
        ids.add(result.data["client_id"])
    await service.dispatcher.drain()
    assert len(ids) == 5


@pytest.mark.asyncio
async def test_create_mirrors_and_notifies_crm(service, jane, sheet_backend, crm_receiver):
    result = await service.create_client(jane)
    client_id = result.data["client_id"]

    await service.dispatcher.drain()

    assert sheet_backend.row_for(client_id) == 3
    assert sheet_backend.cell(3, "client_full_name") == "Jane Doe"
    assert sheet_backend.cell(3, "correo") == "jane@x.com"
    assert len(crm_receiver.requests) == 1
    assert crm_receiver.requests[0].headers["X-Webhook-Secret"] == "s3cret"
    assert service.dispatcher.failures == []


@pytest.mark.asyncio
async def test_create_writes_audit_entry(db, service, jane):
    result = await service.create_client(jane, actor_email="ops@irias.com", ip_address="10.0.0.1")
    await service.dispatcher.drain()
    client_id = result.data["client_id"]

    entries = audit_service.list_entries(db, record_id=client_id)
    assert len(entries) == 1
    assert entries[0].action == AuditAction.CREATE_CLIENT.value
    assert entries[0].old_values is None
    assert entries[0].new_values["client_id"] == client_id
    assert entries[0].user_email == "ops@irias.com"
    assert entries[0].ip_address == "10.0.0.1"


@pytest.mark.asyncio
async def test_create_succeeds_when_mirror_and_crm_fail(service, jane, sheet_backend, crm_receiver):
    sheet_backend.fail_writes = True
    crm_receiver.status_code = 500

    result = await service.create_client(jane)
    await service.dispatcher.drain()

    assert result.success is True
    assert (await service.get_client_by_id(result.data["client_id"])).success is True
    assert len(service.dispatcher.failures) == 2


@pytest.mark.asyncio
async def test_create_uses_configured_default_company(db, service, jane):
    system_config_service.set_value(db, system_config_service.DEFAULT_COMPANY, "Acme Iron")
    db.commit()

    result = await service.create_client(jane)
    await service.dispatcher.drain()

    assert result.data["company_name"] == "Acme Iron"


@pytest.mark.asyncio
async def test_disabled_toggles_skip_side_effects(db, service, jane, sheet_backend, crm_receiver):
    for key in (system_config_service.SHEETS_MIRROR_ENABLED, system_config_service.CRM_WEBHOOK_ENABLED):
        system_config_service.set_value(db, key, False, ConfigType.BOOLEAN)
    db.commit()

    await service.create_client(jane)
    await service.dispatcher.drain()

    assert sheet_backend.requests == []
    assert crm_receiver.requests == []


@pytest.mark.asyncio
async def test_create_missing_required_field(service, jane):
    payload = {k: v for k, v in jane.items() if k != "email"}
    with pytest.raises(ClientValidationError) as exc_info:
        await service.create_client(payload)
    assert "email" in exc_info.value.message
    assert isinstance(exc_info.value.details, list)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "override",
    [
        {"email": "not-an-email"},
        {"urgency_level": "Whenever"},
        {"client_id": "ABC123"},
        {"favourite_colour": "blue"},
    ],
)
async def test_create_rejects_invalid_input(db, service, jane, override):
    with pytest.raises(ClientValidationError):
        await service.create_client({**jane, **override})
    assert db.query(Client).count() == 0


@pytest.mark.asyncio
async def test_create_explicit_id_conflict(db, service, jane):
    await service.create_client({**jane, "client_id": "CLI000001AAA"})

    with pytest.raises(ClientConflictError):
        await service.create_client({**jane, "client_id": "CLI000001AAA"})

    await service.dispatcher.drain()
    assert db.query(Client).count() == 1


# =============================================================================
# Update
# =============================================================================

@pytest.mark.asyncio
async def test_status_update_survives_mirror_failure(db, service, jane, sheet_backend):
    client_id = (await service.create_client(jane)).data["client_id"]
    await service.dispatcher.drain()
    sheet_backend.fail_writes = True

    result = await service.update_client_status(client_id, "Contacted")
    await service.dispatcher.drain()

    assert result.success is True
    assert result.data["status"] == "Contacted"
    entries = audit_service.list_entries(db, record_id=client_id, action=AuditAction.UPDATE_STATUS)
    assert len(entries) == 1
    assert entries[0].old_values == {"status": "New Lead"}
    assert entries[0].new_values == {"status": "Contacted"}
    assert (await service.get_client_by_id(client_id)).data["status"] == "Contacted"
    assert sheet_backend.cell(3, "status") == "New Lead"
    assert len(service.dispatcher.failures) == 1


@pytest.mark.asyncio
async def test_status_update_targets_fresh_row(service, jane, sheet_backend):
    client_id = (await service.create_client(jane)).data["client_id"]
    await service.dispatcher.drain()
    assert sheet_backend.row_for(client_id) == 3

    # Another form submission lands above the mirrored row
    sheet_backend.rows.insert(2, make_sheet_row(client_full_name="Earlier Lead"))
    assert sheet_backend.row_for(client_id) == 4

    await service.update_client_status(client_id, "Quoted")
    await service.dispatcher.drain()

    assert sheet_backend.cell(4, "status") == "Quoted"
    assert sheet_backend.cell(3, "status") == ""
    assert sheet_backend.cell(3, "client_full_name") == "Earlier Lead"


@pytest.mark.asyncio
async def test_update_missing_from_mirror_is_logged_only(service, jane, sheet_backend):
    client_id = (await service.create_client(jane)).data["client_id"]
    await service.dispatcher.drain()
    del sheet_backend.rows[2]

    result = await service.update_client_status(client_id, "Quoted")
    await service.dispatcher.drain()

    assert result.success is True
    assert service.dispatcher.failures[0][0] == f"mirror_update:{client_id}"


@pytest.mark.asyncio
async def test_update_client_fields(db, service, jane, sheet_backend):
    client_id = (await service.create_client(jane)).data["client_id"]
    await service.dispatcher.drain()

    result = await service.update_client(
        client_id, {"phone_number": " 555  0100 ", "email": "JANE@NEW.COM", "invoice_status": "Sent"}
    )
    await service.dispatcher.drain()

    assert result.data["phone_number"] == "555 0100"
    assert result.data["email"] == "jane@new.com"
    assert result.data["invoice_status"] == "Sent"

    entry = audit_service.list_entries(db, record_id=client_id, action=AuditAction.UPDATE_CLIENT)[0]
    assert entry.old_values["email"] == "jane@x.com"
    assert entry.new_values["email"] == "jane@new.com"

    assert sheet_backend.cell(3, "phone_number") == "555 0100"
    assert sheet_backend.cell(3, "email") == "jane@new.com"
    assert sheet_backend.cell(3, "correo") == "jane@new.com"
    assert sheet_backend.cell(3, "invoice_status") == "Sent"


@pytest.mark.asyncio
async def test_update_trims_text_like_create(service, jane):
    client_id = (await service.create_client(jane)).data["client_id"]
    await service.dispatcher.drain()

    result = await service.update_client(
        client_id, {"service_type": "  Gate repair ", "company_name": " Doe LLC  "}
    )
    await service.dispatcher.drain()

    assert result.data["service_type"] == "Gate repair"
    assert result.data["company_name"] == "Doe LLC"
    with pytest.raises(ClientValidationError):
        await service.update_client(client_id, {"service_type": "   "})


@pytest.mark.asyncio
async def test_update_rejects_bad_patches(service, jane):
    client_id = (await service.create_client(jane)).data["client_id"]
    await service.dispatcher.drain()

    with pytest.raises(ClientValidationError):
        await service.update_client(client_id, {})
    with pytest.raises(ClientValidationError):
        await service.update_client(client_id, {"email": None})
    with pytest.raises(ClientValidationError):
        await service.update_client(client_id, {"client_id": "CLI000001AAA"})
    with pytest.raises(ClientValidationError):
        await service.update_client_status(client_id, "Archived")


@pytest.mark.asyncio
async def test_update_unknown_client(service):
    with pytest.raises(ClientNotFoundError):
        await service.update_client("CLI999999ZZZ", {"phone_number": "555"})
    with pytest.raises(ClientNotFoundError):
        await service.update_client_status("CLI999999ZZZ", "Contacted")


# =============================================================================
# Delete
# =============================================================================

@pytest.mark.asyncio
async def test_delete_cascades_reports_and_audits(db, service, jane, sheet_backend):
    client_id = (await service.create_client(jane)).data["client_id"]
    await service.dispatcher.drain()
    db.add(Report(report_id="RPT000001", client_id=client_id, report_type="Inspection"))
    db.commit()
    await service.get_client_by_id(client_id)

    result = await service.delete_client(client_id, actor_email="ops@irias.com")
    await service.dispatcher.drain()

    assert result.data == {"client_id": client_id}
    assert db.query(Report).count() == 0
    with pytest.raises(ClientNotFoundError):
        await service.get_client_by_id(client_id)

    entry = audit_service.list_entries(db, record_id=client_id, action=AuditAction.DELETE_CLIENT)[0]
    assert entry.new_values is None
    assert entry.old_values["client_full_name"] == "Jane Doe"
    # Mirror row is left alone
    assert sheet_backend.row_for(client_id) == 3


@pytest.mark.asyncio
async def test_delete_unknown_client(service):
    with pytest.raises(ClientNotFoundError):
        await service.delete_client("CLI999999ZZZ")


# =============================================================================
# Import
# =============================================================================

@pytest.mark.asyncio
async def test_import_counts_each_record(db, service, jane, sheet_backend, crm_receiver):
    batch = [
        {**jane, "client_id": "CLI000001AAA", "status": "Quoted", "sheet_row_index": 7},
        {**jane, "email": "not-an-email"},
        {**jane, "client_id": "CLI000001AAA"},
        {**jane, "email": "second@x.com"},
    ]

    result = await service.import_from_external_source(batch, actor_email="importer@irias.com")
    await service.dispatcher.drain()

    summary = result.data
    assert summary["imported"] == 2
    assert summary["errors"] == 1
    assert summary["skipped"] == 1
    assert summary["imported_ids"][0] == "CLI000001AAA"
    assert [d["index"] for d in summary["error_details"]] == [1, 2]
    assert summary["error_details"][1]["reason"] == "conflict"

    imported = db.query(Client).filter(Client.client_id == "CLI000001AAA").one()
    assert imported.status == "Quoted"
    assert imported.sheet_row_index == 7

    assert sheet_backend.requests == []
    assert crm_receiver.requests == []


# =============================================================================
# Failures of the relational store
# =============================================================================

@pytest.mark.asyncio
async def test_store_outage_raises_upstream_error(service, monkeypatch):
    monkeypatch.setattr(service.db, "query", _down)
    with pytest.raises(UpstreamError):
        await service.get_client_by_id("CLI000001AAA")


@pytest.mark.asyncio
async def test_health_check(service, monkeypatch):
    healthy = await service.health_check()
    assert healthy.success is True
    assert healthy.data["database"] == "connected"

    monkeypatch.setattr(service.db, "execute", _down)
    unhealthy = await service.health_check()
    assert unhealthy.success is False
    assert unhealthy.data["status"] == "unhealthy"


# =============================================================================
# Mirror diagnostics and cache invalidation
# =============================================================================

@pytest.mark.asyncio
async def test_mirror_diagnostics(service, sheet_backend):
    sheet_backend.add_client_row(client_full_name="Ann Lee")

    reachable = await service.mirror_diagnostics()
    assert reachable.data["status"] == "reachable"
    assert reachable.data["records"] == 1

    sheet_backend.fail_reads = True
    unreachable = await service.mirror_diagnostics()
    assert unreachable.success is False
    assert unreachable.data == {"status": "unreachable", "status_code": 503}


@pytest.mark.asyncio
async def test_mirror_diagnostics_not_configured(db, cache, test_settings):
    from intake.services.client_service import ClientService
    from intake.services.sheets_client import SheetsClient

    config = test_settings.model_copy(update={"SHEETS_SPREADSHEET_ID": ""})
    service = ClientService(db, cache=cache, sheets=SheetsClient(config), config=config)

    result = await service.mirror_diagnostics()

    assert result.data == {"status": "not_configured"}


@pytest.mark.asyncio
async def test_mirror_write_schedules_sheet_view_invalidation(service, cache, jane):
    await service.sheet_view.get_sheet_clients()
    assert cache.get(RECORDS_KEY) is not None

    await service.create_client(jane)
    await service.dispatcher.drain()
    assert cache.pending_invalidations == 1

    await asyncio.sleep(0.05)
    assert cache.get(RECORDS_KEY) is None
    assert cache.pending_invalidations == 0
