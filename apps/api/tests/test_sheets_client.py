"""Tests for the spreadsheet mirror client."""

import json
from urllib.parse import unquote

import httpx
import pytest

from intake.core.config import Settings
from intake.core.exceptions import MirrorError
from intake.services.sheets_client import (
    LAST_COLUMN,
    MIRROR_COLUMN_LETTERS,
    MIRROR_COLUMNS,
    SheetsClient,
    build_cell_updates,
    build_mirror_row,
    column_letter,
)


def test_column_letters():
    assert column_letter(0) == "A"
    assert column_letter(25) == "Z"
    assert column_letter(26) == "AA"
    assert column_letter(27) == "AB"
    assert len(MIRROR_COLUMNS) == 27
    assert LAST_COLUMN == "AA"
    assert MIRROR_COLUMN_LETTERS["status"] == "E"
    assert MIRROR_COLUMN_LETTERS["client_full_name"] == "K"
    assert MIRROR_COLUMN_LETTERS["phone_number"] == "O"
    assert MIRROR_COLUMN_LETTERS["special_requirements"] == "AA"


def test_build_mirror_row_layout():
    row = build_mirror_row(
        {
            "client_id": "CLI123456ABC",
            "client_full_name": "Jane Doe",
            "email": "jane@x.com",
            "project_address": "1 Main St",
            "service_type": "Repair",
            "status": "New Lead",
            "phone_number": None,
        }
    )
    assert len(row) == 27
    assert row[MIRROR_COLUMNS.index("client_id")] == "CLI123456ABC"
    assert row[10] == "Jane Doe"
    assert row[11] == "jane@x.com"
    assert row[MIRROR_COLUMNS.index("correo")] == "jane@x.com"
    assert row[MIRROR_COLUMNS.index("address")] == "1 Main St"
    assert row[14] == ""
    assert row[MIRROR_COLUMNS.index("timestamp")]


def test_build_cell_updates_skips_read_only_and_expands_aliases():
    cells = build_cell_updates(
        {"status": "Contacted", "email": "new@x.com", "client_id": "CLI000000XXX", "unknown": "x"}
    )
    assert cells == {"status": "Contacted", "email": "new@x.com", "correo": "new@x.com"}


@pytest.mark.asyncio
async def test_fetch_records_reads_export(sheets, sheet_backend):
    sheet_backend.add_client_row(client_full_name="Ann Lee", client_id="CLI000001AAA")
    sheet_backend.add_client_row(client_full_name="", email="blank@x.com")
    sheet_backend.add_client_row(client_full_name="Ben Ray")

    records = await sheets.fetch_records()

    assert [(r.client_full_name, r.row_index) for r in records] == [("Ben Ray", 5), ("Ann Lee", 3)]
    request = sheet_backend.requests[0]
    assert request.url.params["tqx"] == "out:csv"
    assert request.url.params["sheet"] == "Form Responses 1"


@pytest.mark.asyncio
async def test_append_row_uses_quoted_range_and_user_entered(sheets, sheet_backend):
    updated = await sheets.append_row(["x"] * 27)

    assert updated == 1
    request = sheet_backend.write_requests[0]
    assert unquote(request.url.path).endswith("/values/'Form Responses 1'!A:AA:append")
    assert request.url.params["valueInputOption"] == "USER_ENTERED"
    assert request.headers["Authorization"] == "Bearer test-token"
    assert sheet_backend.rows[-1] == ["x"] * 27


@pytest.mark.asyncio
async def test_batch_update_cells_targets_row(sheets, sheet_backend):
    row_number = sheet_backend.add_client_row(client_full_name="Ann Lee", status="New Lead")

    count = await sheets.batch_update_cells(row_number, {"status": "Contacted", "invoice_status": "Sent"})

    assert count == 2
    body = json.loads(sheet_backend.write_requests[0].content)
    assert body["valueInputOption"] == "USER_ENTERED"
    assert {item["range"] for item in body["data"]} == {
        f"'Form Responses 1'!E{row_number}",
        f"'Form Responses 1'!C{row_number}",
    }
    assert sheet_backend.cell(row_number, "status") == "Contacted"
    assert sheet_backend.cell(row_number, "invoice_status") == "Sent"


@pytest.mark.asyncio
async def test_write_client_id(sheets, sheet_backend):
    row_number = sheet_backend.add_client_row(client_full_name="Ann Lee")
    await sheets.write_client_id(row_number, "CLI000001AAA")
    assert sheet_backend.cell(row_number, "client_id") == "CLI000001AAA"


@pytest.mark.asyncio
async def test_api_errors_raise_mirror_error(sheets, sheet_backend):
    sheet_backend.fail_writes = True
    with pytest.raises(MirrorError) as exc_info:
        await sheets.append_row(["x"])
    assert exc_info.value.status_code == 503
    assert "backend unavailable" in exc_info.value.message


@pytest.mark.asyncio
async def test_invalid_row_index_rejected(sheets):
    with pytest.raises(MirrorError):
        await sheets.batch_update_cells(0, {"status": "Quoted"})


@pytest.mark.asyncio
async def test_unconfigured_client_raises():
    client = SheetsClient(Settings(SHEETS_SPREADSHEET_ID="", SHEETS_EXPORT_URL=""))
    assert client.is_configured is False
    with pytest.raises(MirrorError):
        await client.fetch_export()


@pytest.mark.asyncio
async def test_transport_errors_become_mirror_errors(test_settings):
    def _boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = SheetsClient(test_settings, transport=httpx.MockTransport(_boom))
    with pytest.raises(MirrorError):
        await client.fetch_export()


@pytest.mark.asyncio
async def test_export_url_override(test_settings, sheet_backend):
    config = test_settings.model_copy(
        update={"SHEETS_EXPORT_URL": "https://example.com/export.csv", "SHEETS_API_KEY": "k"}
    )
    client = SheetsClient(config, transport=sheet_backend.transport)
    await client.fetch_export()
    request = sheet_backend.requests[0]
    assert request.url.host == "example.com"
    assert request.url.params["key"] == "k"
    assert "tqx" not in request.url.params
