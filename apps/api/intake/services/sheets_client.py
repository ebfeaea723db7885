"""Google Sheets mirror client (read export, append rows, update cells).

Reads go through the CSV export of the form-responses tab. Writes use the
Sheets v4 REST API with a bearer token. Every call is bounded by
OUTBOUND_TIMEOUT_SECONDS and failures surface as MirrorError.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping
from urllib.parse import quote

import anyio
import httpx

from intake.core.config import Settings, settings as default_settings
from intake.core.exceptions import MirrorError
from intake.schemas.sheet import SheetClientRecord
from intake.services.sheet_reconciler import compute_row_offset, ingest_export

logger = logging.getLogger(__name__)

GVIZ_EXPORT_URL = "https://docs.google.com/spreadsheets/d/{spreadsheet_id}/gviz/tq"
VALUE_INPUT_OPTION = "USER_ENTERED"


# =============================================================================
# Column layout
# =============================================================================

# Field written to each mirror column, in sheet order (A..AA).
MIRROR_COLUMNS: list[str] = [
    "form_emailer_status",  # A
    "client_id",  # B
    "invoice_status",  # C
    "estimate_status",  # D
    "status",  # E  Customer Status
    "responsable",  # F
    "timestamp",  # G
    "date",  # H
    "channel",  # I
    "service_type",  # J
    "client_full_name",  # K
    "email",  # L
    "address",  # M
    "correo",  # N  second e-mail column kept by the form tool
    "phone_number",  # O
    "customer_type",  # P
    "technical_description",  # Q
    "price",  # R
    "company_name",  # S
    "project_address",  # T
    "service_requested",  # U
    "urgency_level",  # V
    "preferred_contact_method",  # W
    "additional_notes",  # X
    "budget_range",  # Y
    "expected_timeline",  # Z
    "special_requirements",  # AA
]

# Written once on append, never patched in place.
READ_ONLY_MIRROR_FIELDS = frozenset({"client_id", "timestamp", "date"})

# A client field that also feeds a second mirror column.
MIRROR_ALIASES: dict[str, tuple[str, ...]] = {
    "email": ("email", "correo"),
    "project_address": ("project_address", "address"),
    "service_type": ("service_type", "service_requested"),
}


def column_letter(index: int) -> str:
    """Zero-based column index to A1 letters (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError("column index must be >= 0")
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


MIRROR_COLUMN_LETTERS: dict[str, str] = {
    name: column_letter(position) for position, name in enumerate(MIRROR_COLUMNS)
}
LAST_COLUMN = column_letter(len(MIRROR_COLUMNS) - 1)


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def build_mirror_row(client: Mapping[str, Any], now: datetime | None = None) -> list[str]:
    """Full A..AA row for a client snapshot (as produced by ``client_snapshot``)."""
    now = now or datetime.now(timezone.utc)
    values = {
        **{name: _cell(client.get(name)) for name in MIRROR_COLUMNS},
        "timestamp": now.isoformat(),
        "date": now.strftime("%m/%d/%Y"),
        "address": _cell(client.get("project_address")),
        "correo": _cell(client.get("email")),
        "service_requested": _cell(client.get("service_type")),
        "price": "",
    }
    return [values[name] for name in MIRROR_COLUMNS]


def build_cell_updates(changes: Mapping[str, Any]) -> dict[str, str]:
    """Map changed client fields onto mirror columns ({column_field: value})."""
    cells: dict[str, str] = {}
    for field_name, value in changes.items():
        for target in MIRROR_ALIASES.get(field_name, (field_name,)):
            if target in MIRROR_COLUMN_LETTERS and target not in READ_ONLY_MIRROR_FIELDS:
                cells[target] = _cell(value)
    return cells


# =============================================================================
# Client
# =============================================================================

class SheetsClient:
    """Async adapter for the spreadsheet mirror."""

    def __init__(
        self,
        config: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or default_settings
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return self.config.sheets_configured

    @property
    def tab_name(self) -> str:
        return self.config.SHEETS_TAB_NAME

    def a1(self, cells: str) -> str:
        """Prefix an A1 range with the quoted tab name."""
        tab = self.tab_name.replace("'", "''")
        return f"'{tab}'!{cells}"

    def export_url(self) -> str:
        if self.config.SHEETS_EXPORT_URL:
            return self.config.SHEETS_EXPORT_URL
        return GVIZ_EXPORT_URL.format(spreadsheet_id=self.config.SHEETS_SPREADSHEET_ID)

    def _values_url(self, suffix: str) -> str:
        base = self.config.SHEETS_API_BASE.rstrip("/")
        return f"{base}/{self.config.SHEETS_SPREADSHEET_ID}/values{suffix}"

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.config.SHEETS_ACCESS_TOKEN:
            headers["Authorization"] = f"Bearer {self.config.SHEETS_ACCESS_TOKEN}"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if not self.is_configured:
            raise MirrorError("Spreadsheet mirror is not configured")

        timeout = self.config.OUTBOUND_TIMEOUT_SECONDS
        try:
            with anyio.fail_after(timeout):
                async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                    response = await client.request(
                        method,
                        url,
                        headers=self._headers(),
                        params=params,
                        json=json_body,
                    )
        except TimeoutError as exc:
            raise MirrorError(f"Spreadsheet request timed out after {timeout}s") from exc
        except httpx.HTTPError as exc:
            raise MirrorError(f"Spreadsheet request failed: {exc}") from exc

        if response.status_code >= 400:
            message = _error_message(response)
            logger.warning(
                "Sheets API error method=%s status=%s message=%s",
                method,
                response.status_code,
                message,
            )
            raise MirrorError(
                f"Spreadsheet API error {response.status_code}: {message}",
                status_code=response.status_code,
            )
        return response

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def fetch_export(self) -> str:
        """Raw CSV text of the form-responses tab."""
        params: dict[str, str] = {}
        if not self.config.SHEETS_EXPORT_URL:
            params = {"tqx": "out:csv", "sheet": self.tab_name}
        if self.config.SHEETS_API_KEY:
            params["key"] = self.config.SHEETS_API_KEY
        response = await self._request("GET", self.export_url(), params=params or None)
        return response.text

    async def fetch_records(self) -> list[SheetClientRecord]:
        """Fresh ingestion pass (no caching)."""
        text = await self.fetch_export()
        return ingest_export(
            text,
            header_rows=self.config.SHEET_HEADER_ROWS,
            template_rows=self.config.SHEET_TEMPLATE_ROWS,
            row_offset=compute_row_offset(
                self.config.SHEET_HEADER_ROWS,
                self.config.SHEET_TEMPLATE_ROWS,
                self.config.SHEET_ROW_INDEX_ADJUSTMENT,
            ),
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def append_row(self, row: list[str]) -> int:
        """Append one row after the last data row. Returns updated row count."""
        response = await self._request(
            "POST",
            self._values_url(f"/{quote(self.a1(f'A:{LAST_COLUMN}'), safe='')}:append"),
            params={"valueInputOption": VALUE_INPUT_OPTION, "insertDataOption": "INSERT_ROWS"},
            json_body={"values": [row]},
        )
        payload = _json(response)
        updates = payload.get("updates") if isinstance(payload.get("updates"), dict) else {}
        return int(updates.get("updatedRows") or 1)

    async def batch_update_cells(self, row_index: int, cells: Mapping[str, str]) -> int:
        """Write ``{mirror_field: value}`` into row ``row_index``.

        ``row_index`` must come from an ingestion pass made for this write.
        Returns the number of updated cells.
        """
        if row_index < 1:
            raise MirrorError(f"Invalid sheet row index: {row_index}")
        data = []
        for field_name, value in cells.items():
            letter = MIRROR_COLUMN_LETTERS.get(field_name)
            if letter is None:
                continue
            data.append({"range": self.a1(f"{letter}{row_index}"), "values": [[value]]})
        if not data:
            return 0

        response = await self._request(
            "POST",
            self._values_url(":batchUpdate"),
            json_body={"valueInputOption": VALUE_INPUT_OPTION, "data": data},
        )
        payload = _json(response)
        return int(payload.get("totalUpdatedCells") or len(data))

    async def write_client_id(self, row_index: int, client_id: str) -> int:
        """Fill the client_id cell of a row created by the intake form."""
        return await self.batch_update_cells(row_index, {"client_id": client_id})


def _json(response: httpx.Response) -> dict[str, Any]:
    if not response.content:
        return {}
    try:
        decoded = response.json()
    except ValueError:
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _error_message(response: httpx.Response) -> str:
    payload = _json(response)
    error = payload.get("error")
    if isinstance(error, dict):
        raw_message = error.get("message")
        if isinstance(raw_message, str) and raw_message.strip():
            return raw_message.strip()
    return response.reason_phrase or "unknown error"
