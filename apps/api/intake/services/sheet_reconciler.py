"""Turn parsed spreadsheet rows into canonical sheet client records.

Layout of the export (top to bottom):
- header row(s): field names, possibly with sample text glued on
- template row(s): a sample entry kept for the form tool, never a client
- data rows: one client per row, oldest first

Row indexes are derived from position on every pass and are never stored as
identity.
"""

from __future__ import annotations

import logging

from intake.core.config import settings
from intake.core.exceptions import ParseError
from intake.schemas.sheet import SheetClientRecord
from intake.services.schema_recovery import RecoveredSchema
from intake.services.tabular_parser import parse_tabular_text
from intake.utils.datetime_parsing import sheet_sort_timestamp

logger = logging.getLogger(__name__)


def compute_row_offset(
    header_rows: int = 1,
    template_rows: int = 1,
    adjustment: int = 1,
) -> int:
    """Offset added to a data row's zero-based position to get its sheet row.

    header rows + template rows + 1 (sheets are 1-based) + layout adjustment.
    """
    return header_rows + template_rows + 1 + adjustment


def reconcile_rows(
    rows: list[list[str]],
    *,
    header_rows: int | None = None,
    template_rows: int | None = None,
    row_offset: int | None = None,
) -> list[SheetClientRecord]:
    """
    Build records from parsed rows (header included).

    Rows without a name at the trusted name offset are dropped but still
    consume their row index. Output is newest first: row_index descending,
    then timestamp/date descending.
    """
    if header_rows is None:
        header_rows = settings.SHEET_HEADER_ROWS
    if template_rows is None:
        template_rows = settings.SHEET_TEMPLATE_ROWS
    if row_offset is None:
        row_offset = compute_row_offset(
            header_rows, template_rows, settings.SHEET_ROW_INDEX_ADJUSTMENT
        )

    if len(rows) <= header_rows:
        return []

    schema = RecoveredSchema.from_header_row(rows[0])
    data_rows = rows[header_rows + template_rows:]

    records: list[SheetClientRecord] = []
    skipped = 0
    for position, row in enumerate(data_rows):
        row_index = position + row_offset
        values = schema.extract(row)
        name = values["client_full_name"].strip()
        if not name:
            skipped += 1
            logger.debug("Skipping sheet row without a name row_index=%s", row_index)
            continue
        values["client_full_name"] = name
        records.append(SheetClientRecord(row_index=row_index, **values))

    records.sort(
        key=lambda record: (record.row_index, sheet_sort_timestamp(record.timestamp, record.date)),
        reverse=True,
    )

    logger.info(
        "Reconciled sheet rows records=%s skipped=%s",
        len(records),
        skipped,
    )
    return records


def ingest_export(text: str | bytes, **kwargs) -> list[SheetClientRecord]:
    """Parse, recover and reconcile an export in one pass.

    A malformed export yields an empty list for this pass.
    """
    try:
        rows = parse_tabular_text(text)
    except ParseError as exc:
        logger.warning("Sheet export could not be parsed: %s", exc.message)
        return []
    return reconcile_rows(rows, **kwargs)


def find_record(records: list[SheetClientRecord], client_id: str) -> SheetClientRecord | None:
    """Locate a record by client_id within a single ingestion pass."""
    for record in records:
        if record.client_id.strip() == client_id:
            return record
    return None
