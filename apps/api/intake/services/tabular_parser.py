"""Delimited text parser for spreadsheet exports.

Every quote character toggles the "inside quotes" state and is dropped from
the output, so a doubled quote inside a quoted field is NOT unescaped
(``"a""b"`` parses as ``ab``).
Downstream lookups depend on these raw extracted substrings.
"""

from __future__ import annotations

import logging

from intake.core.exceptions import ParseError

logger = logging.getLogger(__name__)

QUOTE = '"'
NEWLINE = "\n"


def parse_tabular_text(text: str | bytes, delimiter: str = ",") -> list[list[str]]:
    """
    Parse delimited text into rows of trimmed field strings.

    - Delimiters and newlines inside quotes belong to the field.
    - Fields are trimmed (this also removes the ``\\r`` of CRLF line endings).
    - A trailing empty line is dropped. Interior blank lines are kept as a
      row with one empty field so row positions match the source.

    Raises:
        ParseError: input is not text, or a quote is still open at the end.
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError("Export is not valid UTF-8", details=str(exc)) from exc
    if not isinstance(text, str):
        raise ParseError(f"Expected text, got {type(text).__name__}")
    if len(delimiter) != 1 or delimiter in (QUOTE, NEWLINE):
        raise ParseError(f"Invalid delimiter: {delimiter!r}")

    if text.startswith("\ufeff"):
        text = text[1:]
    if not text.strip():
        return []

    rows: list[list[str]] = []
    row: list[str] = []
    field_chars: list[str] = []
    in_quotes = False

    for char in text:
        if char == QUOTE:
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            row.append("".join(field_chars).strip())
            field_chars = []
        elif char == NEWLINE and not in_quotes:
            row.append("".join(field_chars).strip())
            rows.append(row)
            row = []
            field_chars = []
        else:
            field_chars.append(char)

    if in_quotes:
        raise ParseError(
            "Unterminated quoted field",
            details={"row": len(rows) + 1},
        )

    # Last line without a trailing newline
    if row or field_chars:
        row.append("".join(field_chars).strip())
        rows.append(row)

    while rows and _is_blank(rows[-1]):
        rows.pop()

    logger.debug("Parsed tabular text rows=%s", len(rows))
    return rows


def _is_blank(row: list[str]) -> bool:
    return len(row) == 1 and row[0] == ""
