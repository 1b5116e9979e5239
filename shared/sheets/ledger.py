"""Row-oriented migration ledger stored in a Google Sheet.

One row per ticket, keyed by the ticket identifier in column A::

    A ticket | B-E answers | F status | G decided by | H decided at | I applicant

Functions here are blocking; async callers go through
:class:`modules.migration.ledger.LedgerClient`.
"""

from __future__ import annotations

import logging
from typing import Optional

from shared.config import get_ledger_tab
from shared.sheets import core

log = logging.getLogger("migration.sheets.ledger")

COL_TICKET = "A"
COL_STATUS = "F"
COL_DECIDED_BY = "G"
COL_DECIDED_AT = "H"
COL_APPLICANT = "I"
ANSWER_COLUMNS = ("B", "C", "D", "E")
LAST_COLUMN = COL_APPLICANT

STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"

_VALID_COLUMNS = {chr(code) for code in range(ord("A"), ord(LAST_COLUMN) + 1)}


def _worksheet(sheet_id: str):
    # Short TTL: the handle is cheap to reuse but a guild may re-point its sheet.
    return core.get_worksheet(sheet_id, get_ledger_tab(), ttl=60.0)


def _check_column(column: str) -> str:
    label = (column or "").strip().upper()
    if label not in _VALID_COLUMNS:
        raise ValueError(f"column must be one of A-{LAST_COLUMN}, got {column!r}")
    return label


def _check_row(row: int) -> int:
    if int(row) < 1:
        raise ValueError("row index is 1-based")
    return int(row)


def blank_row(ticket_id: str, applicant_name: str) -> list[str]:
    return [ticket_id, "", "", "", "", STATUS_PENDING, "", "", applicant_name]


def find_row(sheet_id: str, ticket_id: str) -> Optional[int]:
    """Return the 1-based row whose column A equals ``ticket_id`` exactly."""

    worksheet = _worksheet(sheet_id)
    column = core.with_backoff(lambda: worksheet.col_values(1))
    for index, value in enumerate(column, start=1):
        if value == ticket_id:
            return index
    return None


def create_row(sheet_id: str, ticket_id: str, applicant_name: str) -> None:
    worksheet = _worksheet(sheet_id)
    values = blank_row(ticket_id, applicant_name)
    core.with_backoff(
        lambda: worksheet.append_row(
            values,
            value_input_option="RAW",
            table_range=f"A1:{LAST_COLUMN}1",
        )
    )
    log.info(
        "🧾 ledger row inserted • ticket=%s • applicant=%s",
        ticket_id,
        applicant_name,
    )


def update_cell(sheet_id: str, row: int, column: str, value: str) -> None:
    """Overwrite a single cell; the stored text is exactly ``value``."""

    label = f"{_check_column(column)}{_check_row(row)}"
    worksheet = _worksheet(sheet_id)
    core.with_backoff(
        lambda: worksheet.update(
            range_name=label,
            values=[[value]],
            value_input_option="RAW",
        )
    )
    log.debug("ledger cell updated", extra={"cell": label, "sheet_id": sheet_id})


def read_cell(sheet_id: str, row: int, column: str) -> str:
    label = f"{_check_column(column)}{_check_row(row)}"
    worksheet = _worksheet(sheet_id)
    cell = core.with_backoff(lambda: worksheet.acell(label))
    value = getattr(cell, "value", None)
    return "" if value is None else str(value)


__all__ = [
    "ANSWER_COLUMNS",
    "COL_APPLICANT",
    "COL_DECIDED_AT",
    "COL_DECIDED_BY",
    "COL_STATUS",
    "COL_TICKET",
    "STATUS_APPROVED",
    "STATUS_PENDING",
    "STATUS_REJECTED",
    "blank_row",
    "create_row",
    "find_row",
    "read_cell",
    "update_cell",
]
