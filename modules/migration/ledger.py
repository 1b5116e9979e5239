"""Async ledger client used by the interview and approval workflows."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from shared.sheets import async_adapter
from shared.sheets import core as sheet_core
from shared.sheets import ledger as sheet_ledger

from .errors import ExternalUnavailable

log = logging.getLogger("migration.ledger")

T = TypeVar("T")

# a call may open the spreadsheet, open the tab and then read or write,
# each with its own retry schedule, plus 30s for the requests themselves
_DEFAULT_TIMEOUT = 3 * sheet_core.backoff_budget() + 30.0


class LedgerClient:
    """Non-blocking facade over :mod:`shared.sheets.ledger`.

    Every failure, whether a Sheets API error, a transport error or a
    timeout, surfaces as :class:`ExternalUnavailable` naming the operation.
    """

    def __init__(
        self,
        *,
        runner: Optional[Callable[..., Awaitable[Any]]] = None,
        timeout: Optional[float] = _DEFAULT_TIMEOUT,
    ) -> None:
        self._runner = runner or async_adapter.arun
        self._timeout = timeout

    async def _call(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        try:
            return await self._runner(func, *args, timeout=self._timeout)
        except asyncio.CancelledError:
            raise
        except ValueError:
            raise
        except Exception as exc:
            log.warning(
                "ledger call failed",
                exc_info=True,
                extra={"operation": operation},
            )
            raise ExternalUnavailable(f"ledger.{operation}", exc) from exc

    async def find_row(self, sheet_id: str, ticket_id: str) -> Optional[int]:
        return await self._call("find_row", sheet_ledger.find_row, sheet_id, ticket_id)

    async def create_row(self, sheet_id: str, ticket_id: str, applicant_name: str) -> None:
        await self._call("create_row", sheet_ledger.create_row, sheet_id, ticket_id, applicant_name)

    async def update_cell(self, sheet_id: str, row: int, column: str, value: str) -> None:
        await self._call("update_cell", sheet_ledger.update_cell, sheet_id, row, column, value)

    async def read_cell(self, sheet_id: str, row: int, column: str) -> str:
        return await self._call("read_cell", sheet_ledger.read_cell, sheet_id, row, column)

    async def ensure_row(self, sheet_id: str, ticket_id: str, applicant_name: str) -> int:
        """Return the ticket's row, appending a PENDING row first if absent.

        Find-then-create is not transactional: two callers racing past the
        initial lookup both append. Callers serialize per ticket channel.
        """

        row = await self.find_row(sheet_id, ticket_id)
        if row is not None:
            return row
        await self.create_row(sheet_id, ticket_id, applicant_name)
        row = await self.find_row(sheet_id, ticket_id)
        if row is None:
            raise ExternalUnavailable("ledger.find_row")
        return row


__all__ = ["LedgerClient"]
