"""Thread-pool bridge between the event loop and blocking gspread calls.

Ledger reads and writes are network round-trips inside gspread; they run on a
small dedicated pool so a slow Sheets response never stalls the gateway.
Every ``await arun(...)`` is a suspension point.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Callable, Optional, ParamSpec, TypeVar

P = ParamSpec("P")
T = TypeVar("T")

log = logging.getLogger("migration.sheets.adapter")

POOL_SIZE = 4


class _Pool:
    def __init__(self, size: int) -> None:
        self._size = size
        self._executor: Optional[ThreadPoolExecutor] = None
        self._guard = threading.Lock()

    def get(self) -> ThreadPoolExecutor:
        with self._guard:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._size,
                    thread_name_prefix="sheets-io",
                )
                log.info("sheets pool started", extra={"workers": self._size})
            return self._executor

    def close(self, wait: bool) -> None:
        with self._guard:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
            log.info("sheets pool stopped")


_POOL = _Pool(POOL_SIZE)


def shutdown_executor(wait: bool = True) -> None:
    _POOL.close(wait)


async def arun(
    func: Callable[P, T],
    *args: P.args,
    timeout: float | None = None,
    **kwargs: P.kwargs,
) -> T:
    """Run ``func(*args, **kwargs)`` on the sheets pool; ``timeout`` bounds the wait."""

    loop = asyncio.get_running_loop()
    pending = loop.run_in_executor(_POOL.get(), partial(func, *args, **kwargs))
    if timeout is None:
        return await pending
    return await asyncio.wait_for(pending, timeout)


__all__ = ["POOL_SIZE", "arun", "shutdown_executor"]
