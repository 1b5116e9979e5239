"""Google Sheets access for the migration ledger.

Submodules load on first attribute access so importing the package never
pulls in gspread.
"""

from __future__ import annotations

import importlib
from types import ModuleType

__all__ = ["async_adapter", "core", "ledger"]


def __getattr__(name: str) -> ModuleType:
    if name not in __all__:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module = importlib.import_module(f"{__name__}.{name}")
    globals()[name] = module
    return module
