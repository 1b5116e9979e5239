"""Migration ticket engine: interviews, votes, decisions and subscriptions."""

from __future__ import annotations

from modules.migration.errors import MigrationError
from modules.migration.service import MigrationService

__all__ = ["MigrationError", "MigrationService"]
