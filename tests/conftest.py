"""Fixtures shared by every test package."""

from __future__ import annotations

import pytest

from shared.testing.environment import apply_required_test_environment

# shared.config validates these at import time
apply_required_test_environment()


@pytest.fixture
def config_path(tmp_path):
    """Location of a throwaway guild configuration document."""

    return tmp_path / "guild_config.json"
