"""Shared fixtures for all tests."""

from __future__ import annotations

import pytest

from idxauth.auth.factory import clear_config_cache


@pytest.fixture(autouse=True)
def _reset_config_cache():
    """Give every test a fresh Settings and mock transport."""
    clear_config_cache()
    yield
    clear_config_cache()
