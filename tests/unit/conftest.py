"""Shared fixtures for unit tests."""

from __future__ import annotations

import pytest

from idxauth.auth.mock import MockIdxTransport
from idxauth.auth.session import SessionBinder
from idxauth.auth.wrapper import IdxAuthenticationWrapper


@pytest.fixture
def mock_transport() -> MockIdxTransport:
    """A scripted provider with the default users."""
    return MockIdxTransport()


@pytest.fixture
def wrapper(mock_transport: MockIdxTransport) -> IdxAuthenticationWrapper:
    """A wrapper driving the mock provider."""
    return IdxAuthenticationWrapper(mock_transport)


@pytest.fixture
def sessions() -> SessionBinder:
    return SessionBinder()
