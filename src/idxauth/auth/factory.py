"""Builds the IDX wrapper from Settings.

With ``DEV__IDX_MOCK`` set, every caller shares one MockIdxTransport so a
flow started in one request can be continued in the next: the mock only
answers the newest state handle of each flow, and a fresh instance would
reject them all. Otherwise an HttpIdxTransport is built for the configured
authorization server, with the client secret sent only for confidential
clients.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from idxauth.auth.wrapper import IdxAuthenticationWrapper
from idxauth.config import get_settings

if TYPE_CHECKING:
    from idxauth.auth.protocol import IdxTransportProtocol


# Shared so state handles issued by the mock stay valid between calls
_mock_transport_instance: IdxTransportProtocol | None = None


def get_idx_transport() -> IdxTransportProtocol:
    """Return the IDX transport selected by configuration.

    In mock mode this is the shared MockIdxTransport. Otherwise it is an
    HttpIdxTransport for ``IDX__ISSUER``, requesting ``IDX__SCOPES`` and
    using ``HTTP__TIMEOUT_SECONDS`` for every org call. An empty
    ``IDX__CLIENT_SECRET`` is passed as None so the token exchange runs as a
    public PKCE client.

    Raises:
        ValueError: If idx.issuer or idx.client_id is empty and mock mode is
            disabled.
    """
    global _mock_transport_instance  # noqa: PLW0603
    settings = get_settings()

    if settings.dev.idx_mock:
        if _mock_transport_instance is None:
            from idxauth.auth.mock import MockIdxTransport

            _mock_transport_instance = MockIdxTransport()
        return _mock_transport_instance

    idx = settings.idx
    if not idx.issuer or not idx.client_id:
        msg = (
            "IDX__ISSUER and IDX__CLIENT_ID are required when DEV__IDX_MOCK is not "
            "enabled. Set them in your .env file."
        )
        raise ValueError(msg)

    from idxauth.auth.client import HttpIdxTransport

    return HttpIdxTransport(
        issuer=idx.issuer,
        client_id=idx.client_id,
        client_secret=idx.client_secret.get_secret_value() or None,
        scopes=idx.scopes,
        redirect_uri=idx.redirect_uri,
        timeout=settings.http.timeout_seconds,
    )


def get_idx_wrapper() -> IdxAuthenticationWrapper:
    """Get an IdxAuthenticationWrapper over the configured transport."""
    return IdxAuthenticationWrapper(get_idx_transport())


def clear_config_cache() -> None:
    """Drop cached Settings and the shared mock, along with its flows and users."""
    global _mock_transport_instance  # noqa: PLW0603
    get_settings.cache_clear()
    _mock_transport_instance = None
