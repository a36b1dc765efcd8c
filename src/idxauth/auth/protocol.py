"""Protocols for the collaborators of IdxAuthenticationWrapper.

HttpIdxTransport and MockIdxTransport both implement IdxTransportProtocol,
allowing them to be used interchangeably. SessionBinder implements
SessionBinderProtocol.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from idxauth.auth.models import Authenticator, ProceedContext, ProviderReply


class Operation(StrEnum):
    """Provider round-trips the wrapper can request."""

    AUTHENTICATE = "authenticate"
    RECOVER_PASSWORD = "recover_password"
    SELECT_AUTHENTICATOR = "select_authenticator"
    VERIFY_AUTHENTICATOR = "verify_authenticator"
    ENROLL_AUTHENTICATOR = "enroll_authenticator"
    SUBMIT_PHONE_AUTHENTICATOR = "submit_phone_authenticator"
    SKIP_AUTHENTICATOR_ENROLLMENT = "skip_authenticator_enrollment"
    CHANGE_PASSWORD = "change_password"
    REGISTER = "register"
    FETCH_SIGN_UP_FORM = "fetch_sign_up_form"


class IdxTransportProtocol(Protocol):
    """Protocol for identity-provider transports."""

    async def send(
        self,
        operation: Operation,
        context: ProceedContext | None,
        payload: Mapping[str, Any],
    ) -> ProviderReply:
        """Perform one provider round-trip.

        Args:
            operation: Which step to perform.
            context: Current proceed context; None only for operations that
                start a flow.
            payload: Operation-specific input (username, code, factor, ...).

        Returns:
            The provider's reply. Rejections are returned as replies with
            messages, not raised.

        Raises:
            TransportError: On network, timeout or protocol failures.
        """
        ...


class SessionBinderProtocol(Protocol):
    """Protocol for per-session storage of flow state."""

    def bind(self, session_key: str, context: ProceedContext | None) -> None:
        """Store ``context`` as the latest for ``session_key``; None releases it."""
        ...

    def retrieve(self, session_key: str) -> ProceedContext:
        """Return the most recently bound context for ``session_key``."""
        ...

    def bind_authenticators(
        self, session_key: str, authenticators: Sequence[Authenticator]
    ) -> None:
        """Store the authenticators offered at the current step."""
        ...

    def retrieve_authenticators(self, session_key: str) -> list[Authenticator]:
        """Return the authenticators bound for ``session_key``."""
        ...
