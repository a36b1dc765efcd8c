"""Exception hierarchy for the IDX authentication flow.

UserInputError and ProviderRejectionError are recoverable: the wrapper turns
them into error-carrying AuthenticationResponse objects so the caller can
re-render the same step. StateIntegrityError and TransportError propagate to
the caller as hard failures.
"""

from __future__ import annotations

from typing import Any


class IdxError(Exception):
    """Base class for all idxauth errors."""

    error_type = "idx_error"


class UserInputError(IdxError):
    """User-supplied data was rejected before reaching the provider."""

    error_type = "user_input_error"


class ProviderRejectionError(IdxError):
    """The identity provider declined the request."""

    error_type = "provider_rejection"

    def __init__(self, messages: list[str] | tuple[str, ...]) -> None:
        self.messages = tuple(messages)
        super().__init__("; ".join(self.messages) or "Request rejected by provider")


class StateIntegrityError(IdxError):
    """The caller referenced state that is not part of the current flow step."""

    error_type = "state_integrity_error"


class FactorNotFoundError(StateIntegrityError):
    """No factor with the requested method exists in the current catalog."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Factor not found: {method}")


class DuplicateFactorError(StateIntegrityError):
    """A factor method appears more than once across one set of authenticators."""

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Factor method is ambiguous: {method}")


class MissingProceedContextError(StateIntegrityError):
    """An operation needed a proceed context but none was supplied or bound."""


class TransportError(IdxError):
    """The provider could not be reached, timed out, or sent an unreadable reply.

    Attributes:
        error_response: Decoded error body from the provider, if there was one.
        status_code: HTTP status code, if a response was received.
    """

    error_type = "transport_error"

    def __init__(
        self,
        message: str,
        *,
        error_response: dict[str, Any] | None = None,
        status_code: int | None = None,
    ) -> None:
        self.error_response = error_response
        self.status_code = status_code
        super().__init__(message)
