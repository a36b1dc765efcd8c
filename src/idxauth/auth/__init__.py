"""IDX authentication flow for idxauth.

Provides a client-side driver for the Okta Identity Engine with support for:
- Password login with multi-factor challenge and enrollment
- Password recovery and expired-password change
- Self-service registration
- Mock transport for testing

Usage:
    from idxauth.auth import AuthenticationOptions, SessionBinder, get_idx_wrapper

    wrapper = get_idx_wrapper()
    sessions = SessionBinder()

    response = await wrapper.authenticate(
        AuthenticationOptions(username="alice@example.com", password="secret"),
    )
    sessions.bind("session-1", response.proceed_context)
"""

from __future__ import annotations

from idxauth.auth.catalog import factors_of, resolve
from idxauth.auth.errors import (
    DuplicateFactorError,
    FactorNotFoundError,
    IdxError,
    MissingProceedContextError,
    ProviderRejectionError,
    StateIntegrityError,
    TransportError,
    UserInputError,
)
from idxauth.auth.factory import clear_config_cache, get_idx_transport, get_idx_wrapper
from idxauth.auth.models import (
    AuthenticationOptions,
    AuthenticationResponse,
    AuthenticationStatus,
    Authenticator,
    AuthenticatorType,
    ChangePasswordOptions,
    Factor,
    NewUserRegistrationResponse,
    ProceedContext,
    TokenResponse,
    UserProfile,
    VerifyAuthenticatorOptions,
)
from idxauth.auth.protocol import IdxTransportProtocol, Operation, SessionBinderProtocol
from idxauth.auth.session import SessionBinder
from idxauth.auth.wrapper import IdxAuthenticationWrapper

__all__ = [
    "AuthenticationOptions",
    "AuthenticationResponse",
    "AuthenticationStatus",
    "Authenticator",
    "AuthenticatorType",
    "ChangePasswordOptions",
    "DuplicateFactorError",
    "Factor",
    "FactorNotFoundError",
    "IdxAuthenticationWrapper",
    "IdxError",
    "IdxTransportProtocol",
    "MissingProceedContextError",
    "NewUserRegistrationResponse",
    "Operation",
    "ProceedContext",
    "ProviderRejectionError",
    "SessionBinder",
    "SessionBinderProtocol",
    "StateIntegrityError",
    "TokenResponse",
    "TransportError",
    "UserInputError",
    "UserProfile",
    "VerifyAuthenticatorOptions",
    "clear_config_cache",
    "factors_of",
    "get_idx_transport",
    "get_idx_wrapper",
    "resolve",
]
