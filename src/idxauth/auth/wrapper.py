"""IDX authentication wrapper: the authentication flow state machine.

Each public method performs exactly one provider round-trip through the
injected transport and normalizes the reply into an AuthenticationResponse.
The wrapper keeps no per-flow state; everything a flow needs travels in the
ProceedContext, which the caller binds to its session between calls.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from idxauth.auth.errors import (
    MissingProceedContextError,
    ProviderRejectionError,
    StateIntegrityError,
    UserInputError,
)
from idxauth.auth.models import (
    PHONE_METHODS,
    AuthenticationResponse,
    AuthenticationStatus,
    NewUserRegistrationResponse,
    ProceedContext,
    ProviderReply,
)
from idxauth.auth.protocol import Operation

if TYPE_CHECKING:
    from collections.abc import Mapping

    from idxauth.auth.errors import IdxError
    from idxauth.auth.models import (
        AuthenticationOptions,
        ChangePasswordOptions,
        Factor,
        UserProfile,
        VerifyAuthenticatorOptions,
    )
    from idxauth.auth.protocol import IdxTransportProtocol

logger = logging.getLogger(__name__)

# Checked in order; the first action present decides the status.
_STATUS_BY_ACTION: tuple[tuple[str, AuthenticationStatus], ...] = (
    ("reenroll-authenticator", AuthenticationStatus.PASSWORD_EXPIRED),
    ("reset-authenticator", AuthenticationStatus.AWAITING_PASSWORD_RESET),
    (
        "select-authenticator-authenticate",
        AuthenticationStatus.AWAITING_AUTHENTICATOR_SELECTION,
    ),
    (
        "select-authenticator-enroll",
        AuthenticationStatus.AWAITING_AUTHENTICATOR_ENROLLMENT_SELECTION,
    ),
    (
        "authenticator-enrollment-data",
        AuthenticationStatus.AWAITING_AUTHENTICATOR_ENROLLMENT_DATA,
    ),
    ("challenge-authenticator", AuthenticationStatus.AWAITING_AUTHENTICATOR_VERIFICATION),
    ("enroll-authenticator", AuthenticationStatus.AWAITING_AUTHENTICATOR_VERIFICATION),
    ("enroll-profile", AuthenticationStatus.AWAITING_PROFILE_ENROLLMENT),
)

PASSWORD_MISMATCH = "Passwords do not match"

# E.164: optional "+", up to 15 digits, no leading zero.
_PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{6,14}$")


def derive_status(reply: ProviderReply, *, skipped: bool = False) -> AuthenticationStatus:
    """Map one provider reply onto an AuthenticationStatus.

    Pure function of its arguments: equivalent replies always produce the
    same status.

    Args:
        reply: The normalized provider reply.
        skipped: True when the reply answers a skip request. Only a skip the
            provider completed, with no step and no error left, ends the flow.
    """
    if reply.token is not None:
        return AuthenticationStatus.SUCCESS
    names = set(reply.action_names)
    for action, status in _STATUS_BY_ACTION:
        if action in names:
            return status
    if skipped and (reply.terminal or not reply.messages):
        return AuthenticationStatus.SKIP_COMPLETE
    if reply.terminal:
        return AuthenticationStatus.AWAITING_USER_EMAIL_ACTIVATION
    return AuthenticationStatus.FAILED


def status_of_context(context: ProceedContext | None) -> AuthenticationStatus:
    """Return the status of the step ``context`` was issued for."""
    if context is None:
        return AuthenticationStatus.FAILED
    return derive_status(
        ProviderReply(state_handle=context.state_handle, actions=context.actions)
    )


def normalize_phone(phone: str) -> str:
    """Strip whitespace from ``phone`` and check it looks like E.164.

    Raises:
        UserInputError: If the number is empty or malformed.
    """
    trimmed = re.sub(r"\s+", "", phone or "")
    if not trimmed:
        raise UserInputError("Phone is required")
    if not _PHONE_PATTERN.match(trimmed):
        raise UserInputError("Invalid phone number")
    return trimmed


def _require_text(value: str | None, message: str) -> None:
    if not value or not value.strip():
        raise UserInputError(message)


def _require_context(context: ProceedContext | None) -> ProceedContext:
    if context is None:
        msg = "This operation needs the proceed context from the previous step"
        raise MissingProceedContextError(msg)
    return context


def _check_confirmation(value: str, confirmation: str | None) -> None:
    if confirmation is not None and value != confirmation:
        raise UserInputError(PASSWORD_MISMATCH)


def _next_context(
    reply: ProviderReply, incoming: ProceedContext | None
) -> ProceedContext | None:
    """Build the context for the next call, keeping ``incoming`` when the
    provider issued no new state handle."""
    if reply.state_handle is None:
        return incoming
    return ProceedContext(
        state_handle=reply.state_handle,
        actions=reply.actions,
        interaction_handle=reply.interaction_handle
        or (incoming.interaction_handle if incoming else None),
        code_verifier=reply.code_verifier
        or (incoming.code_verifier if incoming else None),
    )


def _error_response(
    error: IdxError, context: ProceedContext | None
) -> AuthenticationResponse:
    """Report a recoverable error while leaving the flow at the same step."""
    messages = getattr(error, "messages", None) or (str(error),)
    return AuthenticationResponse(
        status=status_of_context(context),
        errors=tuple(messages),
        proceed_context=context,
        error_type=error.error_type,
    )


def to_response(
    operation: Operation,
    reply: ProviderReply,
    incoming: ProceedContext | None,
) -> AuthenticationResponse:
    """Normalize ``reply`` to ``operation`` into an AuthenticationResponse."""
    status = derive_status(
        reply, skipped=operation is Operation.SKIP_AUTHENTICATOR_ENROLLMENT
    )

    if status is AuthenticationStatus.SUCCESS:
        if reply.messages:
            logger.debug(
                "Dropping provider messages on success: %s", list(reply.messages)
            )
        return AuthenticationResponse(status=status, token_response=reply.token)

    if status is AuthenticationStatus.SKIP_COMPLETE:
        return AuthenticationResponse(status=status, errors=reply.messages)

    rejected = bool(reply.messages) and not reply.terminal
    if rejected:
        logger.warning(
            "Provider rejected %s",
            operation.value,
            extra={"operation": operation.value, "messages": list(reply.messages)},
        )
    return AuthenticationResponse(
        status=status,
        errors=reply.messages,
        authenticators=reply.authenticators,
        proceed_context=_next_context(reply, incoming),
        error_type=ProviderRejectionError.error_type if rejected else None,
    )


class IdxAuthenticationWrapper:
    """Drives the IDX authentication state machine.

    Stateless and reentrant: one instance can serve any number of concurrent
    sessions. Calls are never retried here; retrying is the caller's choice.
    """

    def __init__(self, transport: IdxTransportProtocol) -> None:
        self._transport = transport

    async def _dispatch(
        self,
        operation: Operation,
        context: ProceedContext | None,
        payload: Mapping[str, Any],
    ) -> AuthenticationResponse:
        logger.info("IDX step %s", operation.value)
        try:
            reply = await self._transport.send(operation, context, payload)
        except ProviderRejectionError as e:
            logger.warning(
                "Provider rejected %s",
                operation.value,
                extra={"operation": operation.value, "messages": list(e.messages)},
            )
            return _error_response(e, context)
        response = to_response(operation, reply, context)
        logger.info("IDX step %s -> %s", operation.value, response.status.value)
        return response

    async def authenticate(self, options: AuthenticationOptions) -> AuthenticationResponse:
        """Start a password login."""
        try:
            _require_text(options.username, "Username is required")
            _require_text(options.password, "Password is required")
        except UserInputError as e:
            return _error_response(e, None)
        return await self._dispatch(
            Operation.AUTHENTICATE,
            None,
            {"username": options.username, "password": options.password},
        )

    async def recover_password(self, username: str) -> AuthenticationResponse:
        """Start the forgot-password flow for ``username``."""
        try:
            _require_text(username, "Username is required")
        except UserInputError as e:
            return _error_response(e, None)
        return await self._dispatch(
            Operation.RECOVER_PASSWORD, None, {"username": username}
        )

    async def select_authenticator(
        self, context: ProceedContext | None, factor: Factor
    ) -> AuthenticationResponse:
        """Choose ``factor`` at a selection step."""
        context = _require_context(context)
        return await self._dispatch(
            Operation.SELECT_AUTHENTICATOR, context, {"factor": factor}
        )

    async def verify_authenticator(
        self,
        context: ProceedContext | None,
        options: VerifyAuthenticatorOptions,
    ) -> AuthenticationResponse:
        """Submit a verification code, or a password when enrolling one."""
        context = _require_context(context)
        try:
            _require_text(options.code, "Code is required")
            _check_confirmation(options.code, options.confirmation)
        except UserInputError as e:
            return _error_response(e, context)
        return await self._dispatch(
            Operation.VERIFY_AUTHENTICATOR, context, {"code": options.code}
        )

    async def enroll_authenticator(
        self, context: ProceedContext | None, factor: Factor
    ) -> AuthenticationResponse:
        """Start enrolling ``factor``."""
        context = _require_context(context)
        return await self._dispatch(
            Operation.ENROLL_AUTHENTICATOR, context, {"factor": factor}
        )

    async def submit_phone_authenticator(
        self,
        context: ProceedContext | None,
        phone: str,
        factor: Factor,
    ) -> AuthenticationResponse:
        """Submit a phone number for an sms or voice factor.

        Raises:
            StateIntegrityError: If ``factor`` is not a phone factor.
        """
        context = _require_context(context)
        if factor.method not in PHONE_METHODS:
            msg = f"Factor {factor.method!r} does not take a phone number"
            raise StateIntegrityError(msg)
        try:
            phone = normalize_phone(phone)
        except UserInputError as e:
            return _error_response(e, context)
        return await self._dispatch(
            Operation.SUBMIT_PHONE_AUTHENTICATOR,
            context,
            {"phone": phone, "factor": factor},
        )

    async def skip_authenticator_enrollment(
        self, context: ProceedContext | None
    ) -> AuthenticationResponse:
        """Skip an optional enrollment.

        Legality is the provider's call: a skip at a step without one comes
        back as an error-carrying response.
        """
        context = _require_context(context)
        return await self._dispatch(
            Operation.SKIP_AUTHENTICATOR_ENROLLMENT, context, {}
        )

    async def change_password(
        self,
        context: ProceedContext | None,
        options: ChangePasswordOptions,
    ) -> AuthenticationResponse:
        """Submit a new password for an expired or reset password.

        A confirmation that differs from the new password is reported
        without calling the provider.
        """
        context = _require_context(context)
        try:
            _require_text(options.new_password, "New password is required")
            _check_confirmation(options.new_password, options.confirmation)
        except UserInputError as e:
            return _error_response(e, context)
        return await self._dispatch(
            Operation.CHANGE_PASSWORD,
            context,
            {"new_password": options.new_password},
        )

    async def register(
        self, context: ProceedContext | None, profile: UserProfile
    ) -> AuthenticationResponse:
        """Submit a new user's profile."""
        context = _require_context(context)
        if not profile:
            return _error_response(UserInputError("Profile is required"), context)
        return await self._dispatch(
            Operation.REGISTER, context, {"profile": dict(profile)}
        )

    async def fetch_sign_up_form_values(self) -> NewUserRegistrationResponse:
        """Start a registration flow and return the profile fields it asks for."""
        logger.info("IDX step %s", Operation.FETCH_SIGN_UP_FORM.value)
        try:
            reply = await self._transport.send(Operation.FETCH_SIGN_UP_FORM, None, {})
        except ProviderRejectionError as e:
            return NewUserRegistrationResponse(proceed_context=None, errors=e.messages)
        return NewUserRegistrationResponse(
            proceed_context=_next_context(reply, None),
            fields=reply.fields,
            errors=reply.messages,
        )

    def is_skip_authenticator_present(self, context: ProceedContext | None) -> bool:
        """True if the step ``context`` was issued for allows skipping."""
        return context is not None and context.skip_available
