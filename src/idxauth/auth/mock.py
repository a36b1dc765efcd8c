"""Mock IDX transport for testing.

This module provides an in-memory identity provider implementing
IdxTransportProtocol, so flows can be exercised without a real Okta org.

The mock is the *provider*: unlike the wrapper it keeps per-flow state,
keyed by state handle. Only the newest handle of a flow is accepted; a
stale handle is rejected the way an expired IDX state is.

Predefined users:
    - "alice": password MOCK_PASSWORD, email and phone enrolled (MFA on login)
    - "bob": password MOCK_PASSWORD, no second factor (token on login)
    - "carol": password MOCK_PASSWORD, expired password
    - "dave": account awaiting email activation

Every verification code is MOCK_VALID_CODE.
"""

from __future__ import annotations

import hashlib
import itertools
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from idxauth.auth.models import (
    SKIP_ACTION,
    Authenticator,
    AuthenticatorType,
    Factor,
    ProviderReply,
    TokenResponse,
)
from idxauth.auth.protocol import Operation

if TYPE_CHECKING:
    from collections.abc import Mapping

    from idxauth.auth.models import ProceedContext

MOCK_PASSWORD = "Password123!"
MOCK_VALID_CODE = "123456"
MOCK_BASE_URL = "https://mock.idx.local/idp/idx"
MOCK_SIGN_UP_FIELDS = ("firstName", "lastName", "email")
MIN_PASSWORD_LENGTH = 8

INVALID_CREDENTIALS = "invalid credentials"
INVALID_CODE = "Invalid code. Try again."
SESSION_EXPIRED = "The session has expired."
SKIP_NOT_AVAILABLE = "Skip is not available at this step."
EMAIL_ACTIVATION_REQUIRED = "To finish signing in, check your email."
SKIP_COMPLETE_MESSAGE = "Your account is ready. Sign in to continue."
PASSWORD_REQUIREMENTS = "Password requirements were not met."

MOCK_EMAIL_AUTHENTICATOR = Authenticator(
    id="aut-email",
    type=AuthenticatorType.EMAIL,
    label="Email",
    key="okta_email",
    factors=(
        Factor(
            id="aut-email", method="email", label="Email", authenticator_key="okta_email"
        ),
    ),
)
MOCK_PHONE_AUTHENTICATOR = Authenticator(
    id="aut-phone",
    type=AuthenticatorType.PHONE,
    label="Phone",
    key="phone_number",
    factors=(
        Factor(
            id="aut-phone",
            method="sms",
            label="SMS",
            authenticator_key="phone_number",
            channel="sms",
        ),
        Factor(
            id="aut-phone",
            method="voice",
            label="Voice call",
            authenticator_key="phone_number",
            channel="voice",
        ),
    ),
)
MOCK_PASSWORD_AUTHENTICATOR = Authenticator(
    id="aut-password",
    type=AuthenticatorType.PASSWORD,
    label="Password",
    key="okta_password",
    factors=(
        Factor(
            id="aut-password",
            method="password",
            label="Password",
            authenticator_key="okta_password",
        ),
    ),
)


def _href(name: str) -> str:
    return f"{MOCK_BASE_URL}/{name}"


def _actions(*names: str) -> tuple[tuple[str, str], ...]:
    return tuple((name, _href(name)) for name in names)


def _username_to_token(username: str, serial: int) -> str:
    """Generate a deterministic access token for a user."""
    digest = hashlib.sha256(f"{username}:{serial}".encode()).hexdigest()[:16]
    return f"mock-access-{digest}"


@dataclass
class MockUser:
    """A provider-side account."""

    password: str | None = MOCK_PASSWORD
    authenticators: list[Authenticator] = field(default_factory=list)
    password_expired: bool = False
    pending_activation: bool = False
    profile: dict[str, str] = field(default_factory=dict)


@dataclass
class _Flow:
    """Provider-side state of one flow, advanced by each accepted call."""

    kind: str
    stage: str
    username: str | None = None
    offered: tuple[Authenticator, ...] = ()
    factor: Factor | None = None
    skippable: bool = False


def _default_users() -> dict[str, MockUser]:
    return {
        "alice": MockUser(
            authenticators=[MOCK_EMAIL_AUTHENTICATOR, MOCK_PHONE_AUTHENTICATOR]
        ),
        "bob": MockUser(),
        "carol": MockUser(password_expired=True),
        "dave": MockUser(pending_activation=True),
    }


class MockIdxTransport:
    """Mock implementation of IdxTransportProtocol for testing.

    Replies are deterministic: state handles and tokens are derived from a
    counter, so two fresh instances given the same calls answer identically.
    """

    def __init__(self, users: dict[str, MockUser] | None = None) -> None:
        self.users = users if users is not None else _default_users()
        self._flows: dict[str, _Flow] = {}
        self._serial = itertools.count(1)
        # Track requests for test assertions
        self._sent: list[dict[str, Any]] = []

    async def send(
        self,
        operation: Operation,
        context: ProceedContext | None,
        payload: Mapping[str, Any],
    ) -> ProviderReply:
        self._sent.append(
            {
                "operation": operation,
                "state_handle": context.state_handle if context else None,
                "payload": dict(payload),
            }
        )

        match operation:
            case Operation.AUTHENTICATE:
                return self._authenticate(payload["username"], payload["password"])
            case Operation.RECOVER_PASSWORD:
                return self._recover(payload["username"])
            case Operation.FETCH_SIGN_UP_FORM:
                return self._issue(
                    _Flow(kind="registration", stage="enroll-profile"), start=True
                )

        handle = context.state_handle if context else None
        flow = self._flows.pop(handle, None) if handle else None
        if flow is None:
            return ProviderReply(messages=(SESSION_EXPIRED,))

        match operation:
            case Operation.SELECT_AUTHENTICATOR:
                return self._select(flow, payload["factor"])
            case Operation.ENROLL_AUTHENTICATOR:
                return self._enroll(flow, payload["factor"])
            case Operation.SUBMIT_PHONE_AUTHENTICATOR:
                return self._submit_phone(flow, payload["factor"])
            case Operation.VERIFY_AUTHENTICATOR:
                return self._verify(flow, payload["code"])
            case Operation.SKIP_AUTHENTICATOR_ENROLLMENT:
                return self._skip(flow)
            case Operation.CHANGE_PASSWORD:
                return self._change_password(flow, payload["new_password"])
            case Operation.REGISTER:
                return self._register(flow, payload["profile"])
        return self._reject(flow, f"Unsupported operation: {operation}")

    # Reply builders

    def _issue(
        self, flow: _Flow, *messages: str, start: bool = False
    ) -> ProviderReply:
        """Store ``flow`` under a fresh state handle and describe its step."""
        serial = next(self._serial)
        handle = f"mock-state-{serial}"
        self._flows[handle] = flow
        names = [flow.stage]
        if flow.skippable:
            names.append(SKIP_ACTION)
        selecting = flow.stage.startswith("select-authenticator")
        return ProviderReply(
            state_handle=handle,
            actions=_actions(*names),
            messages=messages,
            authenticators=flow.offered if selecting else None,
            fields=MOCK_SIGN_UP_FIELDS if flow.stage == "enroll-profile" else (),
            interaction_handle=f"mock-interaction-{serial}" if start else None,
            code_verifier=f"mock-verifier-{serial}" if start else None,
        )

    def _reject(self, flow: _Flow, message: str) -> ProviderReply:
        """Keep the flow at its current step and report ``message``."""
        return self._issue(flow, message)

    def _token(self, username: str | None) -> ProviderReply:
        serial = next(self._serial)
        return ProviderReply(
            token=TokenResponse(
                access_token=_username_to_token(username or "anonymous", serial),
                expires_in=3600,
                scope="openid profile offline_access",
                id_token=f"mock-id-token-{serial}",
            )
        )

    # Flow starts

    def _authenticate(self, username: str, password: str) -> ProviderReply:
        user = self.users.get(username)
        if user is None or user.password != password:
            return ProviderReply(messages=(INVALID_CREDENTIALS,))
        if user.pending_activation:
            return ProviderReply(messages=(EMAIL_ACTIVATION_REQUIRED,), terminal=True)
        if user.password_expired:
            return self._issue(
                _Flow(kind="login", stage="reenroll-authenticator", username=username),
                start=True,
            )
        if user.authenticators:
            return self._issue(
                _Flow(
                    kind="login",
                    stage="select-authenticator-authenticate",
                    username=username,
                    offered=tuple(user.authenticators),
                ),
                start=True,
            )
        return self._token(username)

    def _recover(self, username: str) -> ProviderReply:
        user = self.users.get(username)
        if user is None:
            return ProviderReply(
                messages=(f"There is no account with the Username {username}.",)
            )
        if user.pending_activation:
            return ProviderReply(messages=(EMAIL_ACTIVATION_REQUIRED,), terminal=True)
        offered = tuple(user.authenticators) or (MOCK_EMAIL_AUTHENTICATOR,)
        return self._issue(
            _Flow(
                kind="recovery",
                stage="select-authenticator-authenticate",
                username=username,
                offered=offered,
            ),
            start=True,
        )

    # Steps

    def _offered_factor(self, flow: _Flow, factor: Factor) -> Factor | None:
        for authenticator in flow.offered:
            for candidate in authenticator.factors:
                if candidate.method == factor.method and candidate.id == factor.id:
                    return candidate
        return None

    def _select(self, flow: _Flow, factor: Factor) -> ProviderReply:
        if flow.stage != "select-authenticator-authenticate":
            return self._reject(flow, "Authenticator selection is not expected now.")
        chosen = self._offered_factor(flow, factor)
        if chosen is None:
            return self._reject(flow, "Invalid authenticator.")
        return self._issue(replace(flow, stage="challenge-authenticator", factor=chosen))

    def _enroll(self, flow: _Flow, factor: Factor) -> ProviderReply:
        if flow.stage != "select-authenticator-enroll":
            return self._reject(flow, "Authenticator enrollment is not expected now.")
        chosen = self._offered_factor(flow, factor)
        if chosen is None:
            return self._reject(flow, "Invalid authenticator.")
        stage = (
            "authenticator-enrollment-data"
            if chosen.method in ("sms", "voice")
            else "enroll-authenticator"
        )
        return self._issue(replace(flow, stage=stage, factor=chosen, skippable=False))

    def _submit_phone(self, flow: _Flow, factor: Factor) -> ProviderReply:
        if flow.stage != "authenticator-enrollment-data":
            return self._reject(flow, "Phone number is not expected now.")
        if flow.factor is None or factor.method != flow.factor.method:
            return self._reject(flow, "Invalid authenticator.")
        return self._issue(replace(flow, stage="enroll-authenticator"))

    def _verify(self, flow: _Flow, code: str) -> ProviderReply:
        if flow.stage == "challenge-authenticator":
            if code != MOCK_VALID_CODE:
                return self._reject(flow, INVALID_CODE)
            if flow.kind == "recovery":
                return self._issue(replace(flow, stage="reset-authenticator", offered=()))
            return self._token(flow.username)

        if flow.stage != "enroll-authenticator" or flow.factor is None:
            return self._reject(flow, "Verification is not expected now.")

        user = self.users[flow.username or ""]
        if flow.factor.method == "password":
            if len(code) < MIN_PASSWORD_LENGTH:
                return self._reject(flow, PASSWORD_REQUIREMENTS)
            user.password = code
            remaining = (MOCK_EMAIL_AUTHENTICATOR, MOCK_PHONE_AUTHENTICATOR)
            return self._issue(
                replace(
                    flow,
                    stage="select-authenticator-enroll",
                    offered=remaining,
                    factor=None,
                    skippable=True,
                )
            )

        if code != MOCK_VALID_CODE:
            return self._reject(flow, INVALID_CODE)
        enrolled = (
            MOCK_PHONE_AUTHENTICATOR
            if flow.factor.method in ("sms", "voice")
            else MOCK_EMAIL_AUTHENTICATOR
        )
        user.authenticators.append(enrolled)
        return self._token(flow.username)

    def _skip(self, flow: _Flow) -> ProviderReply:
        if not flow.skippable:
            return self._reject(flow, SKIP_NOT_AVAILABLE)
        return ProviderReply(messages=(SKIP_COMPLETE_MESSAGE,), terminal=True)

    def _change_password(self, flow: _Flow, new_password: str) -> ProviderReply:
        if flow.stage not in ("reset-authenticator", "reenroll-authenticator"):
            return self._reject(flow, "Password change is not expected now.")
        if len(new_password) < MIN_PASSWORD_LENGTH:
            return self._reject(flow, PASSWORD_REQUIREMENTS)
        user = self.users[flow.username or ""]
        user.password = new_password
        user.password_expired = False
        return self._token(flow.username)

    def _register(self, flow: _Flow, profile: Mapping[str, str]) -> ProviderReply:
        if flow.stage != "enroll-profile":
            return self._reject(flow, "Registration is not expected now.")
        for name in MOCK_SIGN_UP_FIELDS:
            if not profile.get(name):
                return self._reject(flow, f"'{name}' is required.")
        username = profile["email"]
        if username in self.users:
            return self._reject(flow, "A user with this Email already exists.")
        self.users[username] = MockUser(password=None, profile=dict(profile))
        return self._issue(
            replace(
                flow,
                stage="select-authenticator-enroll",
                username=username,
                offered=(
                    MOCK_PASSWORD_AUTHENTICATOR,
                    MOCK_EMAIL_AUTHENTICATOR,
                    MOCK_PHONE_AUTHENTICATOR,
                ),
            )
        )

    # Test helper methods

    def get_sent_requests(self) -> list[dict[str, Any]]:
        """Return the requests received so far (for test assertions)."""
        return self._sent.copy()

    def clear_sent_requests(self) -> None:
        """Clear the list of received requests."""
        self._sent.clear()
