"""Data models for the IDX authentication flow.

These dataclasses are the values passed between the caller, the
IdxAuthenticationWrapper and the transport. They are frozen: each provider
round-trip produces new instances rather than mutating old ones.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

SKIP_ACTION = "skip"


class AuthenticationStatus(StrEnum):
    """Outcome of one provider round-trip; decides the legal next operation."""

    SUCCESS = "success"
    PASSWORD_EXPIRED = "password_expired"
    AWAITING_AUTHENTICATOR_SELECTION = "awaiting_authenticator_selection"
    AWAITING_AUTHENTICATOR_VERIFICATION = "awaiting_authenticator_verification"
    AWAITING_AUTHENTICATOR_ENROLLMENT_SELECTION = (
        "awaiting_authenticator_enrollment_selection"
    )
    AWAITING_AUTHENTICATOR_ENROLLMENT_DATA = "awaiting_authenticator_enrollment_data"
    AWAITING_PROFILE_ENROLLMENT = "awaiting_profile_enrollment"
    AWAITING_USER_EMAIL_ACTIVATION = "awaiting_user_email_activation"
    AWAITING_PASSWORD_RESET = "awaiting_password_reset"
    SKIP_COMPLETE = "skip_complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """True for states that end the flow and release the proceed context."""
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset(
    {AuthenticationStatus.SUCCESS, AuthenticationStatus.SKIP_COMPLETE}
)


class AuthenticatorType(StrEnum):
    """Categories of authenticator offered by the provider."""

    PASSWORD = "password"
    EMAIL = "email"
    SMS = "sms"
    VOICE = "voice"
    PHONE = "phone"
    OTP = "otp"
    SECURITY_QUESTION = "security_question"
    WEBAUTHN = "security_key"
    OKTA_VERIFY = "app"
    UNKNOWN = "unknown"

    @classmethod
    def get(cls, value: str | None) -> AuthenticatorType:
        """Look up a type by its wire value, falling back to UNKNOWN."""
        if not value:
            return cls.UNKNOWN
        try:
            return cls(value.lower())
        except ValueError:
            return cls.UNKNOWN


PHONE_METHODS = frozenset({AuthenticatorType.SMS.value, AuthenticatorType.VOICE.value})


@dataclass(frozen=True)
class Factor:
    """A verification method belonging to an authenticator.

    Attributes:
        id: Provider id of the owning authenticator (or enrollment).
        method: Method name, e.g. "email", "sms", "voice". Unique within
            one response's authenticators.
        label: Human-readable label.
        authenticator_key: Provider key of the owning authenticator.
        channel: Delivery channel, for methods that have one.
    """

    id: str
    method: str
    label: str = ""
    authenticator_key: str | None = None
    channel: str | None = None


@dataclass(frozen=True)
class Authenticator:
    """An authenticator offered at a selection step, with its factors in order."""

    id: str
    type: AuthenticatorType
    label: str = ""
    key: str | None = None
    factors: tuple[Factor, ...] = ()


@dataclass(frozen=True)
class ProceedContext:
    """Opaque continuation state needed to make the next provider call.

    Attributes:
        state_handle: The provider's state handle for this step.
        actions: (name, href) pairs for the remediations legal at this step.
        interaction_handle: Interaction handle from the flow's first call.
        code_verifier: PKCE verifier used for the final token exchange.
    """

    state_handle: str
    actions: tuple[tuple[str, str], ...] = ()
    interaction_handle: str | None = None
    code_verifier: str | None = None

    @property
    def action_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.actions)

    @property
    def skip_available(self) -> bool:
        return SKIP_ACTION in self.action_names

    def href_for(self, *names: str) -> str | None:
        """Return the href of the first of ``names`` legal at this step."""
        hrefs = dict(self.actions)
        for name in names:
            if name in hrefs:
                return hrefs[name]
        return None


@dataclass(frozen=True)
class TokenResponse:
    """Credential material issued when authentication succeeds."""

    access_token: str
    token_type: str = "Bearer"
    expires_in: int | None = None
    scope: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None


@dataclass(frozen=True)
class ProviderReply:
    """One provider reply, normalized by the transport.

    Attributes:
        state_handle: New state handle, or None if the provider sent none.
        actions: (name, href) remediations now legal.
        messages: Messages the provider attached (errors or terminal info).
        authenticators: Authenticators offered for selection. None when the
            reply has no selection step.
        token: Issued token, when the flow completed.
        terminal: True when the provider ended the flow with an info message.
        fields: Profile attribute names requested by an enroll-profile step.
        interaction_handle: Set by flow-starting calls; later replies leave
            it None and the wrapper carries the previous value forward.
        code_verifier: PKCE verifier, under the same rule.
    """

    state_handle: str | None = None
    actions: tuple[tuple[str, str], ...] = ()
    messages: tuple[str, ...] = ()
    authenticators: tuple[Authenticator, ...] | None = None
    token: TokenResponse | None = None
    terminal: bool = False
    fields: tuple[str, ...] = ()
    interaction_handle: str | None = None
    code_verifier: str | None = None

    @property
    def action_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.actions)


@dataclass(frozen=True)
class AuthenticationResponse:
    """Normalized result of an orchestrator operation.

    Attributes:
        status: Where the flow stands after the round-trip.
        errors: Error or info messages; empty when there are none.
        authenticators: Authenticators to pick from, or None when the step
            offers no selection.
        token_response: Issued token; present only when status is SUCCESS.
        proceed_context: Context for the next call; None once the flow is
            terminal.
        error_type: Error class name when errors came from a failure.
    """

    status: AuthenticationStatus
    errors: tuple[str, ...] = ()
    authenticators: tuple[Authenticator, ...] | None = None
    token_response: TokenResponse | None = None
    proceed_context: ProceedContext | None = None
    error_type: str | None = None

    def __post_init__(self) -> None:
        is_success = self.status is AuthenticationStatus.SUCCESS
        if is_success != (self.token_response is not None):
            msg = "token_response must be present exactly when status is SUCCESS"
            raise ValueError(msg)
        if is_success and self.errors:
            msg = "a SUCCESS response cannot carry errors"
            raise ValueError(msg)


@dataclass(frozen=True)
class NewUserRegistrationResponse:
    """Result of starting a registration flow."""

    proceed_context: ProceedContext | None
    fields: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()


@dataclass
class UserProfile(Mapping[str, str]):
    """Registration attributes, e.g. firstName, lastName, email."""

    attributes: dict[str, str] = field(default_factory=dict)

    def add_attribute(self, name: str, value: str) -> None:
        self.attributes[name] = value

    def __getitem__(self, name: str) -> str:
        return self.attributes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.attributes)

    def __len__(self) -> int:
        return len(self.attributes)


@dataclass(frozen=True)
class AuthenticationOptions:
    """Credentials for a password login."""

    username: str
    password: str


@dataclass(frozen=True)
class VerifyAuthenticatorOptions:
    """A verification code or password, with an optional confirmation."""

    code: str
    confirmation: str | None = None


@dataclass(frozen=True)
class ChangePasswordOptions:
    """A new password, with an optional confirmation."""

    new_password: str
    confirmation: str | None = None
