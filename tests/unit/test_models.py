"""Tests for the IDX data models."""

from __future__ import annotations

from dataclasses import FrozenInstanceError

import pytest

from idxauth.auth.models import (
    AuthenticationResponse,
    AuthenticationStatus,
    AuthenticatorType,
    ProceedContext,
    TokenResponse,
    UserProfile,
)

TOKEN = TokenResponse(access_token="at-1")


class TestAuthenticationResponseInvariants:
    """A token is present exactly when the status is SUCCESS."""

    def test_success_with_token(self):
        """SUCCESS with a token is valid."""
        response = AuthenticationResponse(
            status=AuthenticationStatus.SUCCESS, token_response=TOKEN
        )
        assert response.errors == ()
        assert response.proceed_context is None

    def test_success_without_token_rejected(self):
        """SUCCESS without a token cannot be built."""
        with pytest.raises(ValueError, match="token_response"):
            AuthenticationResponse(status=AuthenticationStatus.SUCCESS)

    def test_token_on_other_status_rejected(self):
        """A token on a non-SUCCESS status cannot be built."""
        with pytest.raises(ValueError, match="token_response"):
            AuthenticationResponse(
                status=AuthenticationStatus.AWAITING_PASSWORD_RESET,
                token_response=TOKEN,
            )

    def test_success_with_errors_rejected(self):
        """SUCCESS never carries errors."""
        with pytest.raises(ValueError, match="errors"):
            AuthenticationResponse(
                status=AuthenticationStatus.SUCCESS,
                token_response=TOKEN,
                errors=("late warning",),
            )

    def test_responses_are_frozen(self):
        """Responses cannot be mutated after construction."""
        response = AuthenticationResponse(status=AuthenticationStatus.FAILED)
        with pytest.raises(FrozenInstanceError):
            response.status = AuthenticationStatus.SUCCESS  # type: ignore[misc]


class TestAuthenticationStatus:
    """Tests for AuthenticationStatus."""

    @pytest.mark.parametrize(
        "status", [AuthenticationStatus.SUCCESS, AuthenticationStatus.SKIP_COMPLETE]
    )
    def test_terminal_statuses(self, status):
        """SUCCESS and SKIP_COMPLETE end the flow."""
        assert status.is_terminal

    def test_awaiting_statuses_are_not_terminal(self):
        """Every AWAITING_* status continues the flow."""
        awaiting = [s for s in AuthenticationStatus if s.name.startswith("AWAITING_")]
        assert awaiting
        assert not any(s.is_terminal for s in awaiting)


class TestAuthenticatorType:
    """Tests for AuthenticatorType.get."""

    def test_known_value(self):
        assert AuthenticatorType.get("email") is AuthenticatorType.EMAIL

    def test_case_insensitive(self):
        assert AuthenticatorType.get("PASSWORD") is AuthenticatorType.PASSWORD

    def test_okta_verify_wire_value(self):
        """Okta Verify is reported with the type "app"."""
        assert AuthenticatorType.get("app") is AuthenticatorType.OKTA_VERIFY

    @pytest.mark.parametrize("value", [None, "", "carrier_pigeon"])
    def test_unknown_falls_back(self, value):
        """Unrecognised or missing values map to UNKNOWN."""
        assert AuthenticatorType.get(value) is AuthenticatorType.UNKNOWN


class TestProceedContext:
    """Tests for ProceedContext helpers."""

    def test_href_for_first_legal_name(self):
        """href_for returns the href of the first listed name that is legal."""
        context = ProceedContext(
            state_handle="s",
            actions=(("enroll-authenticator", "https://x/enroll"), ("skip", "https://x/skip")),
        )
        assert (
            context.href_for("challenge-authenticator", "enroll-authenticator")
            == "https://x/enroll"
        )
        assert context.href_for("reset-authenticator") is None

    def test_skip_available(self):
        """skip_available reflects the presence of a skip action."""
        with_skip = ProceedContext(state_handle="s", actions=(("skip", "https://x/skip"),))
        without = ProceedContext(state_handle="s")
        assert with_skip.skip_available
        assert not without.skip_available


class TestUserProfile:
    """Tests for UserProfile."""

    def test_add_attribute(self):
        """Added attributes are readable like a mapping."""
        profile = UserProfile()
        profile.add_attribute("firstName", "Ada")
        profile.add_attribute("email", "ada@example.com")
        assert dict(profile) == {"firstName": "Ada", "email": "ada@example.com"}
        assert len(profile) == 2

    def test_empty_profile_is_falsy(self):
        assert not UserProfile()
