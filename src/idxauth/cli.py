"""Command-line driver for IDX authentication flows.

Runs a login, password recovery or registration against the configured Okta
org (or the mock transport with DEV__IDX_MOCK=true), prompting for whatever
each step needs.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import TYPE_CHECKING

from rich.console import Console
from rich.prompt import Prompt

from idxauth.auth.errors import IdxError, StateIntegrityError
from idxauth.auth.models import (
    AuthenticationOptions,
    AuthenticationStatus,
    ChangePasswordOptions,
    UserProfile,
    VerifyAuthenticatorOptions,
)
from idxauth.auth.session import SessionBinder

if TYPE_CHECKING:
    from collections.abc import Callable

    from idxauth.auth.models import AuthenticationResponse, Factor
    from idxauth.auth.wrapper import IdxAuthenticationWrapper

    # (label, secret) -> answer
    PromptFn = Callable[[str, bool], str]

console = Console()

SKIP_CHOICE = "skip"
SESSION_KEY = "cli"

# Statuses where the flow is over as far as the CLI can take it.
_FINISHED = frozenset(
    {
        AuthenticationStatus.SUCCESS,
        AuthenticationStatus.SKIP_COMPLETE,
        AuthenticationStatus.AWAITING_USER_EMAIL_ACTIVATION,
        AuthenticationStatus.AWAITING_PROFILE_ENROLLMENT,
        AuthenticationStatus.FAILED,
    }
)
_INFO_STATUSES = frozenset(
    {
        AuthenticationStatus.SKIP_COMPLETE,
        AuthenticationStatus.AWAITING_USER_EMAIL_ACTIVATION,
    }
)


def ask(label: str, secret: bool) -> str:
    """Prompt on the console; the default PromptFn."""
    return Prompt.ask(label, password=secret, console=console)


def _show(response: AuthenticationResponse) -> None:
    style = "yellow" if response.status in _INFO_STATUSES else "red"
    for message in response.errors:
        if style == "red":
            console.print(f"[red]Error:[/] {message}")
        else:
            console.print(f"[{style}]{message}[/]")
    if response.status is AuthenticationStatus.SUCCESS:
        token = response.token_response
        console.print(
            f"[green]Signed in.[/] {token.token_type} token, "
            f"expires in {token.expires_in or '?'}s"
        )


def _ask_new_password(prompt: PromptFn) -> tuple[str, str]:
    return prompt("New password", True), prompt("Confirm password", True)


async def drive(
    wrapper: IdxAuthenticationWrapper,
    response: AuthenticationResponse,
    prompt: PromptFn,
    sessions: SessionBinder | None = None,
) -> AuthenticationResponse:
    """Advance a flow, prompting for input, until it finishes.

    The proceed context is bound to ``sessions`` after every step, the way a
    web front end would bind it to the user's session.
    """
    sessions = sessions or SessionBinder()
    chosen: Factor | None = None
    shown: AuthenticationResponse | None = None

    while True:
        if response is not shown:
            _show(response)
            shown = response
        sessions.bind(
            SESSION_KEY,
            None if response.status.is_terminal else response.proceed_context,
        )
        if response.status in _FINISHED:
            return response
        context = sessions.retrieve(SESSION_KEY)

        match response.status:
            case AuthenticationStatus.AWAITING_AUTHENTICATOR_SELECTION:
                methods = sessions.remember_factors(
                    SESSION_KEY, response.authenticators or ()
                )
                choice = prompt(f"Choose a factor ({', '.join(methods)})", False)
                try:
                    chosen = sessions.factor_for(SESSION_KEY, choice.strip())
                except StateIntegrityError as e:
                    console.print(f"[red]Error:[/] {e}")
                    continue
                response = await wrapper.select_authenticator(context, chosen)

            case AuthenticationStatus.AWAITING_AUTHENTICATOR_ENROLLMENT_SELECTION:
                methods = sessions.remember_factors(
                    SESSION_KEY, response.authenticators or ()
                )
                if wrapper.is_skip_authenticator_present(context):
                    methods.append(SKIP_CHOICE)
                choice = prompt(f"Enroll a factor ({', '.join(methods)})", False)
                if choice.strip() == SKIP_CHOICE:
                    response = await wrapper.skip_authenticator_enrollment(context)
                    continue
                try:
                    chosen = sessions.factor_for(SESSION_KEY, choice.strip())
                except StateIntegrityError as e:
                    console.print(f"[red]Error:[/] {e}")
                    continue
                response = await wrapper.enroll_authenticator(context, chosen)

            case AuthenticationStatus.AWAITING_AUTHENTICATOR_ENROLLMENT_DATA:
                if chosen is None:
                    msg = "No factor was chosen before enrollment data was requested"
                    raise StateIntegrityError(msg)
                phone = prompt("Phone number", False)
                response = await wrapper.submit_phone_authenticator(
                    context, phone, chosen
                )

            case AuthenticationStatus.AWAITING_AUTHENTICATOR_VERIFICATION:
                if chosen is not None and chosen.method == "password":
                    password, confirmation = _ask_new_password(prompt)
                    options = VerifyAuthenticatorOptions(password, confirmation)
                else:
                    options = VerifyAuthenticatorOptions(
                        prompt("Verification code", False)
                    )
                response = await wrapper.verify_authenticator(context, options)
                # Optional enrollments that follow a verification are skipped.
                if (
                    response.token_response is None
                    and not response.errors
                    and wrapper.is_skip_authenticator_present(response.proceed_context)
                ):
                    _show(response)
                    response = await wrapper.skip_authenticator_enrollment(
                        response.proceed_context
                    )

            case (
                AuthenticationStatus.PASSWORD_EXPIRED
                | AuthenticationStatus.AWAITING_PASSWORD_RESET
            ):
                if response.status is AuthenticationStatus.PASSWORD_EXPIRED:
                    console.print("[yellow]Your password has expired.[/]")
                password, confirmation = _ask_new_password(prompt)
                response = await wrapper.change_password(
                    context, ChangePasswordOptions(password, confirmation)
                )


async def login(
    wrapper: IdxAuthenticationWrapper,
    username: str,
    password: str,
    prompt: PromptFn,
) -> AuthenticationResponse:
    response = await wrapper.authenticate(AuthenticationOptions(username, password))
    return await drive(wrapper, response, prompt)


async def recover(
    wrapper: IdxAuthenticationWrapper, username: str, prompt: PromptFn
) -> AuthenticationResponse:
    response = await wrapper.recover_password(username)
    return await drive(wrapper, response, prompt)


async def register(
    wrapper: IdxAuthenticationWrapper, prompt: PromptFn
) -> AuthenticationResponse | None:
    """Fetch the sign-up form, prompt for each field and register.

    Returns None when the provider would not start a registration.
    """
    form = await wrapper.fetch_sign_up_form_values()
    if form.errors or form.proceed_context is None:
        for message in form.errors:
            console.print(f"[red]Error:[/] {message}")
        return None
    profile = UserProfile()
    for name in form.fields:
        profile.add_attribute(name, prompt(name, False))
    response = await wrapper.register(form.proceed_context, profile)
    return await drive(wrapper, response, prompt)


def _build_parser() -> argparse.ArgumentParser:
    """Build argparse parser for idx-login subcommands."""
    parser = argparse.ArgumentParser(
        prog="idx-login",
        description="Run an Okta Identity Engine authentication flow.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # login
    login_p = sub.add_parser("login", help="Sign in with username and password")
    login_p.add_argument("username", help="Username or email address")
    login_p.add_argument(
        "--password", default=None, help="Password (prompted when omitted)"
    )

    # recover
    recover_p = sub.add_parser("recover", help="Reset a forgotten password")
    recover_p.add_argument("username", help="Username or email address")

    # register
    sub.add_parser("register", help="Create a new account")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Run an IDX flow from the command line.

    Usage:
        idx-login login <username> [--password PASSWORD]
        idx-login recover <username>
        idx-login register
    """
    from idxauth import _setup_logging
    from idxauth.auth.factory import get_idx_transport
    from idxauth.auth.wrapper import IdxAuthenticationWrapper

    args = _build_parser().parse_args(argv)
    _setup_logging()

    try:
        transport = get_idx_transport()
    except ValueError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    wrapper = IdxAuthenticationWrapper(transport)

    async def _run() -> AuthenticationResponse | None:
        try:
            match args.command:
                case "login":
                    password = args.password or ask("Password", True)
                    return await login(wrapper, args.username, password, ask)
                case "recover":
                    return await recover(wrapper, args.username, ask)
                case "register":
                    return await register(wrapper, ask)
            return None
        finally:
            aclose = getattr(transport, "aclose", None)
            if aclose is not None:
                await aclose()

    try:
        response = asyncio.run(_run())
    except IdxError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    if response is None or response.status is AuthenticationStatus.FAILED:
        sys.exit(1)
    if response.status is AuthenticationStatus.AWAITING_PROFILE_ENROLLMENT:
        sys.exit(1)
