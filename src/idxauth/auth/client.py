"""HTTP transport for the Okta Identity Engine (IDX) API.

This module implements IdxTransportProtocol over httpx. It handles the
interaction-code flow with PKCE, introspection, remediation by href and the
final token exchange, and normalizes IDX (ION) documents into ProviderReply
objects for IdxAuthenticationWrapper.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re
import secrets
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import httpx

from idxauth.auth.errors import (
    MissingProceedContextError,
    ProviderRejectionError,
    TransportError,
)
from idxauth.auth.models import (
    Authenticator,
    AuthenticatorType,
    Factor,
    ProviderReply,
    TokenResponse,
)
from idxauth.auth.protocol import Operation

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from idxauth.auth.models import ProceedContext

logger = logging.getLogger(__name__)

ION_CONTENT_TYPE = "application/ion+json; okta-version=1.0.0"
ION_HEADERS = {"Content-Type": ION_CONTENT_TYPE, "Accept": ION_CONTENT_TYPE}
DEFAULT_SCOPES = ("openid", "profile", "offline_access")

# Remediations each operation may invoke, in order of preference.
_REMEDIATIONS: dict[Operation, tuple[str, ...]] = {
    Operation.SELECT_AUTHENTICATOR: ("select-authenticator-authenticate",),
    Operation.ENROLL_AUTHENTICATOR: ("select-authenticator-enroll",),
    Operation.SUBMIT_PHONE_AUTHENTICATOR: ("authenticator-enrollment-data",),
    Operation.VERIFY_AUTHENTICATOR: ("challenge-authenticator", "enroll-authenticator"),
    Operation.SKIP_AUTHENTICATOR_ENROLLMENT: ("skip",),
    Operation.CHANGE_PASSWORD: ("reset-authenticator", "reenroll-authenticator"),
    Operation.REGISTER: ("enroll-profile",),
}

_RELATES_TO = re.compile(r"^\$\.(\w+)\.value\[(\d+)\]$")


def _pkce_pair() -> tuple[str, str]:
    """Return a (code_verifier, S256 code_challenge) pair."""
    verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return verifier, challenge


def _values(node: Any) -> list[dict[str, Any]]:
    """Unwrap an ION collection (``{"type": "array", "value": [...]}``)."""
    if isinstance(node, dict):
        node = node.get("value")
    if isinstance(node, list):
        return [item for item in node if isinstance(item, dict)]
    return []


def _remediation(data: Mapping[str, Any], name: str) -> dict[str, Any] | None:
    for remediation in _values(data.get("remediation")):
        if remediation.get("name") == name:
            return remediation
    return None


def _action_href(data: Mapping[str, Any], name: str) -> str | None:
    remediation = _remediation(data, name)
    return remediation.get("href") if remediation else None


def _field(remediation: Mapping[str, Any], name: str) -> dict[str, Any] | None:
    for item in remediation.get("value", []):
        if isinstance(item, dict) and item.get("name") == name:
            return item
    return None


def _recover_href(data: Mapping[str, Any]) -> str | None:
    """Find the password-recovery link on the current authenticator, if any."""
    for key in ("currentAuthenticatorEnrollment", "currentAuthenticator"):
        current = data.get(key)
        if isinstance(current, dict):
            recover = current.get("value", {}).get("recover")
            if isinstance(recover, dict) and recover.get("href"):
                return recover["href"]
    return None


def _messages(data: Mapping[str, Any]) -> tuple[list[str], bool]:
    """Collect provider messages and whether they are all informational.

    Looks at top-level messages, field-level messages inside remediation
    forms, and the plain error shapes of the Okta and OAuth APIs.
    """
    entries = list(_values(data.get("messages")))
    for remediation in _values(data.get("remediation")):
        for item in remediation.get("value", []):
            if not isinstance(item, dict):
                continue
            entries.extend(_values(item.get("messages")))
            for sub in _values(item.get("form")):
                entries.extend(_values(sub.get("messages")))

    messages = [entry["message"] for entry in entries if entry.get("message")]
    informational = bool(entries) and all(e.get("class") == "INFO" for e in entries)

    for key in ("errorSummary", "error_description"):
        if not messages and data.get(key):
            messages.append(str(data[key]))
    return messages, informational


def _resolve_relation(data: Mapping[str, Any], relates_to: Any) -> dict[str, Any]:
    """Resolve a ``$.authenticators.value[N]`` pointer into ``data``."""
    if not isinstance(relates_to, str):
        return {}
    match = _RELATES_TO.match(relates_to)
    if match is None:
        return {}
    collection, index = match.group(1), int(match.group(2))
    items = _values(data.get(collection))
    return items[index] if index < len(items) else {}


def _option_factors(option: Mapping[str, Any], key: str | None) -> tuple[Factor, ...]:
    form = option.get("value", {}).get("form", {})
    fields = {f.get("name"): f for f in _values(form) if f.get("name")}
    authenticator_id = fields.get("id", {}).get("value", "")
    method_field = fields.get("methodType", {})
    label = option.get("label", "")

    if method_field.get("options"):
        return tuple(
            Factor(
                id=authenticator_id,
                method=str(choice.get("value")),
                label=choice.get("label", ""),
                authenticator_key=key,
                channel=str(choice.get("value")),
            )
            for choice in method_field["options"]
            if choice.get("value")
        )
    method = method_field.get("value")
    if not method:
        return ()
    return (
        Factor(id=authenticator_id, method=str(method), label=label, authenticator_key=key),
    )


def parse_authenticators(
    data: Mapping[str, Any], remediation: Mapping[str, Any]
) -> tuple[Authenticator, ...]:
    """Build the authenticators a select-authenticator remediation offers."""
    field = _field(remediation, "authenticator")
    if field is None:
        return ()
    authenticators: list[Authenticator] = []
    for option in field.get("options", []):
        related = _resolve_relation(data, option.get("relatesTo"))
        key = related.get("key")
        factors = _option_factors(option, key)
        authenticators.append(
            Authenticator(
                id=factors[0].id if factors else str(related.get("id", "")),
                type=AuthenticatorType.get(related.get("type")),
                label=option.get("label", ""),
                key=key,
                factors=factors,
            )
        )
    return tuple(authenticators)


def parse_idx_response(data: Mapping[str, Any]) -> ProviderReply:
    """Normalize an IDX document into a ProviderReply (without a token)."""
    remediations = _values(data.get("remediation"))
    actions = tuple(
        (r["name"], r["href"]) for r in remediations if r.get("name") and r.get("href")
    )
    messages, informational = _messages(data)

    authenticators = None
    for name in ("select-authenticator-authenticate", "select-authenticator-enroll"):
        remediation = _remediation(data, name)
        if remediation is not None:
            authenticators = parse_authenticators(data, remediation)
            break

    fields: tuple[str, ...] = ()
    profile_step = _remediation(data, "enroll-profile")
    if profile_step is not None:
        profile_field = _field(profile_step, "userProfile") or {}
        fields = tuple(
            f["name"] for f in _values(profile_field.get("form")) if f.get("name")
        )

    return ProviderReply(
        state_handle=data.get("stateHandle"),
        actions=actions,
        messages=tuple(messages),
        authenticators=authenticators,
        terminal=not actions and informational,
        fields=fields,
    )


def parse_token(data: Mapping[str, Any]) -> TokenResponse:
    """Build a TokenResponse from an OAuth token endpoint reply."""
    try:
        access_token = data["access_token"]
    except KeyError as e:
        msg = "Token reply has no access_token"
        raise TransportError(msg, error_response=dict(data)) from e
    return TokenResponse(
        access_token=access_token,
        token_type=data.get("token_type", "Bearer"),
        expires_in=data.get("expires_in"),
        scope=data.get("scope"),
        id_token=data.get("id_token"),
        refresh_token=data.get("refresh_token"),
    )


class HttpIdxTransport:
    """IdxTransportProtocol implementation that talks to an Okta org.

    One transport (and its connection pool) can be shared by every session;
    it keeps no per-flow state.
    """

    def __init__(
        self,
        issuer: str,
        client_id: str,
        *,
        client_secret: str | None = None,
        scopes: Sequence[str] = DEFAULT_SCOPES,
        redirect_uri: str = "http://localhost:8080/login/callback",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            issuer: Authorization server URL, e.g.
                https://example.okta.com/oauth2/default.
            client_id: OAuth client id.
            client_secret: OAuth client secret, for confidential clients.
            scopes: Scopes to request.
            redirect_uri: Redirect URI registered for the client.
            timeout: Per-request timeout in seconds.
            http_client: Client to use instead of creating one.
        """
        self.issuer = issuer.rstrip("/")
        parts = urlsplit(self.issuer)
        self.base_url = f"{parts.scheme}://{parts.netloc}"
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = tuple(scopes)
        self.redirect_uri = redirect_uri
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpIdxTransport:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def send(
        self,
        operation: Operation,
        context: ProceedContext | None,
        payload: Mapping[str, Any],
    ) -> ProviderReply:
        match operation:
            case Operation.AUTHENTICATE:
                return await self._authenticate(payload["username"], payload["password"])
            case Operation.RECOVER_PASSWORD:
                return await self._recover_password(payload["username"])
            case Operation.FETCH_SIGN_UP_FORM:
                return await self._fetch_sign_up_form()

        if context is None:
            msg = f"{operation.value} needs a proceed context"
            raise MissingProceedContextError(msg)

        href = context.href_for(*_REMEDIATIONS[operation])
        if href is None:
            raise ProviderRejectionError(
                [f"{operation.value} is not available at this step"]
            )
        data = await self._post_ion(
            href, {"stateHandle": context.state_handle, **_body(operation, payload)}
        )
        return await self._reply(data, context.code_verifier)

    # Flow starts

    async def _begin(self) -> tuple[dict[str, Any], str, str]:
        """Open an interaction and introspect it.

        Returns:
            The introspected IDX document, the interaction handle and the
            PKCE code verifier.
        """
        verifier, challenge = _pkce_pair()
        form = {
            "client_id": self.client_id,
            "scope": " ".join(self.scopes),
            "redirect_uri": self.redirect_uri,
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "state": secrets.token_urlsafe(16),
        }
        if self.client_secret:
            form["client_secret"] = self.client_secret
        interaction = await self._post_form(f"{self.issuer}/v1/interact", form)
        handle = interaction.get("interaction_handle")
        if not handle:
            messages, _ = _messages(interaction)
            raise ProviderRejectionError(messages or ["Interaction was not started"])
        data = await self._post_ion(
            f"{self.base_url}/idp/idx/introspect", {"interactionHandle": handle}
        )
        return data, handle, verifier

    async def _authenticate(self, username: str, password: str) -> ProviderReply:
        data, handle, verifier = await self._begin()
        identify = _remediation(data, "identify")
        if identify is not None:
            body: dict[str, Any] = {"identifier": username}
            one_step = _field(identify, "credentials") is not None
            if one_step:
                body["credentials"] = {"passcode": password}
            data = await self._post_ion(
                identify["href"], {"stateHandle": data.get("stateHandle"), **body}
            )
            challenge = _action_href(data, "challenge-authenticator")
            if not one_step and challenge and _current_type(data) == "password":
                data = await self._post_ion(
                    challenge,
                    {
                        "stateHandle": data.get("stateHandle"),
                        "credentials": {"passcode": password},
                    },
                )
        return await self._reply(data, verifier, interaction_handle=handle)

    async def _recover_password(self, username: str) -> ProviderReply:
        data, handle, verifier = await self._begin()
        if href := _recover_href(data):
            data = await self._post_ion(href, {"stateHandle": data.get("stateHandle")})
        if href := _action_href(data, "identify-recovery"):
            data = await self._post_ion(
                href, {"stateHandle": data.get("stateHandle"), "identifier": username}
            )
        elif href := _action_href(data, "identify"):
            data = await self._post_ion(
                href, {"stateHandle": data.get("stateHandle"), "identifier": username}
            )
            if recover := _recover_href(data):
                data = await self._post_ion(
                    recover, {"stateHandle": data.get("stateHandle")}
                )
        return await self._reply(data, verifier, interaction_handle=handle)

    async def _fetch_sign_up_form(self) -> ProviderReply:
        data, handle, verifier = await self._begin()
        href = _action_href(data, "select-enroll-profile")
        if href is None:
            raise ProviderRejectionError(["Registration is not enabled"])
        data = await self._post_ion(href, {"stateHandle": data.get("stateHandle")})
        return await self._reply(data, verifier, interaction_handle=handle)

    # Replies

    async def _reply(
        self,
        data: dict[str, Any],
        code_verifier: str | None,
        *,
        interaction_handle: str | None = None,
    ) -> ProviderReply:
        """Turn an IDX document into a reply, exchanging for tokens on success."""
        success = data.get("successWithInteractionCode")
        if isinstance(success, dict):
            token = await self._exchange(success, code_verifier)
            return ProviderReply(token=token)
        reply = parse_idx_response(data)
        if interaction_handle is None:
            return reply
        return ProviderReply(
            state_handle=reply.state_handle,
            actions=reply.actions,
            messages=reply.messages,
            authenticators=reply.authenticators,
            terminal=reply.terminal,
            fields=reply.fields,
            interaction_handle=interaction_handle,
            code_verifier=code_verifier,
        )

    async def _exchange(
        self, success: Mapping[str, Any], code_verifier: str | None
    ) -> TokenResponse:
        form = {
            item["name"]: str(item["value"])
            for item in success.get("value", [])
            if isinstance(item, dict) and "value" in item
        }
        form.setdefault("grant_type", "interaction_code")
        form["client_id"] = self.client_id
        if self.client_secret:
            form["client_secret"] = self.client_secret
        if code_verifier:
            form["code_verifier"] = code_verifier
        href = success.get("href") or f"{self.issuer}/v1/token"
        data = await self._post_form(href, form)
        if "error" in data:
            messages, _ = _messages(data)
            raise ProviderRejectionError(messages or [str(data["error"])])
        return parse_token(data)

    # HTTP

    async def _post_ion(self, url: str, body: Mapping[str, Any]) -> dict[str, Any]:
        return await self._post(url, json=dict(body), headers=ION_HEADERS)

    async def _post_form(self, url: str, form: Mapping[str, str]) -> dict[str, Any]:
        return await self._post(
            url, data=dict(form), headers={"Accept": "application/json"}
        )

    async def _post(
        self,
        url: str,
        *,
        headers: Mapping[str, str],
        json: dict[str, Any] | None = None,
        data: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.post(url, json=json, data=data, headers=headers)
        except httpx.TimeoutException as e:
            msg = f"Timed out calling {url}"
            raise TransportError(msg) from e
        except httpx.HTTPError as e:
            msg = f"Could not reach {url}: {e}"
            raise TransportError(msg) from e

        logger.debug("POST %s -> %s", url, response.status_code)
        try:
            body = response.json()
        except ValueError as e:
            msg = f"Unreadable reply from {url}"
            raise TransportError(msg, status_code=response.status_code) from e

        if response.status_code >= 500 or response.status_code == 429:
            msg = f"Provider error {response.status_code} from {url}"
            raise TransportError(
                msg,
                error_response=body if isinstance(body, dict) else None,
                status_code=response.status_code,
            )
        if not isinstance(body, dict):
            msg = f"Unexpected reply shape from {url}"
            raise TransportError(msg, status_code=response.status_code)
        if response.is_error:
            logger.info(
                "IDX request rejected",
                extra={"url": url, "status_code": response.status_code},
            )
        return body


def _current_type(data: Mapping[str, Any]) -> str | None:
    for key in ("currentAuthenticatorEnrollment", "currentAuthenticator"):
        current = data.get(key)
        if isinstance(current, dict):
            return current.get("value", {}).get("type")
    return None


def _body(operation: Operation, payload: Mapping[str, Any]) -> dict[str, Any]:
    """Build the remediation body for ``operation`` (without stateHandle)."""
    match operation:
        case Operation.SELECT_AUTHENTICATOR | Operation.ENROLL_AUTHENTICATOR:
            factor: Factor = payload["factor"]
            return {"authenticator": {"id": factor.id, "methodType": factor.method}}
        case Operation.SUBMIT_PHONE_AUTHENTICATOR:
            factor = payload["factor"]
            return {
                "authenticator": {
                    "id": factor.id,
                    "methodType": factor.method,
                    "phoneNumber": payload["phone"],
                }
            }
        case Operation.VERIFY_AUTHENTICATOR:
            return {"credentials": {"passcode": payload["code"]}}
        case Operation.CHANGE_PASSWORD:
            return {"credentials": {"passcode": payload["new_password"]}}
        case Operation.REGISTER:
            return {"userProfile": dict(payload["profile"])}
    return {}
