"""Tests for MockIdxTransport itself."""

from __future__ import annotations

from idxauth.auth.mock import (
    INVALID_CREDENTIALS,
    MOCK_PASSWORD,
    MockIdxTransport,
    MockUser,
)
from idxauth.auth.models import ProceedContext
from idxauth.auth.protocol import IdxTransportProtocol, Operation


class TestMockIdxTransport:
    """Tests for the scripted provider."""

    def test_implements_protocol(self):
        transport: IdxTransportProtocol = MockIdxTransport()
        assert transport is not None

    async def test_records_requests(self, mock_transport):
        """Every send is recorded with its operation and payload."""
        await mock_transport.send(
            Operation.AUTHENTICATE, None, {"username": "bob", "password": MOCK_PASSWORD}
        )
        sent = mock_transport.get_sent_requests()
        assert len(sent) == 1
        assert sent[0]["operation"] is Operation.AUTHENTICATE
        assert sent[0]["payload"]["username"] == "bob"

        mock_transport.clear_sent_requests()
        assert mock_transport.get_sent_requests() == []

    async def test_deterministic_across_instances(self):
        """Two fresh providers answer the same calls identically."""
        payload = {"username": "alice", "password": MOCK_PASSWORD}
        first = await MockIdxTransport().send(Operation.AUTHENTICATE, None, payload)
        second = await MockIdxTransport().send(Operation.AUTHENTICATE, None, payload)
        assert first == second

    async def test_custom_users(self):
        transport = MockIdxTransport(users={"zoe": MockUser(password="zoe-secret")})
        reply = await transport.send(
            Operation.AUTHENTICATE, None, {"username": "bob", "password": MOCK_PASSWORD}
        )
        assert reply.messages == (INVALID_CREDENTIALS,)

        reply = await transport.send(
            Operation.AUTHENTICATE, None, {"username": "zoe", "password": "zoe-secret"}
        )
        assert reply.token is not None

    async def test_handles_are_single_use(self, mock_transport):
        """Once a handle is answered it cannot be used again."""
        reply = await mock_transport.send(Operation.FETCH_SIGN_UP_FORM, None, {})
        context = ProceedContext(state_handle=reply.state_handle, actions=reply.actions)
        profile = {"firstName": "A", "lastName": "B", "email": "ab@example.com"}

        accepted = await mock_transport.send(
            Operation.REGISTER, context, {"profile": profile}
        )
        assert accepted.state_handle != reply.state_handle

        again = await mock_transport.send(Operation.REGISTER, context, {"profile": profile})
        assert again.state_handle is None
        assert again.messages
