"""
Unit tests for the auth handshake state machine.

Tests cover:
- Expiry sent in auth_request equals expiry signed in auth_verify
- Sequential attempts use independent expiries
- In-flight guard
- Out-of-order messages
- Remote rejection and error responses
"""

import json

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from paywiser.core.errors import HandshakeError
from paywiser.protocol.handshake import AUTH_TYPES, AuthHandshake, HandshakeConfig, HandshakeState
from paywiser.protocol.messages import decode_message
from tests.fixtures.clearnode import response


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def challenge(message="challenge-1"):
    return decode_message(json.dumps(response(1, "auth_challenge", [{"challenge_message": message}])))


def verified(success=True, jwt="jwt-1"):
    return decode_message(json.dumps(response(2, "auth_verify", [{"success": success, "jwt_token": jwt}])))


def auth_error(text="invalid challenge"):
    return decode_message(json.dumps(response(3, "error", [{"error": text}])))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def handshake(identity, clock):
    config = HandshakeConfig(app_name="PayWiser", scope="paywiser.com", session_duration_seconds=3600)
    return AuthHandshake(identity, config, clock=clock)


def signed_expire(handshake, verify_request, challenge_message):
    """Recover which expiry the verify signature covers."""
    typed = handshake.typed_data(challenge_message)
    signable = encode_typed_data(
        domain_data=typed["domain"],
        message_types=AUTH_TYPES,
        message_data=typed["message"],
    )
    assert Account.recover_message(signable, signature=verify_request.signatures[0]) == handshake.identity.address
    return str(typed["message"]["expire"])


class TestExpiryBinding:
    """Test that both legs of an attempt carry the same expiry."""

    def test_request_and_verify_share_expiry(self, handshake):
        """Expiry in auth_request is the one signed in auth_verify."""
        request = handshake.begin()
        sent_expire = request.params[0]["expire"]
        assert sent_expire == "1700003600"

        verify = handshake.on_challenge(challenge("c-1"))
        assert verify.method == "auth_verify"
        assert signed_expire(handshake, verify, "c-1") == sent_expire

    def test_sequential_attempts_use_fresh_expiry(self, handshake, clock):
        """A second attempt generates its own expiry, not the first one's."""
        first = handshake.begin()
        handshake.on_challenge(challenge("c-1"))
        handshake.on_verified(verified())
        handshake.reset()

        clock.now += 5
        second = handshake.begin()
        verify = handshake.on_challenge(challenge("c-2"))

        assert handshake.attempt == 2
        assert first.params[0]["expire"] != second.params[0]["expire"]
        assert signed_expire(handshake, verify, "c-2") == second.params[0]["expire"]

    def test_attempts_within_one_second_get_distinct_expiry(self, handshake, clock):
        """Retrying in the same second still moves the expiry forward."""
        first = handshake.begin()
        first_verify = handshake.on_challenge(challenge("c-1"))
        first_signed = signed_expire(handshake, first_verify, "c-1")
        handshake.reset()

        clock.now += 0.4
        second = handshake.begin()
        second_verify = handshake.on_challenge(challenge("c-2"))

        assert first.params[0]["expire"] == first_signed == "1700003600"
        assert second.params[0]["expire"] == "1700003601"
        assert signed_expire(handshake, second_verify, "c-2") == "1700003601"

    def test_typed_data_policy_fields(self, handshake, identity):
        """Policy binds wallet, session key participant and empty allowances."""
        handshake.begin()
        message = handshake.typed_data("c-1")["message"]
        assert message["wallet"] == identity.address
        assert message["participant"] == identity.session_address
        assert message["application"] == identity.address
        assert message["allowances"] == []
        assert message["scope"] == "paywiser.com"


class TestStateMachine:
    """Test transitions and guards."""

    def test_happy_path(self, handshake):
        """IDLE -> AUTH_REQUESTED -> VERIFY_SENT -> AUTHENTICATED."""
        assert handshake.state == HandshakeState.IDLE
        handshake.begin()
        assert handshake.state == HandshakeState.AUTH_REQUESTED
        handshake.on_challenge(challenge())
        assert handshake.state == HandshakeState.VERIFY_SENT
        assert handshake.on_verified(verified(jwt="jwt-x")) is True
        assert handshake.authenticated
        assert handshake.jwt_token == "jwt-x"

    def test_begin_while_in_flight(self, handshake):
        """A second begin during an attempt is refused."""
        handshake.begin()
        with pytest.raises(HandshakeError):
            handshake.begin()

    def test_challenge_without_request(self, handshake):
        """Challenge in IDLE is a protocol error."""
        with pytest.raises(HandshakeError):
            handshake.on_challenge(challenge())

    def test_verify_without_challenge(self, handshake):
        """Verification before a challenge is a protocol error."""
        handshake.begin()
        with pytest.raises(HandshakeError):
            handshake.on_verified(verified())

    def test_rejected_verification(self, handshake):
        """success=false fails the attempt and clears the guard."""
        handshake.begin()
        handshake.on_challenge(challenge())
        assert handshake.on_verified(verified(success=False)) is False
        assert handshake.state == HandshakeState.FAILED
        assert not handshake.in_flight
        handshake.begin()
        assert handshake.attempt == 2

    def test_error_response_fails_attempt(self, handshake):
        """An error during the attempt records it and allows a retry."""
        handshake.begin()
        handshake.on_error(auth_error("bad signature"))
        assert handshake.state == HandshakeState.FAILED
        assert handshake.last_error == "bad signature"
        handshake.begin()
        assert handshake.state == HandshakeState.AUTH_REQUESTED

    def test_configured_application(self, identity, clock):
        """Configured application address replaces the account address."""
        app = "0x" + "22" * 20
        handshake = AuthHandshake(identity, HandshakeConfig("PayWiser", "paywiser.com", application=app), clock=clock)
        assert handshake.begin().params[0]["application"] == app
