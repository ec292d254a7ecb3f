"""Unit tests for outbound request envelopes."""

import json

from paywiser.protocol.envelope import RequestEnvelope, generate_request_id


class TestRequestEnvelope:
    """Test request framing."""

    def test_request_ids_increase(self):
        """Generated ids are unique and increasing."""
        first = generate_request_id()
        second = generate_request_id()
        assert second > first

    def test_wire_shape(self):
        """Request serializes as req array plus sig list."""
        request = RequestEnvelope.create("get_channels", [{"participant": "0x1"}], request_id=7, timestamp=1000)
        assert request.to_dict() == {"req": [7, "get_channels", [{"participant": "0x1"}], 1000], "sig": []}
        assert json.loads(request.to_json()) == request.to_dict()

    def test_signer_receives_payload(self):
        """Signer is called with the req array; its result lands in sig."""
        seen = []

        def signer(payload):
            seen.append(payload)
            return "0xsig"

        request = RequestEnvelope.create("get_ledger_balances", [{}], signer=signer, request_id=9, timestamp=5)
        assert seen == [[9, "get_ledger_balances", [{}], 5]]
        assert request.signatures == ["0xsig"]

    def test_auth_request_unsigned(self):
        """auth_request carries the policy fields and no signature."""
        request = RequestEnvelope.auth_request(
            address="0xA",
            session_key="0xS",
            app_name="PayWiser",
            expire="1700003600",
            scope="paywiser.com",
            application="0xA",
        )
        assert request.method == "auth_request"
        assert request.signatures == []
        params = request.params[0]
        assert params["session_key"] == "0xS"
        assert params["expire"] == "1700003600"
        assert params["allowances"] == []

    def test_auth_verify_carries_signature(self):
        """auth_verify echoes the challenge and appends the signature."""
        request = RequestEnvelope.auth_verify("challenge-1", "0xdead")
        assert request.params == [{"challenge": "challenge-1"}]
        assert request.signatures == ["0xdead"]

    def test_app_session_builders(self):
        """create/close app session params wrap one object."""
        signer = lambda payload: "0xsig"
        create = RequestEnvelope.create_app_session(signer, {"protocol": "p"}, [{"participant": "0x1"}])
        close = RequestEnvelope.close_app_session(signer, "0xsession", [])
        assert create.params == [{"definition": {"protocol": "p"}, "allocations": [{"participant": "0x1"}]}]
        assert close.params == [{"app_session_id": "0xsession", "allocations": []}]
        assert create.signatures == close.signatures == ["0xsig"]
