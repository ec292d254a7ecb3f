"""
Unit tests for request correlation.

Tests cover:
- Id match resolves exactly the request and purges it
- Timeout isolation between concurrent requests
- reject_all empties the pending map
- Method-name fallback with one candidate
- Ambiguous method matches left unresolved
- Single-pending fallback only when enabled
- Cancellation and send failures purge the record
"""

import asyncio
import json

import pytest

from paywiser.core.errors import ConnectionClosedError, DuplicateRequestError, RequestTimeoutError
from paywiser.protocol.correlator import (
    MATCH_AMBIGUOUS,
    MATCH_ID,
    MATCH_METHOD,
    MATCH_SINGLE_PENDING,
    MATCH_UNROUTABLE,
    RequestCorrelator,
)
from paywiser.protocol.envelope import RequestEnvelope
from paywiser.protocol.messages import decode_message
from tests.fixtures.clearnode import response


class RecordingSender:
    def __init__(self, error=None):
        self.frames = []
        self.error = error

    async def __call__(self, data):
        if self.error is not None:
            raise self.error
        self.frames.append(json.loads(data))


def inbound(request_id, method, params=None):
    return decode_message(json.dumps(response(request_id, method, params)))


def request(method):
    return RequestEnvelope.create(method, [{}])


class TestIdMatching:
    """Test tier 1 correlation."""

    @pytest.mark.asyncio
    async def test_resolves_by_id_and_purges(self):
        """Response echoing the id resolves that request and leaves nothing pending."""
        sender = RecordingSender()
        correlator = RequestCorrelator(sender)
        req = request("get_channels")

        task = asyncio.create_task(correlator.send_request(req))
        await asyncio.sleep(0)
        assert sender.frames[0]["req"][0] == req.request_id
        assert req.request_id in correlator

        reply = inbound(req.request_id, "get_channels", [[]])
        assert correlator.match(reply) is True

        assert await task is reply
        assert len(correlator) == 0
        assert correlator.stats[MATCH_ID] == 1

    @pytest.mark.asyncio
    async def test_id_match_wins_over_method(self):
        """Two pending requests of the same method resolve by id."""
        correlator = RequestCorrelator(RecordingSender())
        first, second = request("get_channels"), request("get_channels")
        t1 = asyncio.create_task(correlator.send_request(first))
        t2 = asyncio.create_task(correlator.send_request(second))
        await asyncio.sleep(0)

        correlator.match(inbound(second.request_id, "get_channels", [[]]))
        correlator.match(inbound(first.request_id, "get_channels", [[]]))

        assert (await t1).request_id == first.request_id
        assert (await t2).request_id == second.request_id

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self):
        """Registering the same id twice raises DuplicateRequestError."""
        correlator = RequestCorrelator(RecordingSender())
        future = correlator.register(1, "get_channels")
        with pytest.raises(DuplicateRequestError):
            correlator.register(1, "get_channels")
        correlator.reject_all()
        with pytest.raises(ConnectionClosedError):
            await future


class TestTimeouts:
    """Test deadline handling."""

    @pytest.mark.asyncio
    async def test_timeout_isolation(self):
        """Only the expired request rejects; the other still resolves."""
        correlator = RequestCorrelator(RecordingSender())
        a, b = request("get_channels"), request("get_ledger_balances")

        task_a = asyncio.create_task(correlator.send_request(a, timeout=0.05))
        task_b = asyncio.create_task(correlator.send_request(b, timeout=5))
        await asyncio.sleep(0.1)

        with pytest.raises(RequestTimeoutError) as exc_info:
            await task_a
        assert exc_info.value.request_id == a.request_id
        assert "get_channels" in exc_info.value.message
        assert a.request_id not in correlator
        assert not task_b.done()

        correlator.match(inbound(b.request_id, "get_ledger_balances", [[]]))
        assert (await task_b).request_id == b.request_id
        assert len(correlator) == 0

    @pytest.mark.asyncio
    async def test_late_response_after_timeout_is_unroutable(self):
        """A response for an expired request matches nothing."""
        correlator = RequestCorrelator(RecordingSender())
        req = request("get_channels")
        with pytest.raises(RequestTimeoutError):
            await correlator.send_request(req, timeout=0.01)
        assert correlator.match(inbound(req.request_id, "get_channels", [[]])) is False


class TestRejectAll:
    """Test bulk rejection on disconnect."""

    @pytest.mark.asyncio
    async def test_rejects_every_pending(self):
        """All N pending requests fail with ConnectionClosedError."""
        correlator = RequestCorrelator(RecordingSender())
        tasks = [asyncio.create_task(correlator.send_request(request("get_channels"))) for _ in range(3)]
        await asyncio.sleep(0)
        assert len(correlator) == 3

        assert correlator.reject_all() == 3
        assert len(correlator) == 0
        for task in tasks:
            with pytest.raises(ConnectionClosedError):
                await task


class TestFallbackMatching:
    """Test tier 2 and tier 3 matching."""

    @pytest.mark.asyncio
    async def test_method_match_single_candidate(self):
        """Response without a usable id resolves the one request expecting that method."""
        correlator = RequestCorrelator(RecordingSender())
        req = request("get_ledger_balances")
        task = asyncio.create_task(correlator.send_request(req))
        await asyncio.sleep(0)

        assert correlator.match(inbound(None, "get_ledger_balances", [[]])) is True
        assert (await task).method == "get_ledger_balances"
        assert correlator.stats[MATCH_METHOD] == 1
        assert len(correlator) == 0

    @pytest.mark.asyncio
    async def test_method_match_ignores_case_and_separators(self):
        """Method comparison uses the normalized name."""
        correlator = RequestCorrelator(RecordingSender())
        task = asyncio.create_task(correlator.send_request(request("get_channels")))
        await asyncio.sleep(0)

        assert correlator.match(inbound(None, "GetChannels", [[]])) is True
        await task

    @pytest.mark.asyncio
    async def test_ambiguous_method_match_not_resolved(self, caplog):
        """Two requests expecting the method: nothing resolves, a warning is logged."""
        correlator = RequestCorrelator(RecordingSender())
        tasks = [asyncio.create_task(correlator.send_request(request("get_channels"))) for _ in range(2)]
        await asyncio.sleep(0)

        with caplog.at_level("WARNING"):
            assert correlator.match(inbound(None, "get_channels", [[]])) is False
        assert "Ambiguous" in caplog.text
        assert correlator.stats[MATCH_AMBIGUOUS] == 1
        assert len(correlator) == 2
        assert not any(t.done() for t in tasks)

        correlator.reject_all()
        await asyncio.gather(*tasks, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_single_pending_disabled_by_default(self):
        """Unrelated message does not resolve the only pending request."""
        correlator = RequestCorrelator(RecordingSender())
        task = asyncio.create_task(correlator.send_request(request("create_app_session")))
        await asyncio.sleep(0)

        assert correlator.match(inbound(None, "bu", [])) is False
        assert correlator.stats[MATCH_UNROUTABLE] == 1
        assert not task.done()

        correlator.reject_all()
        with pytest.raises(ConnectionClosedError):
            await task

    @pytest.mark.asyncio
    async def test_single_pending_when_enabled(self, caplog):
        """With the fallback enabled the only pending request resolves, with a warning."""
        correlator = RequestCorrelator(RecordingSender(), single_pending_fallback=True)
        task = asyncio.create_task(correlator.send_request(request("create_app_session")))
        await asyncio.sleep(0)

        with caplog.at_level("WARNING"):
            assert correlator.match(inbound(None, "bu", [])) is True
        assert (await task).method == "bu"
        assert correlator.stats[MATCH_SINGLE_PENDING] == 1
        assert "only pending request" in caplog.text

    @pytest.mark.asyncio
    async def test_single_pending_needs_exactly_one(self):
        """Fallback never fires with two pending requests."""
        correlator = RequestCorrelator(RecordingSender(), single_pending_fallback=True)
        tasks = [
            asyncio.create_task(correlator.send_request(request("create_app_session"))),
            asyncio.create_task(correlator.send_request(request("close_app_session"))),
        ]
        await asyncio.sleep(0)

        assert correlator.match(inbound(None, "bu", [])) is False
        correlator.reject_all()
        await asyncio.gather(*tasks, return_exceptions=True)


class TestCleanup:
    """Test that abandoned requests do not leak."""

    @pytest.mark.asyncio
    async def test_cancelled_caller_purges_record(self):
        """Cancelling the awaiting task removes the pending record."""
        correlator = RequestCorrelator(RecordingSender())
        task = asyncio.create_task(correlator.send_request(request("get_channels")))
        await asyncio.sleep(0)
        assert len(correlator) == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await asyncio.sleep(0)
        assert len(correlator) == 0

    @pytest.mark.asyncio
    async def test_send_failure_purges_record(self):
        """A frame that cannot be written leaves nothing pending."""
        correlator = RequestCorrelator(RecordingSender(error=ConnectionClosedError()))
        with pytest.raises(ConnectionClosedError):
            await correlator.send_request(request("get_channels"))
        await asyncio.sleep(0)
        assert len(correlator) == 0
