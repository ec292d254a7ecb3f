"""
Request correlation over a single asynchronous connection.

Outbound requests are registered under their correlation id before they are
sent. Each inbound message is matched against the pending set in tiers:

1. exact correlation id;
2. normalized method name, only when exactly one pending request expects
   that method (several candidates: nothing is resolved, the message is
   counted as ambiguous);
3. the single pending request, only when enabled (off by default).

Anything else is unroutable and left to generic listeners. Every non-id
match is logged at WARNING and counted in `stats`.

All state is touched from one event loop; no locking.
"""

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from paywiser.core.errors import ConnectionClosedError, DuplicateRequestError, RequestTimeoutError
from paywiser.protocol.envelope import RPCRequest
from paywiser.protocol.messages import InboundMessage, normalize_method

logger = logging.getLogger(__name__)

Sender = Callable[[str], Awaitable[None]]
RequestId = Union[int, str]

MATCH_ID = "id"
MATCH_METHOD = "method"
MATCH_SINGLE_PENDING = "single_pending"
MATCH_AMBIGUOUS = "ambiguous"
MATCH_UNROUTABLE = "unroutable"


@dataclass
class PendingRequest:
    """One outstanding request awaiting its response."""
    request_id: RequestId
    method: str
    method_key: str
    future: asyncio.Future
    timeout_seconds: float
    timeout_handle: Optional[asyncio.TimerHandle] = None
    created_at: float = field(default_factory=time.time)

    def settle(self, message: Optional[InboundMessage] = None, error: Optional[BaseException] = None) -> None:
        if self.timeout_handle is not None:
            self.timeout_handle.cancel()
            self.timeout_handle = None
        if self.future.done():
            return
        if error is not None:
            self.future.set_exception(error)
        else:
            self.future.set_result(message)


class RequestCorrelator:
    """
    Matches inbound messages to outstanding requests.

    Pending requests live in one insertion-ordered map keyed by correlation
    id; method-based lookup scans the same map, so purging an entry removes
    it from every tier at once.
    """

    def __init__(
        self,
        sender: Sender,
        default_timeout: float = 60.0,
        single_pending_fallback: bool = False,
    ):
        """
        Initialize correlator.

        Args:
            sender: Coroutine function writing one frame to the connection
            default_timeout: Seconds before an unanswered request fails
            single_pending_fallback: Enable tier 3 matching
        """
        self._sender = sender
        self.default_timeout = default_timeout
        self.single_pending_fallback = single_pending_fallback
        self._pending: Dict[RequestId, PendingRequest] = {}
        self.stats: Counter = Counter()

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: RequestId) -> bool:
        return request_id in self._pending

    @property
    def pending_ids(self) -> List[RequestId]:
        return list(self._pending)

    def register(
        self,
        request_id: RequestId,
        expected_method: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> asyncio.Future:
        """
        Register a pending request and arm its timeout.

        Args:
            request_id: Correlation id carried by the outbound request
            expected_method: Method name the response is expected to carry
            timeout: Seconds to wait (default_timeout if not provided)

        Returns:
            Future resolved with the matching InboundMessage

        Raises:
            DuplicateRequestError: If request_id is already pending
        """
        if request_id in self._pending:
            raise DuplicateRequestError(request_id)

        loop = asyncio.get_running_loop()
        timeout = self.default_timeout if timeout is None else timeout
        method = expected_method or ""
        pending = PendingRequest(
            request_id=request_id,
            method=method,
            method_key=normalize_method(method),
            future=loop.create_future(),
            timeout_seconds=timeout,
        )
        pending.timeout_handle = loop.call_later(timeout, self._expire, request_id)
        # A caller abandoning its await must not leave the record behind
        pending.future.add_done_callback(lambda _f: self._discard(request_id, pending))
        self._pending[request_id] = pending
        return pending.future

    async def send_request(
        self,
        request: RPCRequest,
        expected_method: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> InboundMessage:
        """
        Send a request and wait for its matched response.

        Registration happens before the frame is written, so a response can
        never arrive ahead of its pending record.

        Args:
            request: Framed outbound request
            expected_method: Fallback match key (defaults to the request method)
            timeout: Seconds to wait

        Returns:
            The matched inbound message

        Raises:
            RequestTimeoutError: No match before the deadline
            ConnectionClosedError: Connection torn down while waiting
            TransportError: Frame could not be written
        """
        future = self.register(request.request_id, expected_method or request.method, timeout)
        try:
            await self._sender(request.to_json())
        except BaseException:
            record = self._pending.get(request.request_id)
            if record is not None:
                self._discard(request.request_id, record)
            future.cancel()
            raise
        return await future

    def match(self, message: InboundMessage) -> bool:
        """
        Resolve the pending request this message answers, if any.

        Returns:
            True if a pending request was resolved
        """
        if not self._pending:
            return False

        if message.request_id is not None and message.request_id in self._pending:
            self._resolve(message.request_id, message, MATCH_ID)
            return True

        method_key = message.method_key
        if method_key:
            candidates = [p for p in self._pending.values() if p.method_key == method_key]
            if len(candidates) == 1:
                logger.warning(
                    "Matched %s response to request %s by method name (response id %s)",
                    message.method, candidates[0].request_id, message.request_id,
                )
                self._resolve(candidates[0].request_id, message, MATCH_METHOD)
                return True
            if len(candidates) > 1:
                self.stats[MATCH_AMBIGUOUS] += 1
                logger.warning(
                    "Ambiguous %s response: %d pending requests expect this method, none resolved",
                    message.method, len(candidates),
                )
                return False

        if self.single_pending_fallback and len(self._pending) == 1:
            request_id = next(iter(self._pending))
            logger.warning(
                "Matched %s response to the only pending request %s",
                message.method, request_id,
            )
            self._resolve(request_id, message, MATCH_SINGLE_PENDING)
            return True

        self.stats[MATCH_UNROUTABLE] += 1
        logger.debug("Unroutable %s message (id %s)", message.method, message.request_id)
        return False

    def reject_all(self, error: Optional[BaseException] = None) -> int:
        """
        Fail every pending request.

        Args:
            error: Exception to set (ConnectionClosedError if not provided)

        Returns:
            Number of requests rejected
        """
        pending, self._pending = list(self._pending.values()), {}
        for record in pending:
            record.settle(error=error or ConnectionClosedError(request_id=record.request_id))
        return len(pending)

    def _resolve(self, request_id: RequestId, message: InboundMessage, tier: str) -> None:
        pending = self._pending.pop(request_id)
        self.stats[tier] += 1
        pending.settle(message=message)

    def _expire(self, request_id: RequestId) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        pending.timeout_handle = None
        logger.error("Request %s (%s) timed out after %ss", request_id, pending.method, pending.timeout_seconds)
        pending.settle(error=RequestTimeoutError(pending.method or "request", pending.timeout_seconds, request_id))

    def _discard(self, request_id: RequestId, pending: PendingRequest) -> None:
        if self._pending.get(request_id) is pending:
            del self._pending[request_id]
            if pending.timeout_handle is not None:
                pending.timeout_handle.cancel()
