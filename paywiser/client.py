"""
ClearNode client: one supervised connection, authenticated and correlated.

The client is an explicit context object. Build it once at process start and
pass it to whatever needs the ClearNode; nothing here is a module-level
singleton.

Lifecycle:
- connect(): open the transport, start reader and keepalive tasks, run the
  auth handshake. Returns only once authenticated.
- disconnect(): reject pending requests, stop tasks, close the transport,
  forget auth and session state.
- Unexpected closure resets the connection flags, rejects pending requests
  and emits "disconnected". There is no automatic reconnect; callers retry
  with connect() or reconnect().

Events: connected, authenticated, disconnected, message, error.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Set

from paywiser.core.config import ClearNodeSettings
from paywiser.core.errors import (
    ChannelNotFoundError,
    ChannelNotReadyError,
    ClearNodeRPCError,
    ConfigurationError,
    ConnectionClosedError,
    HandshakeError,
    NotAuthenticatedError,
    NotConnectedError,
    UnexpectedResponseError,
)
from paywiser.core.events import EventEmitter
from paywiser.payment import (
    Amount,
    PaymentReceipt,
    build_definition,
    normalize_amount,
    opening_allocations,
    require_address,
    settlement_allocations,
    synthesize_session_id,
)
from paywiser.protocol.correlator import RequestCorrelator
from paywiser.protocol.envelope import RPCRequest, RequestEnvelope
from paywiser.protocol.handshake import AuthHandshake, HandshakeConfig
from paywiser.protocol.messages import (
    AppSessionClosed,
    AppSessionCreated,
    AuthChallenge,
    AuthVerifyResult,
    BalanceUpdate,
    ChannelInfo,
    ChannelList,
    ErrorResponse,
    InboundMessage,
    LedgerBalance,
    LedgerBalances,
    MessageDecodeError,
    decode_message,
)
from paywiser.protocol.session import (
    Allocation,
    ApplicationSession,
    SessionAlreadyCompletedError,
    SessionCloseInProgressError,
    SessionRegistry,
    generate_rewards,
)
from paywiser.security.identity import Identity
from paywiser.transport.errors import TransportClosedError, TransportError
from paywiser.transport.transport import Transport, TransportFactory
from paywiser.transport.websocket import WebSocketTransport

logger = logging.getLogger(__name__)

USER_DISCONNECT_REASON = "User initiated disconnect"


class ClearNodeClient(EventEmitter):
    """
    Connection manager and operations facade for one ClearNode.

    Composes the transport, auth handshake, request correlator and session
    registry. All of them are driven from the event loop that calls
    connect().
    """

    def __init__(
        self,
        settings: ClearNodeSettings,
        identity: Optional[Identity] = None,
        transport_factory: Optional[TransportFactory] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize client. Does not connect.

        Args:
            settings: Connection, identity and bookkeeping settings
            identity: Account/session keys (built from settings if not provided)
            transport_factory: Builds a fresh Transport per connect
            clock: Time source (seconds)

        Raises:
            ConfigurationError: If no identity and no private key configured
        """
        super().__init__()
        self.settings = settings
        self.identity = identity or Identity.from_private_key(settings.require_private_key())
        self._transport_factory = transport_factory or WebSocketTransport
        self._clock = clock

        self._transport: Optional[Transport] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._keepalive_task: Optional[asyncio.Task] = None
        self._auth_waiter: Optional[asyncio.Future] = None
        self._connect_lock = asyncio.Lock()
        self._closing: Set[str] = set()
        self.connected = False

        self.handshake = AuthHandshake(
            self.identity,
            HandshakeConfig(
                app_name=settings.app_name,
                scope=settings.auth_scope,
                application=settings.application_address,
                session_duration_seconds=settings.session_duration_seconds,
            ),
            clock=clock,
        )
        self.correlator = RequestCorrelator(
            self._send_frame,
            default_timeout=settings.request_timeout_seconds,
            single_pending_fallback=settings.single_pending_fallback,
        )
        self.sessions = SessionRegistry(
            open_ttl_seconds=settings.session_open_ttl_seconds,
            retention_seconds=settings.session_retention_seconds,
            max_sessions=settings.max_sessions,
            clock=clock,
        )

    @property
    def authenticated(self) -> bool:
        return self.connected and self.handshake.authenticated

    # -- Connection lifecycle ------------------------------------------------

    async def connect(self) -> None:
        """
        Connect and authenticate.

        An existing connection is torn down first.

        Raises:
            NotConnectedError: Transport could not be opened
            HandshakeError: Authentication rejected or timed out
        """
        async with self._connect_lock:
            await self._connect()

    async def _connect(self) -> None:
        if self._transport is not None:
            await self._teardown(1000, "Reconnecting")

        url = self.settings.clearnode_url
        timeout = self.settings.connect_timeout_seconds
        logger.info("Connecting to ClearNode %s", url)

        transport = self._transport_factory()
        try:
            await transport.open(url, timeout)
        except TransportError as e:
            logger.error("Failed to connect to ClearNode: %s", e)
            self.emit("error", e)
            raise NotConnectedError(f"Failed to connect to {url}: {e}") from e

        loop = asyncio.get_running_loop()
        self._transport = transport
        self.connected = True
        self.handshake.reset()
        waiter = self._auth_waiter = loop.create_future()
        self._reader_task = loop.create_task(self._read_loop(transport))
        self._keepalive_task = loop.create_task(self._keepalive_loop(transport))
        logger.info("Connected to ClearNode")
        self.emit("connected")

        try:
            await self._send_frame(self.handshake.begin().to_json())
            await asyncio.wait_for(waiter, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error("Authentication timed out after %ss", timeout)
            if self._transport is transport:
                await self._teardown(1000, "Authentication timeout")
            raise HandshakeError(f"Authentication timed out after {timeout}s") from None
        except BaseException:
            # A concurrent disconnect already tore this connection down
            if self._transport is transport:
                await self._teardown(1000, "Authentication failed")
            raise

    async def disconnect(self) -> None:
        """Close the connection and forget auth and session state."""
        await self._teardown(1000, USER_DISCONNECT_REASON)
        self.sessions.clear()

    async def reconnect(self) -> None:
        logger.info("Reconnecting to ClearNode")
        async with self._connect_lock:
            await self.disconnect()
            await self._connect()

    async def _teardown(self, code: int, reason: str) -> None:
        transport, self._transport = self._transport, None
        was_connected = self.connected
        self.connected = False
        self.handshake.reset()

        rejected = self.correlator.reject_all()
        if rejected:
            logger.info("Rejected %d pending request(s) on disconnect", rejected)
        self._fail_auth_waiter(NotConnectedError("Connection closed"))

        await self._cancel_tasks()
        if transport is not None:
            try:
                await transport.close(code, reason)
            except TransportError as e:
                logger.warning("Error closing ClearNode transport: %s", e)
            if was_connected:
                logger.info("ClearNode disconnected: %s %s", code, reason)
                self.emit("disconnected", {"code": code, "reason": reason})

    async def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in (self._reader_task, self._keepalive_task) if t is not None]
        self._reader_task = self._keepalive_task = None
        for task in tasks:
            if task is not current:
                task.cancel()
        for task in tasks:
            if task is not current:
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.exception("ClearNode background task failed")

    def _on_closed(self, transport: Transport, code: Optional[int], reason: str) -> None:
        """Transport closed underneath us."""
        if transport is not self._transport:
            return
        self._transport = None
        self.connected = False
        self.handshake.reset()
        self._reader_task = None
        if self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

        self.correlator.reject_all()
        self._fail_auth_waiter(NotConnectedError(f"Connection closed during authentication: {code} {reason}"))
        logger.info("ClearNode disconnected: %s %s", code, reason)
        self.emit("disconnected", {"code": code, "reason": reason})

    def _fail_auth_waiter(self, error: BaseException) -> None:
        waiter, self._auth_waiter = self._auth_waiter, None
        if waiter is not None and not waiter.done():
            waiter.set_exception(error)

    # -- Tasks ---------------------------------------------------------------

    async def _read_loop(self, transport: Transport) -> None:
        try:
            while True:
                raw = await transport.recv()
                await self._handle_frame(raw)
        except TransportClosedError as e:
            self._on_closed(transport, e.code, e.reason)
        except TransportError as e:
            logger.error("ClearNode transport error: %s", e)
            self.emit("error", e)
            self._on_closed(transport, e.code, e.message)
        except Exception as e:
            logger.exception("ClearNode reader failed")
            self.emit("error", e)
            self._on_closed(transport, 1011, str(e))
            try:
                await transport.close(1011, "Reader failed")
            except TransportError as close_error:
                logger.warning("Error closing ClearNode transport: %s", close_error)

    async def _keepalive_loop(self, transport: Transport) -> None:
        interval = self.settings.keepalive_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                await transport.ping()
            except TransportClosedError:
                return
            except TransportError as e:
                logger.warning("Keepalive ping failed: %s", e)

    async def _send_frame(self, data: str) -> None:
        transport = self._transport
        if transport is None or not self.connected:
            raise NotConnectedError()
        try:
            await transport.send(data)
        except TransportClosedError as e:
            raise ConnectionClosedError(f"Connection closed: {e.code} {e.reason}".strip()) from e

    # -- Inbound dispatch ----------------------------------------------------

    async def _handle_frame(self, raw: str) -> None:
        try:
            message = decode_message(raw)
        except MessageDecodeError as e:
            logger.warning("Dropping undecodable ClearNode frame: %s", e)
            return

        logger.debug("ClearNode message received: %s (id %s)", message.method, message.request_id)

        if isinstance(message, AuthChallenge):
            await self._on_auth_challenge(message)
        elif isinstance(message, AuthVerifyResult):
            self._on_auth_verified(message)
        else:
            if isinstance(message, ErrorResponse):
                self._on_error_response(message)
            self.correlator.match(message)

        self.emit("message", message)

    async def _on_auth_challenge(self, challenge: AuthChallenge) -> None:
        logger.info("Received ClearNode auth challenge")
        try:
            verify = self.handshake.on_challenge(challenge)
            await self._send_frame(verify.to_json())
        except (HandshakeError, NotConnectedError, ConnectionClosedError) as e:
            logger.error("Auth challenge handling failed: %s", e)
            self._fail_auth_waiter(e)

    def _on_auth_verified(self, result: AuthVerifyResult) -> None:
        try:
            ok = self.handshake.on_verified(result)
        except HandshakeError as e:
            logger.warning("Ignoring auth_verify: %s", e)
            return
        if not ok:
            self._fail_auth_waiter(HandshakeError("ClearNode rejected auth verification"))
            return
        if result.jwt_token:
            logger.info("JWT token received for future reconnections")
        logger.info("ClearNode authentication successful")
        waiter = self._auth_waiter
        if waiter is not None and not waiter.done():
            waiter.set_result(True)
        self.emit("authenticated")

    def _on_error_response(self, error: ErrorResponse) -> None:
        logger.error("ClearNode error: %s", error.error)
        if self.handshake.in_flight:
            self.handshake.on_error(error)
            self._fail_auth_waiter(HandshakeError(error.error, details={"remote_error": error.error}))

    # -- Requests ------------------------------------------------------------

    def _require_authenticated(self) -> None:
        if not self.connected:
            raise NotConnectedError()
        if not self.handshake.authenticated:
            raise NotAuthenticatedError()

    async def _request(self, request: RPCRequest, expected_method: str) -> InboundMessage:
        self._require_authenticated()
        response = await self.correlator.send_request(request, expected_method)
        if isinstance(response, ErrorResponse):
            raise ClearNodeRPCError(response.error, method=expected_method, request_id=request.request_id)
        return response

    async def get_channels(self) -> List[ChannelInfo]:
        request = RequestEnvelope.get_channels(self.identity.sign_payload, self.identity.session_address)
        response = await self._request(request, "get_channels")
        if not isinstance(response, ChannelList):
            raise UnexpectedResponseError("get_channels", response.method, request.request_id)
        return response.channels

    async def get_ledger_balances(self) -> List[LedgerBalance]:
        request = RequestEnvelope.get_ledger_balances(self.identity.sign_payload, self.identity.session_address)
        response = await self._request(request, "get_ledger_balances")
        if not isinstance(response, LedgerBalances):
            raise UnexpectedResponseError("get_ledger_balances", response.method, request.request_id)
        return response.balances

    async def get_my_channel(self) -> ChannelInfo:
        """
        The channel named by YELLOW_CHANNEL_ID.

        Raises:
            ConfigurationError: If no channel id is configured
            ChannelNotFoundError: If the ClearNode does not list it
        """
        channel_id = self.settings.channel_id
        if not channel_id:
            raise ConfigurationError("YELLOW_CHANNEL_ID not configured")
        for channel in await self.get_channels():
            if channel.channel_id == channel_id:
                return channel
        raise ChannelNotFoundError(channel_id)

    async def verify_channel_ready(self) -> Dict[str, Any]:
        """
        Check the configured channel can carry payments.

        Raises:
            ChannelNotReadyError: If its status is not 'open'
        """
        channel = await self.get_my_channel()
        if channel.status != "open":
            raise ChannelNotReadyError(channel.channel_id, channel.status)
        logger.info("Channel %s is ready for payments", channel.channel_id)
        return {
            "channelId": channel.channel_id,
            "status": channel.status,
            "token": channel.token,
            "amount": channel.amount,
            "participants": [channel.participant, self.identity.address],
            "chainId": channel.chain_id,
            "adjudicator": channel.adjudicator,
        }

    # -- Application sessions ------------------------------------------------

    async def create_session(self, customer_address: str, merchant_address: str, amount: Amount) -> ApplicationSession:
        """
        Open an application session with funds allocated to the customer.

        Args:
            customer_address: Paying participant
            merchant_address: Receiving participant
            amount: Payment amount

        Returns:
            The registered OPEN session

        Raises:
            InvalidPaymentError: Bad address or amount
            ClearNodeRPCError: ClearNode refused the session
            UnexpectedResponseError: Response carried no usable acknowledgement
        """
        customer = require_address(customer_address, "customerAddress")
        merchant = require_address(merchant_address, "merchantAddress")
        amount = normalize_amount(amount)
        service = self.identity.address

        now = self._clock()
        allocations = opening_allocations(customer, merchant, service, amount)
        request = RequestEnvelope.create_app_session(
            self.identity.sign_payload,
            build_definition(customer, merchant, service, nonce=int(now * 1000)),
            [a.to_dict() for a in allocations],
        )
        logger.info("Creating payment session: %s -> %s amount %s", customer, merchant, amount)
        response = await self._request(request, "create_app_session")

        if isinstance(response, AppSessionCreated):
            session_id, synthesized = response.app_session_id, False
        elif isinstance(response, BalanceUpdate):
            session_id, synthesized = synthesize_session_id(int(self._clock() * 1000)), True
            logger.warning("Session acknowledged by balance update only, tracking as %s", session_id)
        else:
            raise UnexpectedResponseError("create_app_session", response.method, request.request_id)

        session = self.sessions.register(ApplicationSession(
            session_id=session_id,
            customer_address=customer,
            merchant_address=merchant,
            service_address=service,
            amount=amount,
            allocations=allocations,
            created_at=now,
            synthesized_id=synthesized,
        ))
        logger.info("Payment session created: %s", session_id)
        return session

    async def close_session(
        self,
        session_id: str,
        final_allocations: Optional[List[Allocation]] = None,
        biometric_hash: Optional[str] = None,
    ) -> ApplicationSession:
        """
        Settle a session: by default all funds move from customer to merchant.

        Returns:
            The session, now COMPLETED

        Raises:
            SessionNotFoundError: Unknown or evicted session
            SessionAlreadyCompletedError: Already settled
            SessionCloseInProgressError: Another close for it is awaiting the ClearNode
            ClearNodeRPCError: ClearNode refused the close
        """
        session = self.sessions.get(session_id)
        if not session.is_open():
            raise SessionAlreadyCompletedError(session_id)
        if session_id in self._closing:
            raise SessionCloseInProgressError(session_id)

        allocations = list(final_allocations) if final_allocations else settlement_allocations(session)
        request = RequestEnvelope.close_app_session(
            self.identity.sign_payload,
            session_id,
            [a.to_dict() for a in allocations],
        )
        self._closing.add(session_id)
        try:
            response = await self._request(request, "close_app_session")
            if not isinstance(response, (AppSessionClosed, BalanceUpdate)):
                raise UnexpectedResponseError("close_app_session", response.method, request.request_id)

            # Settled on the ClearNode: the local record must follow even if it was swept meanwhile
            if session_id in self.sessions:
                self.sessions.complete(session_id, allocations, biometric_hash=biometric_hash)
            else:
                logger.warning("Session %s was evicted while closing; completing detached record", session_id)
                session.complete(allocations, biometric_hash=biometric_hash, now=self._clock())
        finally:
            self._closing.discard(session_id)

        logger.info("Payment session %s completed", session_id)
        return session

    async def process_payment(
        self,
        session_id: str,
        biometric_hash: str,
        merchant_name: str = "Unknown Merchant",
    ) -> PaymentReceipt:
        """Close the session, then attach reward records."""
        session = await self.close_session(session_id, biometric_hash=biometric_hash)
        rewards = generate_rewards(session)
        return PaymentReceipt.for_session(session, merchant_name, rewards)

    async def pay(
        self,
        customer_address: str,
        merchant_address: str,
        amount: Amount,
        biometric_hash: str,
        merchant_name: str = "Unknown Merchant",
    ) -> PaymentReceipt:
        """Open and settle a session in one go."""
        session = await self.create_session(customer_address, merchant_address, amount)
        return await self.process_payment(session.session_id, biometric_hash, merchant_name)

    # -- Status --------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return {
            "connected": self.connected,
            "authenticated": self.authenticated,
            "walletAddress": self.identity.address,
            "sessionKeyAddress": self.identity.session_address,
            "clearNodeUrl": self.settings.clearnode_url,
            "channelId": self.settings.channel_id,
            "activeSessions": self.sessions.open_count(),
            "totalSessions": len(self.sessions),
            "pendingRequests": len(self.correlator),
            "matchStats": dict(self.correlator.stats),
        }
