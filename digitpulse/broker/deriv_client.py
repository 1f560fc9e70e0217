"""Deriv WebSocket API async client.

Handles all communication with Deriv: authorization, tick subscriptions,
tick history, price proposals, contract purchase and open-contract
updates.  One socket is shared by every strategy; requests are correlated
by ``req_id`` and pushes are routed by message type.
"""

import asyncio
import itertools
import json
import logging
import time
from typing import Callable, Optional

import websockets

from digitpulse.broker.errors import (
    AuthorizationError,
    BrokerConnectionError,
    BrokerError,
    BuyError,
    ProposalError,
    error_for_response,
)
from digitpulse.broker.models import (
    BuyResult,
    ContractUpdate,
    Proposal,
    ProposalRequest,
    RawTick,
)
from digitpulse.broker.subscriptions import SubscriptionManager
from digitpulse.config import Config

logger = logging.getLogger("digitpulse.broker")

_PING_INTERVAL = 30  # seconds


class DerivClient:
    """Async client wrapping the Deriv WebSocket API.

    Args:
        config: Global ``Config`` (URL, token, throttling and timeouts).
        tick_throttle: Minimum seconds between dispatched ticks per symbol.
    """

    def __init__(self, config: Config, tick_throttle: float = 0.1) -> None:
        self._config = config
        self._url = config.ws_url
        self._token = config.deriv_api_token
        self._ws = None
        self._open = False
        self._authorized = False
        self._reader: Optional[asyncio.Task] = None
        self._connect_lock = asyncio.Lock()
        self._send_lock = asyncio.Lock()
        self._last_send = 0.0
        self._req_ids = itertools.count(1)
        self._pending: dict[int, tuple[str, asyncio.Future]] = {}
        self._outbox: list[dict] = []
        self._subs = SubscriptionManager(tick_throttle=tick_throttle)
        self._contract_callbacks: dict[str, Callable[[ContractUpdate], None]] = {}
        self._contract_subs: dict[str, str] = {}
        self._orphaned_contracts: set[str] = set()

    # ── Connection ───────────────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._open

    @property
    def is_authorized(self) -> bool:
        return self.is_connected and self._authorized

    @property
    def subscriptions(self) -> SubscriptionManager:
        return self._subs

    async def connect(self) -> None:
        """Open the socket (no-op when already open) and flush queued messages.

        Raises:
            BrokerConnectionError: If the socket cannot be opened.
        """
        async with self._connect_lock:
            if self.is_connected:
                return
            try:
                self._ws = await websockets.connect(
                    self._url, ping_interval=_PING_INTERVAL,
                )
            except (OSError, websockets.exceptions.WebSocketException) as exc:
                raise BrokerConnectionError(
                    f"Could not connect to {self._url}: {exc}"
                ) from exc
            self._open = True
            self._authorized = False
            self._reader = asyncio.create_task(self._read_loop())
            logger.info("Connected to %s", self._url)

        await self._flush_outbox()

    async def authorize(self) -> dict:
        """Authorize the socket with the configured API token.

        Returns:
            The broker's ``authorize`` object (account details).

        Raises:
            AuthorizationError: If no token is configured or it is rejected.
        """
        if not self._token:
            raise AuthorizationError("No API token configured")
        resp = await self._request({"authorize": self._token})
        self._authorized = True
        account = resp.get("authorize", {})
        logger.info("Authorized account %s", account.get("loginid", "?"))
        await self._resubscribe_contracts()
        return account

    async def disconnect(self) -> None:
        """Close the socket and fail every outstanding request."""
        ws, self._ws = self._ws, None
        self._open = False
        self._authorized = False
        if self._reader is not None:
            self._reader.cancel()
            self._reader = None
        if ws is not None:
            await ws.close()
        self._fail_pending(BrokerConnectionError("Connection closed by client"))
        self._subs.clear()
        self._contract_callbacks.clear()
        self._contract_subs.clear()
        self._orphaned_contracts.clear()
        logger.info("Disconnected from %s", self._url)

    # ── Transport ────────────────────────────────────────────────────────

    async def _send(self, message: dict) -> None:
        """Send one message, spacing requests to respect broker rate limits.

        Messages sent while the socket is not open are queued and flushed
        in order on the next ``connect()``.
        """
        if not self.is_connected:
            if "forget" in message:
                # Subscription ids die with the socket.
                logger.debug("Socket not open — dropped forget %s", message["forget"])
                return
            self._outbox.append(message)
            logger.debug("Socket not open — queued %s", next(iter(message)))
            return

        loop = asyncio.get_running_loop()
        async with self._send_lock:
            wait = self._last_send + self._config.request_interval_seconds - loop.time()
            if wait > 0:
                await asyncio.sleep(wait)
            try:
                await self._ws.send(json.dumps(message))
            except websockets.exceptions.ConnectionClosed as exc:
                self._open = False
                raise BrokerConnectionError("Socket closed while sending") from exc
            self._last_send = loop.time()

    async def _flush_outbox(self) -> None:
        queued, self._outbox = self._outbox, []
        for message in queued:
            await self._send(message)
        if queued:
            logger.info("Flushed %d queued message(s)", len(queued))

    async def _request(self, payload: dict) -> dict:
        """Send a request and wait for the reply carrying the same ``req_id``.

        Raises:
            BrokerConnectionError: Socket not open, closed, or timed out.
            BrokerError: The broker answered with an ``error`` object.
        """
        msg_type = next(iter(payload))
        if not self.is_connected:
            raise BrokerConnectionError(f"Socket not open for {msg_type}")

        req_id = next(self._req_ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = (msg_type, future)
        try:
            await self._send({**payload, "req_id": req_id})
            return await asyncio.wait_for(
                future, timeout=self._config.request_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise BrokerConnectionError(f"{msg_type} request timed out") from exc
        finally:
            self._pending.pop(req_id, None)

    async def _read_loop(self) -> None:
        ws = self._ws
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("Dropping non-JSON message: %.80s", raw)
                    continue
                self.handle_message(message)
        except websockets.exceptions.ConnectionClosed as exc:
            logger.warning("Connection closed: %s", exc)
        finally:
            if self._ws is ws:
                self._connection_lost()

    def _connection_lost(self) -> None:
        """Reset session state after the broker dropped the socket.

        Tick listeners are told through their lost hooks; open contracts
        keep their callbacks and are resubscribed on the next authorize.
        """
        self._open = False
        self._authorized = False
        exc = BrokerConnectionError("Connection lost")
        self._fail_pending(exc)
        self._outbox = [m for m in self._outbox if "forget" not in m]
        self._contract_subs.clear()
        self._orphaned_contracts.update(self._contract_callbacks)
        hooks = self._subs.reset()
        logger.warning(
            "Connection to %s lost — notifying %d listener(s)", self._url, len(hooks),
        )
        for hook in hooks:
            try:
                hook(exc)
            except Exception:
                logger.exception("Connection-lost hook failed")

    def _fail_pending(self, exc: BrokerError) -> None:
        for _, future in self._pending.values():
            if not future.done():
                future.set_exception(exc)
        self._pending.clear()

    # ── Message routing ──────────────────────────────────────────────────

    def handle_message(self, message: dict) -> None:
        """Resolve the matching request and route subscription pushes."""
        req_id = message.get("req_id")
        pending = self._pending.get(req_id) if req_id is not None else None
        if pending is not None:
            expected, future = pending
            if not future.done():
                if "error" in message:
                    future.set_exception(
                        error_for_response(expected, message["error"])
                    )
                else:
                    future.set_result(message)

        if "error" in message:
            if pending is None:
                logger.warning(
                    "Broker error on %s: %s",
                    message.get("msg_type"),
                    message["error"].get("message"),
                )
            return

        msg_type = message.get("msg_type")
        if msg_type == "tick":
            self._on_tick(message)
        elif msg_type == "proposal_open_contract":
            self._on_contract(message)

    def _on_tick(self, message: dict) -> None:
        data = message.get("tick") or {}
        symbol = data.get("symbol")
        if not symbol:
            return
        sub_id = (message.get("subscription") or {}).get("id")
        if sub_id and not self._subs.subscription_id(symbol):
            self._subs.bind(symbol, sub_id)
        if not self._subs.should_process(symbol, time.monotonic()):
            return
        tick = RawTick(
            epoch=int(data.get("epoch", 0)),
            quote=data.get("quote"),
            symbol=symbol,
            pip_size=data.get("pip_size"),
        )
        self._subs.dispatch(symbol, tick)

    def _on_contract(self, message: dict) -> None:
        data = message.get("proposal_open_contract") or {}
        if "contract_id" not in data:
            return
        contract_id = str(data["contract_id"])
        sub_id = (message.get("subscription") or {}).get("id")
        if sub_id:
            self._contract_subs[contract_id] = sub_id

        callback = self._contract_callbacks.get(contract_id)
        if callback is None:
            return

        exit_tick = data.get("exit_tick")
        update = ContractUpdate(
            contract_id=contract_id,
            status=data.get("status") or "open",
            profit=float(data.get("profit") or 0.0),
            exit_tick=float(exit_tick) if exit_tick is not None else None,
            is_sold=bool(data.get("is_sold")),
        )
        if update.is_terminal:
            # Terminal status is delivered at most once per contract.
            self._contract_callbacks.pop(contract_id, None)
            asyncio.get_running_loop().create_task(
                self.forget_contract(contract_id)
            )
        try:
            callback(update)
        except Exception:
            logger.exception("Contract listener for %s failed", contract_id)

    # ── Ticks ────────────────────────────────────────────────────────────

    async def subscribe_ticks(
        self,
        symbol: str,
        on_tick: Callable[[RawTick], None],
        on_lost: Optional[Callable[[BrokerError], None]] = None,
    ) -> str:
        """Subscribe *on_tick* to live ticks of *symbol*.

        Only the first listener of a symbol opens a broker subscription;
        later listeners share it.  *on_lost* is called once if the socket
        drops; the handle is dead afterwards.

        Returns:
            A listener handle to pass to :meth:`forget`.
        """
        handle, is_new = self._subs.add_listener(symbol, on_tick, on_lost)
        if is_new:
            try:
                resp = await self._request({"ticks": symbol, "subscribe": 1})
            except BrokerError:
                self._subs.remove_listener(handle)
                raise
            sub_id = (resp.get("subscription") or {}).get("id")
            if sub_id:
                self._subs.bind(symbol, sub_id)
            logger.info("Subscribed to %s", symbol)
        else:
            logger.info("Already subscribed to %s, sharing stream", symbol)
        return handle

    async def forget(self, handle: str) -> None:
        """Release a tick listener; unsubscribes when it was the last one."""
        symbol, sub_id, was_last = self._subs.remove_listener(handle)
        if not was_last:
            return
        if sub_id:
            try:
                await self._send({"forget": sub_id})
            except BrokerConnectionError as exc:
                logger.warning("Could not forget %s (%s): %s", symbol, sub_id, exc)
        logger.info("Unsubscribed from %s", symbol)

    async def get_tick_history(self, symbol: str, count: int = 100) -> list[RawTick]:
        """Fetch the latest *count* ticks of *symbol*, oldest first."""
        resp = await self._request({
            "ticks_history": symbol,
            "count": count,
            "end": "latest",
            "style": "ticks",
        })
        history = resp.get("history") or {}
        prices = history.get("prices", [])
        times = history.get("times", [0] * len(prices))
        return [
            RawTick(epoch=int(t), quote=p, symbol=symbol)
            for t, p in zip(times, prices)
        ]

    # ── Contracts ────────────────────────────────────────────────────────

    async def get_proposal(self, request: ProposalRequest) -> Proposal:
        """Request a price proposal for a prospective contract.

        Raises:
            ProposalError: If the broker rejects the contract or the reply is
                           malformed.
        """
        resp = await self._request(request.to_payload())
        data = resp.get("proposal")
        if not data or "id" not in data:
            raise ProposalError("Invalid proposal response")
        return Proposal(
            id=str(data["id"]),
            ask_price=float(data["ask_price"]),
            payout=float(data.get("payout", 0.0)),
        )

    async def buy_contract(self, proposal_id: str, price: float) -> BuyResult:
        """Buy the contract quoted by *proposal_id* at *price*.

        Raises:
            BuyError: If the broker rejects the buy or the reply is malformed.
        """
        resp = await self._request({"buy": proposal_id, "price": price})
        data = resp.get("buy")
        if not data or "contract_id" not in data:
            raise BuyError("Buy failed")
        balance = data.get("balance_after")
        return BuyResult(
            contract_id=str(data["contract_id"]),
            buy_price=float(data.get("buy_price", price)),
            balance_after=float(balance) if balance is not None else None,
        )

    async def subscribe_proposal_open_contract(
        self,
        contract_id: str,
        on_update: Callable[[ContractUpdate], None],
    ) -> None:
        """Stream lifecycle updates of an open contract to *on_update*."""
        contract_id = str(contract_id)
        self._contract_callbacks[contract_id] = on_update
        wire_id = int(contract_id) if contract_id.isdigit() else contract_id
        try:
            await self._request({
                "proposal_open_contract": 1,
                "contract_id": wire_id,
                "subscribe": 1,
            })
        except BrokerError:
            self._contract_callbacks.pop(contract_id, None)
            raise

    async def _resubscribe_contracts(self) -> None:
        orphans, self._orphaned_contracts = self._orphaned_contracts, set()
        for contract_id in sorted(orphans):
            callback = self._contract_callbacks.get(contract_id)
            if callback is None:
                continue
            try:
                await self.subscribe_proposal_open_contract(contract_id, callback)
            except BrokerError as exc:
                logger.warning("Could not resubscribe contract %s: %s", contract_id, exc)
            else:
                logger.info("Resubscribed contract %s", contract_id)

    async def forget_contract(self, contract_id: str) -> None:
        """Stop streaming updates for *contract_id*."""
        contract_id = str(contract_id)
        self._orphaned_contracts.discard(contract_id)
        self._contract_callbacks.pop(contract_id, None)
        sub_id = self._contract_subs.pop(contract_id, None)
        if sub_id:
            try:
                await self._send({"forget": sub_id})
            except BrokerConnectionError as exc:
                logger.warning("Could not forget contract %s: %s", contract_id, exc)
