"""Channel - multiplexed request/response over a fire-and-forget transport

Envelopes on the wire:
    {"kind": "request", "id": int, "payload": ...}
    {"kind": "response", "id": int, "ok": bool, "payload": ...}
    {"kind": "notification", "payload": ...}

RESPONSIBILITY:
- Correlate replies with requests by transaction id
- Race request handlers; the first settled outcome is the reply
- Evict transactions that never get a reply (two-phase liveness sweep)

DOES NOT:
- Interpret payloads (handlers do)
- Retry anything

INVARIANT:
- A pending transaction is settled at most once
- Handler exceptions never escape into the transport
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from .exceptions import (
    DisconnectedError,
    RemoteError,
    RequestTimeoutError,
    TransportClosedError,
    describe_error,
)
from .transport import ListenerList, Sender, Transport


MAX_TRANSACTION_ID = 2 ** 53 - 1

STALE_POLICIES = ("reject", "drop")


@dataclass
class PendingTransaction:
    """A request waiting for its response."""
    transaction_id: int
    future: asyncio.Future
    stale: bool = False


def _consume_outcome(future: asyncio.Future) -> None:
    # Retrieve the exception of a discarded outcome so asyncio does not
    # report it as never retrieved.
    if not future.cancelled():
        future.exception()


def _log_task_error(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logging.warning(f"Notification handler failed: {error}")


async def first_settled(awaitables: Iterable[Any]) -> Any:
    """Return the outcome of whichever awaitable settles first.

    Awaitables that have already settled win in list order. Outcomes that
    settle later are discarded, never awaited by the caller.
    """
    futures = [asyncio.ensure_future(aw) for aw in awaitables]
    if not futures:
        raise ValueError("first_settled() needs at least one awaitable")

    winner = next((f for f in futures if f.done()), None)
    if winner is None:
        done, _ = await asyncio.wait(futures, return_when=asyncio.FIRST_COMPLETED)
        winner = next(f for f in futures if f in done)

    for future in futures:
        if future is winner:
            continue
        if future.done():
            _consume_outcome(future)
        else:
            future.add_done_callback(_consume_outcome)

    return winner.result()


class Channel:
    """Bidirectional request/response and notification endpoint.

    Usage:
        channel = Channel(transport)
        channel.on_request.add_listener(handler)       # handler(payload, sender)
        channel.on_notification.add_listener(handler)  # handler(payload, sender)
        reply = await channel.request({"command": "collectHint"})
        channel.notify({"command": "changeMode", "mode": "HINT"})
    """

    def __init__(
        self,
        transport: Transport,
        sweep_interval: Optional[float] = 20.0,
        stale_policy: str = "reject",
        name: str = "",
    ):
        if stale_policy not in STALE_POLICIES:
            raise ValueError(f"Unknown stale policy: {stale_policy}")
        self.name = name
        self.sweep_interval = sweep_interval
        self.stale_policy = stale_policy
        self.on_request = ListenerList()
        self.on_notification = ListenerList()
        self.on_disconnect = ListenerList()

        self._transport: Optional[Transport] = transport
        self._sender = transport.sender
        self._pending: Dict[int, PendingTransaction] = {}
        self._last_id = 0
        self._closed = False
        self._sweep_task: Optional[asyncio.Task] = None

        transport.on_message.add_listener(self._on_message)
        transport.on_disconnect.add_listener(self._on_transport_disconnect)

    @property
    def sender(self) -> Optional[Sender]:
        return self._sender

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # =========================================================================
    # OUTBOUND
    # =========================================================================

    def request(self, payload: Any) -> asyncio.Future:
        """Send a request and return a future for its reply.

        The future is returned without awaiting, so callers can issue
        several requests before joining on them.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        if self._closed:
            future.set_exception(DisconnectedError(f"channel {self.name} is disconnected"))
            return future

        transaction_id = self._allocate_id()
        self._pending[transaction_id] = PendingTransaction(transaction_id, future)
        self._ensure_sweeper()

        try:
            self._transport.post_message(
                {"kind": "request", "id": transaction_id, "payload": payload}
            )
        except TransportClosedError as e:
            self._pending.pop(transaction_id, None)
            future.set_exception(DisconnectedError(str(e)))
        return future

    def notify(self, payload: Any) -> None:
        """Send a notification. Nothing is tracked and nothing comes back."""
        if self._closed:
            logging.debug(f"Channel {self.name}: notify on closed channel dropped")
            return
        try:
            self._transport.post_message({"kind": "notification", "payload": payload})
        except TransportClosedError:
            logging.debug(f"Channel {self.name}: transport closed, notification dropped")

    def _allocate_id(self) -> int:
        candidate = self._last_id
        while True:
            candidate = candidate + 1 if candidate < MAX_TRANSACTION_ID else 1
            if candidate not in self._pending:
                self._last_id = candidate
                return candidate

    # =========================================================================
    # INBOUND
    # =========================================================================

    def _on_message(self, message: Any) -> None:
        if not isinstance(message, dict):
            logging.warning(f"Channel {self.name}: non-envelope message dropped")
            return

        kind = message.get("kind")
        if kind == "request":
            self._handle_request(message.get("id"), message.get("payload"))
        elif kind == "response":
            self._handle_response(
                message.get("id"), message.get("ok", False), message.get("payload")
            )
        elif kind == "notification":
            self._handle_notification(message.get("payload"))
        else:
            logging.warning(f"Channel {self.name}: unknown envelope kind {kind!r}")

    def _handle_request(self, transaction_id: Any, payload: Any) -> None:
        handlers = list(self.on_request)
        if not handlers:
            self._reply(transaction_id, False, {
                "type": "NoHandler",
                "message": "no request handler is registered",
            })
            return

        loop = asyncio.get_running_loop()
        outcomes = []
        for handler in handlers:
            try:
                result = handler(payload, self._sender)
            except Exception as e:
                outcome = loop.create_future()
                outcome.set_exception(e)
            else:
                if inspect.isawaitable(result):
                    outcome = asyncio.ensure_future(result)
                else:
                    outcome = loop.create_future()
                    outcome.set_result(result)
            outcomes.append(outcome)

        race = asyncio.ensure_future(first_settled(outcomes))
        race.add_done_callback(lambda task: self._reply_from(transaction_id, task))

    def _reply_from(self, transaction_id: Any, task: asyncio.Future) -> None:
        if task.cancelled():
            self._reply(transaction_id, False, {"type": "Cancelled", "message": "handler cancelled"})
            return
        error = task.exception()
        if error is not None:
            self._reply(transaction_id, False, describe_error(error))
        else:
            self._reply(transaction_id, True, task.result())

    def _reply(self, transaction_id: Any, ok: bool, payload: Any) -> None:
        if self._closed:
            logging.debug(f"Channel {self.name}: reply to {transaction_id} dropped, channel closed")
            return
        envelope = {"kind": "response", "id": transaction_id, "ok": ok, "payload": payload}
        try:
            self._transport.post_message(envelope)
        except TransportClosedError:
            logging.debug(f"Channel {self.name}: transport closed before reply {transaction_id}")
        except (TypeError, ValueError) as e:
            logging.warning(f"Channel {self.name}: reply {transaction_id} is not serializable: {e}")
            self._transport.post_message({
                "kind": "response",
                "id": transaction_id,
                "ok": False,
                "payload": {"type": type(e).__name__, "message": str(e)},
            })

    def _handle_response(self, transaction_id: Any, ok: bool, payload: Any) -> None:
        transaction = self._pending.pop(transaction_id, None)
        if transaction is None:
            logging.warning(f"Channel {self.name}: response for unknown transaction {transaction_id}")
            return
        if transaction.future.done():
            return
        if ok:
            transaction.future.set_result(payload)
        else:
            transaction.future.set_exception(RemoteError(payload))

    def _handle_notification(self, payload: Any) -> None:
        for handler in self.on_notification:
            try:
                result = handler(payload, self._sender)
                if inspect.isawaitable(result):
                    asyncio.ensure_future(result).add_done_callback(_log_task_error)
            except Exception as e:
                logging.warning(f"Channel {self.name}: notification handler failed: {e}")

    # =========================================================================
    # LIVENESS SWEEP
    # =========================================================================

    def sweep(self) -> int:
        """Run one sweep pass. Returns the number of evicted transactions.

        First pass marks a transaction stale; a second pass evicts it.
        """
        evicted = 0
        for transaction_id, transaction in list(self._pending.items()):
            if not transaction.stale:
                transaction.stale = True
                continue
            del self._pending[transaction_id]
            evicted += 1
            logging.warning(f"Channel {self.name}: transaction {transaction_id} evicted as stale")
            if self.stale_policy == "reject" and not transaction.future.done():
                transaction.future.set_exception(RequestTimeoutError(transaction_id))
        return evicted

    def _ensure_sweeper(self) -> None:
        if not self.sweep_interval or self._sweep_task is not None:
            return
        self._sweep_task = asyncio.ensure_future(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    # =========================================================================
    # TEARDOWN
    # =========================================================================

    def disconnect(self) -> None:
        """Close the transport and release every listener on it."""
        if self._closed:
            return
        transport = self._transport
        self._teardown(f"channel {self.name} disconnected")
        if transport is not None:
            transport.disconnect()

    def _on_transport_disconnect(self) -> None:
        if self._closed:
            return
        self._teardown(f"peer of channel {self.name} disconnected")
        for listener in self.on_disconnect:
            try:
                listener(self)
            except Exception as e:
                logging.warning(f"Channel {self.name}: disconnect listener failed: {e}")

    def _teardown(self, reason: str) -> None:
        self._closed = True
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            self._sweep_task = None

        pending, self._pending = self._pending, {}
        for transaction in pending.values():
            if not transaction.future.done():
                transaction.future.set_exception(DisconnectedError(reason))

        if self._transport is not None:
            self._transport.on_message.remove_listener(self._on_message)
            self._transport.on_disconnect.remove_listener(self._on_transport_disconnect)
            self._transport = None
