"""Fire-and-forget transports

A Transport only knows how to post one message to its peer and how to
tell its listeners that the peer went away. Request/response semantics
are layered on top by Channel.

RESPONSIBILITY:
- Deliver JSON-compatible messages to the peer, never synchronously
- Notify local listeners when the PEER disconnects

DOES NOT:
- Correlate replies (Channel's job)
- Guarantee ordering or exactly-once delivery to callers
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from .exceptions import TransportClosedError


@dataclass(frozen=True)
class Sender:
    """What a receiving context knows about the other end."""
    tab_id: Optional[int] = None
    is_top: bool = False
    url: str = ""


class ListenerList:
    """Ordered set of callbacks with snapshot iteration."""

    def __init__(self):
        self._listeners: List[Callable] = []

    def add_listener(self, listener: Callable) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def has_listener(self, listener: Callable) -> bool:
        return listener in self._listeners

    def clear(self) -> None:
        self._listeners.clear()

    def __iter__(self):
        return iter(list(self._listeners))

    def __len__(self) -> int:
        return len(self._listeners)


class Transport(ABC):
    """One end of a one-way-per-message connection.

    Listeners:
    - on_message(message: dict)
    - on_disconnect()  (fired only when the peer goes away)
    """

    def __init__(self, sender: Optional[Sender] = None):
        self.sender = sender
        self.on_message = ListenerList()
        self.on_disconnect = ListenerList()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def post_message(self, message: Dict[str, Any]) -> None:
        """Send a message without waiting for delivery.

        Raises:
            TransportClosedError: if this end was already closed
        """
        raise NotImplementedError

    @abstractmethod
    def disconnect(self) -> None:
        """Close this end. The peer observes on_disconnect."""
        raise NotImplementedError

    def _dispatch(self, message: Dict[str, Any]) -> None:
        for listener in self.on_message:
            try:
                listener(message)
            except Exception as e:
                logging.warning(f"Transport listener failed: {e}")

    def _fire_disconnect(self) -> None:
        for listener in self.on_disconnect:
            try:
                listener()
            except Exception as e:
                logging.warning(f"Transport disconnect listener failed: {e}")


class LocalTransport(Transport):
    """In-process transport pair.

    Payloads are structured-cloned (JSON round trip) so neither side can
    hold a live reference to the other side's objects. Delivery is
    deferred to the running event loop.
    """

    def __init__(self, sender: Optional[Sender] = None):
        super().__init__(sender)
        self._peer: Optional["LocalTransport"] = None

    @classmethod
    def pair(
        cls,
        sender_a: Optional[Sender] = None,
        sender_b: Optional[Sender] = None,
    ) -> Tuple["LocalTransport", "LocalTransport"]:
        """Create two connected ends.

        sender_a describes end A as seen from end B, and vice versa.
        """
        a = cls(sender=sender_b)
        b = cls(sender=sender_a)
        a._peer = b
        b._peer = a
        return a, b

    def post_message(self, message: Dict[str, Any]) -> None:
        if self._closed:
            raise TransportClosedError("transport is closed")
        data = json.loads(json.dumps(message))
        peer = self._peer
        if peer is None or peer.closed:
            logging.debug("LocalTransport: peer gone, message dropped")
            return
        asyncio.get_running_loop().call_soon(peer._deliver, data)

    def _deliver(self, message: Dict[str, Any]) -> None:
        if self._closed:
            return
        self._dispatch(message)

    def disconnect(self) -> None:
        if self._closed:
            return
        self._closed = True
        peer = self._peer
        self._peer = None
        if peer is not None and not peer.closed:
            try:
                asyncio.get_running_loop().call_soon(peer._peer_disconnected)
            except RuntimeError:
                peer._peer_disconnected()

    def _peer_disconnected(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._peer = None
        self._fire_disconnect()
