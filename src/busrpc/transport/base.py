"""Transport interface.

This is the (small) contract that bus implementations should follow. It
lives outside :mod:`busrpc.protocol` so the protocol remains
transport-agnostic, and it knows nothing about correlation: a bus moves
opaque bytes between named topics.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional

from ..errors import TransportError


class TransportConnectionError(TransportError):
    """The transport could not establish or maintain a connection."""


@dataclass(frozen=True)
class InboundMessage:
    """One delivery from a subscription.

    *metadata* carries whatever the bus assigns to a delivery (partition,
    offset, delivery tag); the correlation core never looks inside it.
    """

    topic: str
    payload: bytes
    metadata: Dict[str, Any] = field(default_factory=dict)


class Subscription(ABC):
    """Lazy, infinite, non-restartable sequence of inbound messages.

    Iteration ends only after :meth:`close`. Only one thread should iterate
    over a given subscription.
    """

    def __init__(self, topic: str, group: Optional[str] = None):
        self.topic = topic
        self.group = group
        self._closed = threading.Event()
        self._started = False

    def __iter__(self) -> Iterator[InboundMessage]:
        if self._started:
            raise RuntimeError(f"subscription to {self.topic!r} cannot be restarted")
        self._started = True
        return self._messages()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        """Stop delivery; a thread blocked in iteration returns shortly."""
        self._closed.set()

    def ack(self, message: InboundMessage) -> None:
        """Tell the bus that *message* has been processed.

        Consumers call this once they are done with a delivery, from any
        thread. Buses without acknowledgements ignore it.
        """

    @abstractmethod
    def _messages(self) -> Iterator[InboundMessage]:
        """Generator yielding deliveries until the subscription is closed."""


class Bus(ABC):
    """Minimal contract for a publish/subscribe bus."""

    @abstractmethod
    def publish(self, topic: str, payload: bytes) -> None:
        """Publish *payload* on *topic*; raise TransportError on failure."""

    @abstractmethod
    def subscribe(self, topic: str, group: Optional[str] = None) -> Subscription:
        """Subscribe to *topic*.

        Messages published after this call returns are delivered to the
        subscription. Subscribers sharing a *group* compete for messages;
        a subscriber without a group receives every message.
        """

    def close(self) -> None:
        """Release any connections held by the bus."""

    def __enter__(self) -> "Bus":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
