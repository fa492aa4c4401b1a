"""ZeroMQ publish/subscribe bus.

Publishers connect a PUB socket to the XSUB side of a forwarding broker
(see :mod:`busrpc.transport.zmq.broker`); subscribers connect SUB sockets to
its XPUB side. Multipart framing:

    topic, envelope_bytes

ZeroMQ has no notion of a consumer group: every subscriber receives every
message, so a request published to a topic served by several workers is
processed once per worker. The client-side correlation table tolerates the
resulting duplicate replies.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Iterator, Optional

import zmq

from ..base import Bus, InboundMessage, Subscription, TransportConnectionError
from ...errors import TransportError

logger = logging.getLogger(__name__)


def _poll_flush(socket: zmq.Socket, timeout: float = 0.01) -> None:
    """Poll the socket in an effort to make sure we're fully connected
    before proceeding. This is not deterministic, but it fixes the odd
    PUB/SUB 'miss' where the first messages after a connect or a new
    subscription never arrive. The *timeout* is in seconds.
    """

    poller = zmq.Poller()
    poller.register(socket, zmq.POLLIN | zmq.POLLOUT)
    poller.poll(timeout * 1000)


class ZmqSubscription(Subscription):
    """SUB socket bound to exactly one topic."""

    # Milliseconds a blocked iteration waits before checking for close().
    poll_timeout = 100

    def __init__(self, context: zmq.Context, endpoint: str, topic: str, group: Optional[str] = None):
        Subscription.__init__(self, topic, group)

        self._topic_bytes = topic.encode()
        self._sequence = itertools.count()

        self.socket = context.socket(zmq.SUB)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.setsockopt(zmq.RCVHWM, 10000)

        try:
            self.socket.connect(endpoint)
        except zmq.ZMQError as exc:
            self.socket.close(0)
            raise TransportConnectionError(f"cannot connect to {endpoint}: {exc}") from exc

        # ZeroMQ subscriptions are prefix matches; the exact topic check
        # happens on receipt.
        self.socket.setsockopt(zmq.SUBSCRIBE, self._topic_bytes)
        _poll_flush(self.socket)

    def _messages(self) -> Iterator[InboundMessage]:
        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)

        try:
            while not self.closed:
                for active, _flag in poller.poll(self.poll_timeout):
                    if active != self.socket:
                        continue

                    parts = self.socket.recv_multipart()
                    if len(parts) != 2:
                        logger.warning("dropping %d-part message on %r", len(parts), self.topic)
                        continue

                    topic, payload = parts
                    if topic != self._topic_bytes:
                        continue

                    yield InboundMessage(
                        topic=self.topic,
                        payload=payload,
                        metadata={"sequence": next(self._sequence)},
                    )
        finally:
            self.socket.close(0)


class ZmqBus(Bus):
    """PUB/SUB client of an XSUB/XPUB forwarding broker."""

    def __init__(self, publish_endpoint: str, subscribe_endpoint: str, context: Optional[zmq.Context] = None):
        self.publish_endpoint = publish_endpoint
        self.subscribe_endpoint = subscribe_endpoint
        self.context = context or zmq.Context.instance()

        self.socket = self.context.socket(zmq.PUB)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.setsockopt(zmq.SNDHWM, 10000)

        try:
            self.socket.connect(publish_endpoint)
        except zmq.ZMQError as exc:
            self.socket.close(0)
            raise TransportConnectionError(f"cannot connect to {publish_endpoint}: {exc}") from exc

        # The lock around the ZeroMQ socket is necessary in a multithreaded
        # application; otherwise, if two different threads both invoke
        # send_multipart(), the message parts can and will get mixed together.

        self.socket_lock = threading.Lock()
        self._closed = False
        _poll_flush(self.socket)

    def publish(self, topic: str, payload: bytes) -> None:
        with self.socket_lock:
            if self._closed:
                raise TransportError(f"cannot publish to {topic!r}: bus is closed")
            try:
                self.socket.send_multipart((topic.encode(), payload))
            except zmq.ZMQError as exc:
                raise TransportError(f"publish to {topic!r} failed: {exc}") from exc

    def subscribe(self, topic: str, group: Optional[str] = None) -> ZmqSubscription:
        if self._closed:
            raise TransportError(f"cannot subscribe to {topic!r}: bus is closed")
        if group is not None:
            logger.debug("consumer group %r ignored on ZeroMQ topic %r", group, topic)
        return ZmqSubscription(self.context, self.subscribe_endpoint, topic, group)

    def close(self) -> None:
        with self.socket_lock:
            if not self._closed:
                self._closed = True
                self.socket.close(0)
