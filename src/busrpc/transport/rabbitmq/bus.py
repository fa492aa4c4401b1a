"""RabbitMQ publish/subscribe bus.

Topics are routing keys on a single topic exchange. An ungrouped subscriber
gets an exclusive, server-named queue; the members of a consumer group share
the durable queue ``<group>.<topic>`` and compete for its messages, which is
how several workers split one request topic between them.

pika connections are not thread-safe. Publishing goes through a dedicated
connection thread fed by an outbox (drained via add_callback_threadsafe);
each subscription owns its own connection, used only by the thread that
iterates over it. Deliveries are acknowledged explicitly through
:meth:`RabbitSubscription.ack` once the consumer has processed them; the
acknowledgement is handed to the iterating thread the same way.
"""

from __future__ import annotations

import concurrent.futures
import functools
import logging
import queue
import threading
from typing import Iterator, List, Optional, Sequence

import pika
import pika.exceptions

from ..base import Bus, InboundMessage, Subscription, TransportConnectionError
from ...errors import TransportError

logger = logging.getLogger(__name__)


def broker_parameters(brokers: Sequence[str]) -> List[pika.ConnectionParameters]:
    """Translate ``host:port`` endpoints into pika connection parameters.
    pika tries each of them in turn when connecting."""

    parameters = []
    for broker in brokers:
        host, _sep, port = broker.rpartition(":")
        if not host:
            host, port = port, "5672"
        parameters.append(
            pika.ConnectionParameters(
                host=host,
                port=int(port),
                heartbeat=600,
                blocked_connection_timeout=300,
            )
        )

    if not parameters:
        raise ValueError("at least one broker endpoint is required")
    return parameters


class RabbitSubscription(Subscription):

    # Seconds a blocked iteration waits before checking for close().
    inactivity_timeout = 0.25

    def __init__(self, parameters, exchange: str, topic: str, group: Optional[str] = None, prefetch: int = 1):
        Subscription.__init__(self, topic, group)

        # Queue and binding are established here, in the caller's thread,
        # so that anything published after subscribe() returns is retained.

        try:
            self._connection = pika.BlockingConnection(parameters)
            self._channel = self._connection.channel()
            self._channel.exchange_declare(exchange=exchange, exchange_type="topic", durable=False)

            if group is None:
                result = self._channel.queue_declare(queue="", exclusive=True)
            else:
                result = self._channel.queue_declare(queue=f"{group}.{topic}", durable=True)

            self._queue_name = result.method.queue
            self._channel.queue_bind(exchange=exchange, queue=self._queue_name, routing_key=topic)
            self._channel.basic_qos(prefetch_count=prefetch)
        except pika.exceptions.AMQPError as exc:
            raise TransportConnectionError(f"cannot subscribe to {topic!r}: {exc!r}") from exc

    def _messages(self) -> Iterator[InboundMessage]:
        consumer = self._channel.consume(self._queue_name, inactivity_timeout=self.inactivity_timeout)

        try:
            for method, properties, body in consumer:
                if self.closed:
                    break
                if method is None:
                    continue

                yield InboundMessage(
                    topic=self.topic,
                    payload=body,
                    metadata={
                        "delivery_tag": method.delivery_tag,
                        "redelivered": method.redelivered,
                    },
                )
        except pika.exceptions.AMQPError as exc:
            raise TransportError(f"subscription to {self.topic!r} failed: {exc!r}") from exc
        finally:
            self._shutdown()

    def ack(self, message: InboundMessage) -> None:
        """Acknowledge *message* once its consumer is done with it. Any
        delivery not acknowledged when the connection drops is redelivered.

        May be called from any thread; the channel is only touched on the
        thread iterating over this subscription.
        """

        tag = message.metadata.get("delivery_tag")
        if tag is None:
            return

        try:
            self._connection.add_callback_threadsafe(functools.partial(self._ack, tag))
        except pika.exceptions.AMQPError:
            # The connection is gone, and the broker will redeliver.
            logger.debug("cannot acknowledge delivery %s on %r", tag, self.topic, exc_info=True)

    def _ack(self, tag: int) -> None:
        try:
            self._channel.basic_ack(delivery_tag=tag)
        except pika.exceptions.AMQPError:
            logger.debug("acknowledgement of delivery %s on %r failed", tag, self.topic, exc_info=True)

    def _shutdown(self) -> None:
        try:
            if self._channel.is_open:
                self._channel.cancel()
            if self._connection.is_open:
                self._connection.close()
        except pika.exceptions.AMQPError:
            logger.debug("error closing subscription to %r", self.topic, exc_info=True)


class RabbitBus(Bus):
    """Publish and subscribe through a RabbitMQ topic exchange."""

    # Seconds to wait for the connection thread to hand a message to the
    # broker before reporting a TransportError.
    publish_timeout = 5.0

    def __init__(self, brokers: Sequence[str], exchange: str = "busrpc", connect_timeout: float = 10.0, prefetch: int = 1):
        self.exchange = exchange
        self.prefetch = prefetch
        self._parameters = broker_parameters(brokers)

        self._outbox: queue.SimpleQueue = queue.SimpleQueue()
        self._ready = threading.Event()
        self._closed = threading.Event()
        self._connection = None
        self._channel = None
        self._error: Optional[BaseException] = None

        self._thread = threading.Thread(target=self._run, name="busrpc-rabbitmq", daemon=True)
        self._thread.start()
        self._ready.wait(timeout=connect_timeout)

        if self._error is not None:
            raise TransportConnectionError(f"cannot connect to AMQP broker: {self._error!r}")
        if self._connection is None:
            raise TransportConnectionError(f"no AMQP connection after {connect_timeout:.1f} sec")

    def _run(self) -> None:
        try:
            self._connection = pika.BlockingConnection(self._parameters)
            self._channel = self._connection.channel()
            self._channel.exchange_declare(exchange=self.exchange, exchange_type="topic", durable=False)
        except pika.exceptions.AMQPError as exc:
            self._error = exc
            self._connection = None
            self._ready.set()
            return

        self._ready.set()

        try:
            while not self._closed.is_set():
                self._connection.process_data_events(time_limit=1)
        except pika.exceptions.AMQPError as exc:
            self._error = exc
            logger.error("AMQP publisher connection lost: %r", exc)
        finally:
            self._fail_outbox()
            if self._connection.is_open:
                self._connection.close()

    def _flush(self) -> None:
        """Drain all queued outgoing messages (called on the connection
        thread via add_callback_threadsafe)."""

        while True:
            try:
                topic, payload, future = self._outbox.get_nowait()
            except queue.Empty:
                break

            try:
                self._channel.basic_publish(exchange=self.exchange, routing_key=topic, body=payload)
            except pika.exceptions.AMQPError as exc:
                future.set_exception(TransportError(f"publish to {topic!r} failed: {exc!r}"))
            else:
                future.set_result(None)

    def _fail_outbox(self) -> None:
        while True:
            try:
                topic, _payload, future = self._outbox.get_nowait()
            except queue.Empty:
                break
            future.set_exception(TransportError(f"publish to {topic!r} failed: connection closed"))

    def publish(self, topic: str, payload: bytes) -> None:
        if self._closed.is_set() or self._error is not None:
            raise TransportError(f"cannot publish to {topic!r}: not connected")

        future: concurrent.futures.Future = concurrent.futures.Future()
        self._outbox.put((topic, payload, future))

        try:
            self._connection.add_callback_threadsafe(self._flush)
        except pika.exceptions.AMQPError as exc:
            raise TransportError(f"cannot publish to {topic!r}: {exc!r}") from exc

        try:
            future.result(timeout=self.publish_timeout)
        except concurrent.futures.TimeoutError as exc:
            raise TransportError(f"publish to {topic!r}: no confirmation in {self.publish_timeout:.2f} sec") from exc

    def subscribe(self, topic: str, group: Optional[str] = None) -> RabbitSubscription:
        if self._closed.is_set():
            raise TransportError(f"cannot subscribe to {topic!r}: bus is closed")
        return RabbitSubscription(self._parameters, self.exchange, topic, group, self.prefetch)

    def close(self) -> None:
        self._closed.set()
        self._thread.join(timeout=2)
