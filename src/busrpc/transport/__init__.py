"""Transport layer implementations."""

from ..errors import TransportError
from .base import (
    Bus,
    InboundMessage,
    Subscription,
    TransportConnectionError,
)
from .memory import MemoryBus


def bus(configuration):
    """ Return a new :class:`Bus` for the backend named by
        *configuration.transport*. The brokered backends are imported on
        demand so that a memory-only process never loads them.
    """

    backend = configuration.transport

    if backend == "memory":
        return MemoryBus()

    if backend == "zmq":
        from .zmq import ZmqBus
        return ZmqBus(configuration.publish_endpoint, configuration.subscribe_endpoint)

    if backend == "rabbitmq":
        from .rabbitmq import RabbitBus
        # Unacknowledged deliveries in flight: enough to keep every handler
        # slot of a worker busy.
        prefetch = configuration.workers * 2
        return RabbitBus(configuration.brokers, exchange=configuration.exchange, prefetch=prefetch)

    raise ValueError(f"unknown transport backend: {backend!r}")
