import busrpc
import pytest

from busrpc.transport import InboundMessage, Subscription
from busrpc.transport.rabbitmq.bus import RabbitBus, RabbitSubscription, broker_parameters


def test_broker_parameters():

    parameters = broker_parameters(['localhost:5672', 'rabbit.example.com:5673', 'bare'])

    assert [(p.host, p.port) for p in parameters] == [
        ('localhost', 5672),
        ('rabbit.example.com', 5673),
        ('bare', 5672),
    ]


def test_no_brokers():

    with pytest.raises(ValueError):
        broker_parameters([])


class Connection:

    def __init__(self):
        self.callbacks = list()

    def add_callback_threadsafe(self, callback):
        self.callbacks.append(callback)



class Channel:

    def __init__(self):
        self.acked = list()

    def basic_ack(self, delivery_tag):
        self.acked.append(delivery_tag)



def test_ack_runs_on_connection_thread():

    # Skip the constructor, which needs a live broker; only the
    # acknowledgement path is exercised here.

    subscription = RabbitSubscription.__new__(RabbitSubscription)
    Subscription.__init__(subscription, 'math.sum', 'workers')
    subscription._connection = Connection()
    subscription._channel = Channel()

    message = InboundMessage(topic='math.sum', payload=b'{}', metadata={'delivery_tag': 7})
    subscription.ack(message)

    # Nothing touches the channel until the connection's own thread runs
    # the queued callback.

    assert subscription._channel.acked == []
    assert len(subscription._connection.callbacks) == 1

    subscription._connection.callbacks[0]()
    assert subscription._channel.acked == [7]

    # Deliveries without a tag are not acknowledged at all.
    subscription.ack(InboundMessage(topic='math.sum', payload=b'{}'))
    assert len(subscription._connection.callbacks) == 1


def test_prefetch_follows_workers(monkeypatch):

    created = dict()

    class Recorder:
        def __init__(self, brokers, exchange, prefetch):
            created.update(brokers=brokers, exchange=exchange, prefetch=prefetch)

    monkeypatch.setattr(busrpc.transport.rabbitmq, 'RabbitBus', Recorder)

    configuration = busrpc.config.Configuration(transport='rabbitmq', workers=3)
    busrpc.transport.bus(configuration)

    # Every handler slot of a worker can hold an unacknowledged delivery.
    assert created['prefetch'] == 6
    assert created['exchange'] == 'busrpc'


def test_connection_refused():

    # Nothing listens on port 1; the bus reports the failure at construction.

    with pytest.raises(busrpc.transport.TransportConnectionError):
        RabbitBus(['127.0.0.1:1'], connect_timeout=5.0)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
