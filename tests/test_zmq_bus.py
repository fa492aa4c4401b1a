import itertools
import queue
import threading

import busrpc
import pytest
import zmq

from busrpc.transport.zmq import Broker, ZmqBus

endpoints = itertools.count()


@pytest.fixture
def context():

    # A private context per test; inproc endpoints are only visible to
    # sockets sharing the context.

    return zmq.Context()


@pytest.fixture
def broker(context):

    index = next(endpoints)
    xsub = 'inproc://busrpc-test-xsub-%d' % (index)
    xpub = 'inproc://busrpc-test-xpub-%d' % (index)

    broker = Broker(xsub, xpub, context).start()
    yield broker
    broker.stop()


@pytest.fixture
def zmq_bus(broker, context):

    bus = ZmqBus(broker.xsub_endpoint, broker.xpub_endpoint, context)
    yield bus
    bus.close()



def collect(subscription, inbox):

    thread = threading.Thread(target=lambda: [inbox.put(message) for message in subscription])
    thread.daemon = True
    thread.start()
    return thread



def first(bus, topic, inbox, payload):
    """ Subscriptions propagate through the broker asynchronously; publish
        until the first message makes it through.
    """

    for attempt in range(50):
        bus.publish(topic, payload)
        try:
            return inbox.get(timeout=0.1)
        except queue.Empty:
            continue

    raise AssertionError('no message arrived on ' + repr(topic))



def test_publish_subscribe(zmq_bus):

    inbox = queue.Queue()
    subscription = zmq_bus.subscribe('math.sum')
    collect(subscription, inbox)

    message = first(zmq_bus, 'math.sum', inbox, b'hello')
    assert message.topic == 'math.sum'
    assert message.payload == b'hello'

    subscription.close()


def test_exact_topic(zmq_bus):

    # ZeroMQ matches subscriptions by prefix; 'math.sum.reply' must not be
    # delivered to a subscriber of 'math.sum'.

    inbox = queue.Queue()
    subscription = zmq_bus.subscribe('math.sum')
    collect(subscription, inbox)

    first(zmq_bus, 'math.sum', inbox, b'warm')

    zmq_bus.publish('math.sum.reply', b'wrong')
    zmq_bus.publish('math.sum', b'right')

    message = inbox.get(timeout=2)
    assert message.payload == b'right'

    subscription.close()


def test_round_trip(zmq_bus):

    configuration = busrpc.config.Configuration(transport='zmq', timeout=0.2, workers=2)
    worker = busrpc.WorkerDispatcher(zmq_bus, busrpc.handlers.builtin(), configuration).start()
    client = busrpc.Client(zmq_bus, configuration)

    try:
        # Wait for both subscriptions to propagate through the broker.

        for attempt in range(25):
            try:
                client.request('math.sum', [1])
            except busrpc.RequestTimeout:
                continue
            break

        assert client.request('math.sum', [3, 7, 2, 9, 1], timeout=5) == 22

    finally:
        client.close()
        worker.stop()


def test_closed(zmq_bus):

    zmq_bus.close()

    with pytest.raises(busrpc.TransportError):
        zmq_bus.publish('math.sum', b'late')

    with pytest.raises(busrpc.TransportError):
        zmq_bus.subscribe('math.sum')


def test_broker_stop(context):

    broker = Broker('inproc://busrpc-test-stop-xsub', 'inproc://busrpc-test-stop-xpub', context).start()
    broker.stop()

    assert broker.thread.is_alive() == False

    # Stopping twice is harmless.
    broker.stop()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
