import threading

import busrpc
import pytest


def drain(subscription, count):

    received = list()
    messages = iter(subscription)

    for _ in range(count):
        received.append(next(messages))

    return received



def test_fan_out(bus):

    first = bus.subscribe('topic')
    second = bus.subscribe('topic')

    bus.publish('topic', b'one')
    bus.publish('topic', b'two')

    for subscription in (first, second):
        payloads = [message.payload for message in drain(subscription, 2)]
        assert payloads == [b'one', b'two']


def test_offsets(bus):

    subscription = bus.subscribe('topic')

    for index in range(3):
        bus.publish('topic', str(index).encode())

    messages = drain(subscription, 3)

    assert [message.metadata['offset'] for message in messages] == [0, 1, 2]
    assert all(message.topic == 'topic' for message in messages)


def test_topics_are_separate(bus):

    subscription = bus.subscribe('left')

    bus.publish('right', b'wrong')
    bus.publish('left', b'right')

    assert drain(subscription, 1)[0].payload == b'right'


def test_group_competition(bus):

    first = bus.subscribe('work', group='workers')
    second = bus.subscribe('work', group='workers')
    observer = bus.subscribe('work')

    for index in range(10):
        bus.publish('work', b'%d' % (index))

    # Every message reaches exactly one member of the group, and the
    # ungrouped subscriber sees all of them.

    received = list()
    lock = threading.Lock()

    def collect(subscription):
        for message in subscription:
            with lock:
                received.append(message.payload)
                if len(received) == 10:
                    first.close()
                    second.close()

    threads = [threading.Thread(target=collect, args=(member,)) for member in (first, second)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(5)

    assert sorted(received) == sorted(b'%d' % (index) for index in range(10))
    assert len(drain(observer, 10)) == 10


def test_group_backlog(bus):

    # Messages published while no group member is consuming are retained
    # for the next member.

    bus.subscribe('work', group='workers').close()
    bus.publish('work', b'later')

    subscription = bus.subscribe('work', group='workers')
    assert drain(subscription, 1)[0].payload == b'later'


def test_close_ends_iteration(bus):

    subscription = bus.subscribe('topic')
    finished = threading.Event()

    def consume():
        for message in subscription:
            pass
        finished.set()

    thread = threading.Thread(target=consume)
    thread.start()

    subscription.close()
    assert finished.wait(2)
    assert subscription.closed


def test_not_restartable(bus):

    subscription = bus.subscribe('topic')
    iter(subscription)

    with pytest.raises(RuntimeError):
        iter(subscription)


def test_publish_type(bus):

    with pytest.raises(TypeError):
        bus.publish('topic', 'text')


def test_closed_bus():

    bus = busrpc.transport.MemoryBus()
    bus.close()

    with pytest.raises(busrpc.TransportError):
        bus.publish('topic', b'late')

    with pytest.raises(busrpc.TransportError):
        bus.subscribe('topic')


def test_context_manager():

    with busrpc.transport.MemoryBus() as bus:
        bus.publish('topic', b'nobody listening')

    with pytest.raises(busrpc.TransportError):
        bus.publish('topic', b'late')


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
