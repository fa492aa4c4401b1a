import busrpc
import pytest


@pytest.fixture
def bus():

    bus = busrpc.transport.MemoryBus()
    yield bus
    bus.close()


@pytest.fixture
def configuration():

    # Short enough that a lost reply fails a test quickly, long enough that
    # a loaded CI machine does not time out a healthy round trip.

    return busrpc.config.Configuration(timeout=2.0, workers=4)


@pytest.fixture
def registry():

    registry = busrpc.Registry()
    registry.register('sum', busrpc.handlers.accumulate)
    return registry


@pytest.fixture
def worker(bus, registry, configuration):

    worker = busrpc.WorkerDispatcher(bus, registry, configuration, topics=('sum',))
    worker.start()
    yield worker
    worker.stop()


@pytest.fixture
def client(bus, configuration):

    client = busrpc.Client(bus, configuration)
    yield client
    client.close()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
