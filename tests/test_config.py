import busrpc
import pytest

from busrpc import config


def test_defaults():

    configuration = config.load(environ={})

    assert configuration == config.Configuration()
    assert configuration.transport == 'memory'
    assert configuration.timeout == 5.0
    assert configuration.workers == 8
    assert configuration.brokers == ('localhost:5672',)


def test_environment():

    environ = dict()
    environ['BUSRPC_TRANSPORT'] = 'zmq'
    environ['BUSRPC_TIMEOUT'] = '0.5'
    environ['BUSRPC_WORKERS'] = '3'
    environ['BUSRPC_BROKERS'] = 'one:9092, two:9092,,'
    environ['BUSRPC_GROUP'] = 'math-consumer'

    configuration = config.load(environ=environ)

    assert configuration.transport == 'zmq'
    assert configuration.timeout == 0.5
    assert configuration.workers == 3
    assert configuration.brokers == ('one:9092', 'two:9092')
    assert configuration.group == 'math-consumer'


def test_file(tmp_path):

    path = tmp_path / 'busrpc.json'
    path.write_text('{"client_id": "math", "timeout": 1.5, "brokers": ["a:1", "b:2"]}')

    configuration = config.load(str(path), environ={})

    assert configuration.client_id == 'math'
    assert configuration.timeout == 1.5
    assert configuration.brokers == ('a:1', 'b:2')


def test_file_from_environment(tmp_path):

    path = tmp_path / 'busrpc.json'
    path.write_text('{"group": "from-file", "workers": 2}')

    environ = {'BUSRPC_CONFIG': str(path), 'BUSRPC_WORKERS': '6'}
    configuration = config.load(environ=environ)

    # The environment takes precedence over the file.
    assert configuration.group == 'from-file'
    assert configuration.workers == 6


def test_overrides():

    environ = {'BUSRPC_TRANSPORT': 'zmq'}

    configuration = config.load(environ=environ, transport='rabbitmq', timeout=None)
    assert configuration.transport == 'rabbitmq'
    assert configuration.timeout == 5.0


def test_invalid_values():

    with pytest.raises(ValueError):
        config.Configuration(transport='kafka')

    with pytest.raises(ValueError):
        config.Configuration(timeout=0)

    with pytest.raises(ValueError):
        config.Configuration(workers=0)

    with pytest.raises(ValueError):
        config.load(environ={'BUSRPC_TIMEOUT': 'soon'})


def test_unknown_fields(tmp_path):

    path = tmp_path / 'busrpc.json'
    path.write_text('{"colour": "blue"}')

    with pytest.raises(ValueError) as caught:
        config.load(str(path), environ={})

    assert 'colour' in str(caught.value)


def test_invalid_file(tmp_path):

    path = tmp_path / 'busrpc.json'

    path.write_text('[1, 2, 3]')
    with pytest.raises(ValueError):
        config.load(str(path), environ={})

    path.write_text('{"timeout": ')
    with pytest.raises(ValueError):
        config.load(str(path), environ={})


def test_immutable():

    configuration = config.Configuration()

    with pytest.raises(AttributeError):
        configuration.timeout = 1


def test_reply_topic():

    assert config.Configuration().reply_topic('math.sum') == 'math.sum.reply'
    assert config.Configuration(reply_suffix='-out').reply_topic('math.sum') == 'math.sum-out'


def test_bus_factory():

    configuration = config.Configuration(transport='memory')
    bus = busrpc.transport.bus(configuration)

    assert isinstance(bus, busrpc.transport.MemoryBus)
    bus.close()


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
