""" Process configuration: topic naming, bus endpoints, the consumer group
    identifier and the default request timeout. A :class:`Configuration` is
    established once at startup and is immutable thereafter.
"""

import dataclasses
import os

from . import json


@dataclasses.dataclass(frozen=True)
class Configuration:
    """ Settings shared by clients and workers. Use :func:`load` to build an
        instance from defaults, a JSON file and the environment; direct
        construction is fine for tests and embedded use.

        :ivar transport: Name of the bus backend: memory, zmq, or rabbitmq.
        :ivar brokers: Endpoint list (``host:port``) for brokered backends.
        :ivar group: Consumer group identifier used by workers.
        :ivar client_id: Human-readable prefix for this process on the bus.
        :ivar timeout: Default request timeout, in seconds.
        :ivar workers: Size of the worker-side handler thread pool.
        :ivar reply_suffix: Appended to a request topic for implicit replies.
        :ivar exchange: RabbitMQ exchange name.
        :ivar publish_endpoint: ZeroMQ endpoint publishers connect to.
        :ivar subscribe_endpoint: ZeroMQ endpoint subscribers connect to.
    """

    transport: str = 'memory'
    brokers: tuple = ('localhost:5672',)
    group: str = 'busrpc-worker'
    client_id: str = 'busrpc'
    timeout: float = 5.0
    workers: int = 8
    reply_suffix: str = '.reply'
    exchange: str = 'busrpc'
    publish_endpoint: str = 'tcp://127.0.0.1:7000'
    subscribe_endpoint: str = 'tcp://127.0.0.1:7001'

    def __post_init__(self):

        # The dataclass is frozen; normalization has to go through
        # object.__setattr__().

        brokers = self.brokers
        if isinstance(brokers, str):
            brokers = split_endpoints(brokers)
        else:
            brokers = tuple(str(broker).strip() for broker in brokers)
        object.__setattr__(self, 'brokers', brokers)

        timeout = float(self.timeout)
        if timeout <= 0:
            raise ValueError('timeout must be positive, not ' + repr(self.timeout))
        object.__setattr__(self, 'timeout', timeout)

        workers = int(self.workers)
        if workers < 1:
            raise ValueError('at least one worker thread is required')
        object.__setattr__(self, 'workers', workers)

        if self.transport not in transports:
            raise ValueError('unknown transport: ' + repr(self.transport))


    def reply_topic(self, topic):
        """ Return the implicit reply topic for requests sent to *topic*.
        """

        return topic + self.reply_suffix


# end of class Configuration


transports = ('memory', 'zmq', 'rabbitmq')

# Environment variable for each field. Anything not listed here can only be
# set via a configuration file or an explicit override.

environment = {
    'transport': 'BUSRPC_TRANSPORT',
    'brokers': 'BUSRPC_BROKERS',
    'group': 'BUSRPC_GROUP',
    'client_id': 'BUSRPC_CLIENT_ID',
    'timeout': 'BUSRPC_TIMEOUT',
    'workers': 'BUSRPC_WORKERS',
    'reply_suffix': 'BUSRPC_REPLY_SUFFIX',
    'exchange': 'BUSRPC_EXCHANGE',
    'publish_endpoint': 'BUSRPC_PUBLISH_ENDPOINT',
    'subscribe_endpoint': 'BUSRPC_SUBSCRIBE_ENDPOINT',
}



def load(path=None, environ=None, **overrides):
    """ Build a :class:`Configuration`. Values are layered, lowest priority
        first: the built-in defaults, the JSON file at *path* (or the file
        named by ``BUSRPC_CONFIG``), the ``BUSRPC_*`` environment variables,
        and finally any keyword *overrides* whose value is not None.
    """

    if environ is None:
        environ = os.environ

    settings = dict()

    if path is None:
        path = environ.get('BUSRPC_CONFIG')

    if path:
        settings.update(read_file(path))

    for field, variable in environment.items():
        try:
            value = environ[variable]
        except KeyError:
            continue
        settings[field] = value

    for field, value in overrides.items():
        if value is None:
            continue
        settings[field] = value

    known = set(field.name for field in dataclasses.fields(Configuration))
    unknown = set(settings) - known

    if unknown:
        raise ValueError('unknown configuration fields: ' + ', '.join(sorted(unknown)))

    return Configuration(**settings)



def read_file(path):
    """ Load a JSON configuration file. The top level of the file must be a
        JSON object; its keys are :class:`Configuration` field names.
    """

    with open(path, 'rb') as file:
        raw_json = file.read()

    try:
        settings = json.loads(raw_json)
    except json.DecodeError as e:
        raise ValueError("invalid JSON in %s: %s" % (path, str(e)))

    if not isinstance(settings, dict):
        raise ValueError('configuration file must contain a JSON object: ' + str(path))

    return settings



def split_endpoints(endpoints):
    """ Split a comma-separated endpoint list, dropping empty entries.
    """

    split = list()

    for endpoint in endpoints.split(','):
        endpoint = endpoint.strip()
        if endpoint:
            split.append(endpoint)

    return tuple(split)


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
