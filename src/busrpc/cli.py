""" Command line entry point: ``busrpc broker``, ``busrpc worker`` and
    ``busrpc call``.
"""

import argparse
import logging
import random
import sys

from . import config
from . import handlers
from . import transport
from .client import Client
from .errors import BusRpcError
from .worker import Worker

logger = logging.getLogger(__name__)


def main(argv=None):

    parser = build_parser()
    arguments = parser.parse_args(argv)

    if arguments.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    try:
        configuration = config.load(arguments.config, transport=arguments.transport)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    return arguments.command(configuration, arguments)



def build_parser():

    description = 'Request/response over a publish/subscribe bus.'
    parser = argparse.ArgumentParser(prog='busrpc', description=description)

    parser.add_argument('--config', help='JSON configuration file; defaults to $BUSRPC_CONFIG')
    parser.add_argument('--transport', choices=config.transports, help='bus backend; overrides the configuration')
    parser.add_argument('-v', '--verbose', action='store_true', help='log debug messages')

    commands = parser.add_subparsers(dest='subcommand', required=True)

    broker = commands.add_parser('broker', help='run the ZeroMQ forwarding broker')
    broker.add_argument('--xsub', default='tcp://*:7000', help='endpoint publishers connect to')
    broker.add_argument('--xpub', default='tcp://*:7001', help='endpoint subscribers connect to')
    broker.set_defaults(command=run_broker)

    worker = commands.add_parser('worker', help='serve the built-in operations')
    worker.add_argument('--topic', action='append', dest='topics', help='request topic to consume; may be repeated')
    worker.add_argument('--delay', type=float, default=0.0, help='seconds of simulated work per request')
    worker.set_defaults(command=run_worker)

    call = commands.add_parser('call', help='send one request and print the result')
    call.add_argument('topic', help='request topic, for example math.sum')
    call.add_argument('numbers', nargs='*', type=number, help='payload values')
    call.add_argument('--random', type=int, metavar='N', help='send N random integers between 1 and 30 instead')
    call.add_argument('--operation', help='operation name, if different from the topic')
    call.add_argument('--timeout', type=float, help='seconds to wait for the reply')
    call.set_defaults(command=run_call)

    return parser



def number(text):
    """ argparse type for payload values: integers stay integers.
    """

    try:
        return int(text)
    except ValueError:
        pass

    try:
        return float(text)
    except ValueError:
        raise argparse.ArgumentTypeError('not a number: ' + repr(text))



def run_broker(configuration, arguments):

    from .transport.zmq import Broker

    broker = Broker(arguments.xsub, arguments.xpub).start()

    try:
        broker.wait()
    except KeyboardInterrupt:
        pass
    finally:
        broker.stop()

    return 0



def run_worker(configuration, arguments):

    registry = handlers.builtin(arguments.delay)
    bus = None

    try:
        bus = transport.bus(configuration)
        worker = Worker(bus, registry, configuration, topics=arguments.topics)
        worker.run()
    except BusRpcError as e:
        logger.error('worker failed: %s: %s', type(e).__name__, e)
        return 1
    finally:
        if bus is not None:
            bus.close()

    return 0



def run_call(configuration, arguments):

    if arguments.random:
        payload = [random.randint(1, 30) for _ in range(arguments.random)]
    else:
        payload = arguments.numbers

    bus = None

    try:
        bus = transport.bus(configuration)
        with Client(bus, configuration) as client:
            result = client.request(arguments.topic, payload, arguments.timeout, arguments.operation)
    except BusRpcError as e:
        logger.error('%s %s failed: %s: %s', arguments.topic, payload, type(e).__name__, e)
        return 1
    finally:
        if bus is not None:
            bus.close()

    print(result)
    return 0



if __name__ == '__main__':
    sys.exit(main())


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
