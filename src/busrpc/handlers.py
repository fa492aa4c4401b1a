""" Built-in operation handlers. The correlation machinery does not care
    what a handler computes; summation is here as the canonical example and
    as the operation served by ``busrpc worker``.
"""

import functools
import logging
import time

from .errors import HandlerError
from .worker import Registry

logger = logging.getLogger(__name__)


def accumulate(numbers):
    """ Return the sum of *numbers*. An empty sequence is a domain error:
        there is nothing to accumulate.
    """

    if len(numbers) == 0:
        raise HandlerError('empty input: nothing to accumulate', code='empty_input')

    logger.info('accumulating numbers: %s', ', '.join(str(number) for number in numbers))
    total = sum(numbers)
    logger.info('sum: %s', total)

    return total



def delayed(handler, delay):
    """ Wrap *handler* so that every invocation first sleeps for *delay*
        seconds, simulating an expensive operation.
    """

    if not delay:
        return handler

    @functools.wraps(handler)
    def wrapper(numbers):
        time.sleep(delay)
        return handler(numbers)

    return wrapper



def builtin(delay=None):
    """ Return a new :class:`busrpc.worker.Registry` populated with the
        built-in operations.
    """

    registry = Registry()
    registry.register('math.sum', delayed(accumulate, delay))
    return registry


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
