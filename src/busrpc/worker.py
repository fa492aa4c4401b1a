""" Worker side of the request/response pattern. A :class:`WorkerDispatcher`
    consumes request envelopes, hands each one to the handler registered for
    its operation on a bounded thread pool, and publishes the reply with the
    request's correlation identifier. A request whose identifier cannot be
    recovered is dropped: a reply that cannot be routed is never emitted.
"""

import concurrent.futures
import functools
import logging
import threading
import traceback

from . import config
from .errors import HandlerError, MalformedEnvelope, RemoteError, TransportError, UnknownOperationError
from .protocol import fields
from .protocol import wire
from .protocol.envelope import ReplyEnvelope

logger = logging.getLogger(__name__)


class Registry:
    """ Mapping of operation name to handler. A handler is called with the
        request payload, a list of numbers, and returns a number; domain
        failures are signalled by raising :class:`busrpc.errors.HandlerError`.

        The registry is populated at startup and frozen by the worker before
        the first request is consumed; it is read without locking afterward.
    """

    def __init__(self, handlers=None):

        self.handlers = dict()
        self.frozen = False

        if handlers:
            for name, handler in handlers.items():
                self.register(name, handler)


    def __contains__(self, name):
        return name in self.handlers


    def __len__(self):
        return len(self.handlers)


    def names(self):
        return tuple(self.handlers.keys())


    def register(self, name, handler):
        """ Register *handler* for the operation *name*.
        """

        if self.frozen:
            raise RuntimeError('registry is frozen, cannot add ' + repr(name))

        if callable(handler):
            pass
        else:
            raise TypeError('handler must be callable')

        if name in self.handlers:
            raise ValueError('duplicate handler for operation ' + repr(name))

        self.handlers[name] = handler


    def operation(self, name):
        """ Decorator form of :func:`register`.
        """

        def decorator(handler):
            self.register(name, handler)
            return handler

        return decorator


    def freeze(self):
        self.frozen = True


    def lookup(self, name):
        """ Return the handler for *name*, or raise
            :class:`busrpc.errors.UnknownOperationError`.
        """

        try:
            return self.handlers[name]
        except KeyError:
            raise UnknownOperationError('no handler registered for operation ' + repr(name))


# end of class Registry



class WorkerDispatcher:
    """ Consume requests from one or more *topics* (by default, one topic
        per registered operation) as members of the configured consumer
        group, and answer them.

        Handler invocations run on a thread pool of ``configuration.workers``
        threads. Consumption pauses while every worker thread is busy and a
        further request is already waiting, so a slow handler applies
        back-pressure to the bus rather than growing an unbounded backlog.
    """

    def __init__(self, bus, registry, configuration=None, topics=None):

        if configuration is None:
            configuration = config.Configuration()

        if topics is None:
            topics = registry.names()

        self.bus = bus
        self.registry = registry
        self.configuration = configuration
        self.topics = tuple(topics)

        if len(self.topics) == 0:
            raise ValueError('a worker needs at least one request topic')

        self.pool = None
        self.slots = None
        self.subscriptions = list()
        self.threads = list()
        self.stopped = threading.Event()


    def __enter__(self):
        return self.start()


    def __exit__(self, *exc_info):
        self.stop()


    def start(self):
        """ Freeze the registry, subscribe to every request topic, and start
            consuming. Subscriptions are in place when this method returns.
        """

        if self.pool is not None:
            return self

        self.registry.freeze()

        workers = self.configuration.workers
        self.pool = concurrent.futures.ThreadPoolExecutor(max_workers=workers, thread_name_prefix='busrpc-handler')
        self.slots = threading.BoundedSemaphore(workers * 2)

        for topic in self.topics:
            subscription = self.bus.subscribe(topic, group=self.configuration.group)
            self.subscriptions.append(subscription)

            thread = threading.Thread(target=self.consume, args=(subscription,), name='busrpc-requests:' + topic)
            thread.daemon = True
            self.threads.append(thread)

        for thread in self.threads:
            thread.start()

        logger.info('worker serving %s', ', '.join(self.topics))
        return self


    def consume(self, subscription):
        """ The consumption loop for one request topic. Each iteration hands
            one message to the pool and goes back to the bus.
        """

        try:
            for message in subscription:
                self.slots.acquire()

                try:
                    future = self.pool.submit(self.handle, message)
                except RuntimeError:
                    # The pool is shutting down.
                    self.slots.release()
                    break

                future.add_done_callback(functools.partial(self._finished, subscription, message))

        except TransportError as e:
            if not subscription.closed:
                logger.error('request loop for %r lost its subscription: %s', subscription.topic, e)


    def _finished(self, subscription, message, future):
        """ Invoked when the handling of *message* is complete, reply sent
            or not. Only now is the delivery acknowledged to the bus.
        """

        self.slots.release()
        subscription.ack(message)


    def handle(self, message):
        """ Answer one inbound request message. Returns the published
            :class:`busrpc.protocol.ReplyEnvelope`, or None if the request
            had to be dropped.
        """

        try:
            try:
                request = wire.decode_request(message.payload)
            except MalformedEnvelope as e:
                return self._refuse(message, e)

            reply = self.invoke(request)

            reply_to = request.reply_to
            if reply_to is None:
                reply_to = self.configuration.reply_topic(message.topic)

            self.reply(reply_to, reply)
            return reply

        except Exception:
            logger.error('unexpected failure handling a request on %r', message.topic, exc_info=True)
            return None


    def invoke(self, request):
        """ Run the handler for *request* and build the reply envelope. Any
            exception raised by the handler is converted into an error reply.
        """

        try:
            handler = self.registry.lookup(request.operation)
            result = handler(list(request.payload))
            return request.ok(result)

        except RemoteError as e:
            logger.info('request %s (%s) failed: %s', request.id, request.operation, e)
            return request.failure(e.detail())

        except Exception as e:
            logger.error('handler for %s failed on request %s', request.operation, request.id, exc_info=True)

            error = HandlerError('%s: %s' % (type(e).__name__, str(e)), debug=traceback.format_exc())
            return request.failure(error.detail())


    def reply(self, topic, reply):

        try:
            self.bus.publish(topic, wire.encode_reply(reply))
        except TransportError as e:
            logger.error('reply %s to %r could not be published: %s', reply.id, topic, e)
        else:
            logger.debug('replied %s to %s on %r', reply.status, reply.id, topic)


    def _refuse(self, message, error):
        """ Answer a request that could not be decoded, provided it still
            carries its correlation identifier.
        """

        if error.id is None:
            logger.warning('dropping request without correlation id on %r: %s', message.topic, error)
            return None

        logger.warning('refusing malformed request %s on %r: %s', error.id, message.topic, error)

        detail = dict()
        detail['type'] = 'MalformedEnvelope'
        detail['code'] = error.code
        detail['text'] = error.text

        reply_to = error.reply_to
        if reply_to is None:
            reply_to = self.configuration.reply_topic(message.topic)

        reply = ReplyEnvelope(id=error.id, status=fields.ERROR, error=detail)
        self.reply(reply_to, reply)
        return reply


    def stop(self, timeout=1.0):
        """ Stop consuming, and wait for in-flight handlers to finish.
        """

        if self.stopped.is_set():
            return

        self.stopped.set()

        for subscription in self.subscriptions:
            subscription.close()

        for thread in self.threads:
            thread.join(timeout)

        if self.pool is not None:
            self.pool.shutdown(wait=True)


# end of class WorkerDispatcher



class Worker(WorkerDispatcher):
    """ A :class:`WorkerDispatcher` that can also run in the foreground, as
        the main activity of a worker process.
    """

    def run(self):
        """ Start, if necessary, and block until :func:`stop` is called from
            another thread or the process is interrupted.
        """

        self.start()

        try:
            while not self.stopped.wait(0.5):
                pass
        except KeyboardInterrupt:
            pass
        finally:
            self.stop()


# end of class Worker


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
