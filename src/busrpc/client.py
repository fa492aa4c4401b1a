""" Client side of the request/response pattern: the
    :class:`RequestDispatcher` publishes requests and hands back futures, a
    :class:`ReplyListener` per reply topic feeds replies into the shared
    :class:`busrpc.correlation.CorrelationTable`, and :class:`Client` wires
    the pieces together.
"""

import logging
import threading
import uuid

from . import config
from . import errors
from .correlation import CorrelationTable, IdGenerator
from .errors import MalformedEnvelope, TransportError
from .protocol import wire
from .protocol.envelope import RequestEnvelope

logger = logging.getLogger(__name__)


class RequestDispatcher:
    """ Turn a logical call into a published request envelope and a future.
        The *table* is shared with the reply listeners; *ids* is a callable
        returning fresh correlation identifiers. *listen*, if provided, is
        invoked with the reply topic before every publish so that the reply
        cannot arrive ahead of its subscription.
    """

    def __init__(self, bus, table, configuration=None, ids=None, listen=None):

        if configuration is None:
            configuration = config.Configuration()

        if ids is None:
            ids = IdGenerator()

        self.bus = bus
        self.table = table
        self.configuration = configuration
        self.ids = ids
        self.listen = listen


    def call(self, topic, payload, timeout=None, operation=None, reply_to=None):
        """ Send *payload*, a sequence of numbers, to *topic* and return a
            :class:`concurrent.futures.Future` for the result. The future
            fails with :class:`busrpc.errors.RequestTimeout` if no reply
            arrives within *timeout* seconds (the configured default if not
            specified), with :class:`busrpc.errors.TransportError` if the
            publish fails, or with a :class:`busrpc.errors.RemoteError`
            subclass if the worker replies with an error.

            The *operation* defaults to the topic name; the *reply_to* topic
            defaults to the topic name plus the configured reply suffix.
            This method never blocks waiting for the reply.
        """

        if timeout is None:
            timeout = self.configuration.timeout

        if operation is None:
            operation = topic

        if reply_to is None:
            reply_to = self.configuration.reply_topic(topic)

        # Build and encode the envelope first: a bad payload is the caller's
        # problem, raised here, and leaves nothing behind in the table.

        id = self.ids()
        envelope = RequestEnvelope(id=id, operation=operation, payload=payload, reply_to=reply_to)
        raw = wire.encode_request(envelope)

        if self.listen is not None:
            self.listen(reply_to)

        future = self.table.register(id, timeout)

        try:
            self.bus.publish(topic, raw)
        except TransportError as e:
            logger.warning('publish of %s to %r failed: %s', id, topic, e)
            self.table.reject(id, e)
        else:
            logger.debug('sent %s to %r, reply expected on %r', id, topic, reply_to)

        return future


# end of class RequestDispatcher



class ReplyListener:
    """ Single consumption loop over one reply topic. Every reply is handed
        to the correlation table; replies nobody is waiting for, and replies
        that cannot be decoded, are logged and dropped. Nothing that arrives
        on the topic can stop the loop.
    """

    def __init__(self, bus, table, topic):

        self.bus = bus
        self.table = table
        self.topic = topic
        self.subscription = None
        self.thread = None


    def start(self):
        """ Subscribe to the reply topic and start the background thread.
            The subscription is in place by the time this method returns.
        """

        if self.subscription is not None:
            return self

        self.subscription = self.bus.subscribe(self.topic)

        name = 'busrpc-replies:' + self.topic
        self.thread = threading.Thread(target=self.run, name=name)
        self.thread.daemon = True
        self.thread.start()

        return self


    def run(self):

        try:
            for message in self.subscription:
                try:
                    self.handle(message.payload)
                except Exception:
                    logger.error('unexpected failure handling a reply on %r', self.topic, exc_info=True)

                self.subscription.ack(message)
        except TransportError as e:
            if not self.subscription.closed:
                logger.error('reply listener for %r lost its subscription: %s', self.topic, e)


    def handle(self, raw):
        """ Route one encoded reply envelope. Returns True if the reply
            completed an outstanding request.
        """

        try:
            reply = wire.decode_reply(raw)
        except MalformedEnvelope as e:
            logger.warning('dropping malformed reply on %r: %s', self.topic, e)
            return False

        if reply.is_ok:
            return self.table.resolve(reply.id, reply.result)
        else:
            return self.table.reject(reply.id, errors.from_detail(reply.error))


    @property
    def alive(self):
        """ True while the background thread is consuming replies. A
            listener whose subscription failed is no longer alive.
        """

        return self.thread is not None and self.thread.is_alive()


    def stop(self, timeout=1.0):

        if self.subscription is None:
            return

        self.subscription.close()

        if self.thread is not None and self.thread is not threading.current_thread():
            self.thread.join(timeout)


# end of class ReplyListener



class Client:
    """ Request/response client over a :class:`busrpc.transport.Bus`.

        The client owns a :class:`RequestDispatcher` and one
        :class:`ReplyListener` per distinct reply topic, all sharing one
        :class:`busrpc.correlation.CorrelationTable`. A *table* can be
        injected, otherwise the client creates and owns its own. The *bus*
        is never closed by the client.
    """

    def __init__(self, bus, configuration=None, table=None):

        if configuration is None:
            configuration = config.Configuration()

        if table is None:
            table = CorrelationTable()
            self.owns_table = True
        else:
            self.owns_table = False

        self.bus = bus
        self.configuration = configuration
        self.table = table
        self.ids = IdGenerator('%s-%s' % (configuration.client_id, uuid.uuid4().hex))

        self.listeners = dict()
        self.listeners_lock = threading.Lock()
        self.closed = False

        self.dispatcher = RequestDispatcher(bus, table, configuration, self.ids, self.listen)


    def __enter__(self):
        return self


    def __exit__(self, *exc_info):
        self.close()


    def call(self, topic, payload, timeout=None, operation=None, reply_to=None):
        """ Non-blocking call; see :func:`RequestDispatcher.call`.
        """

        if self.closed:
            raise RuntimeError('client is closed')

        return self.dispatcher.call(topic, payload, timeout, operation, reply_to)


    def request(self, topic, payload, timeout=None, operation=None):
        """ Blocking call: send the request and wait for the result. Any
            failure is raised as an exception.
        """

        future = self.call(topic, payload, timeout, operation)

        # The deadline registered with the table guarantees that the future
        # completes; there is no need for a second timeout here.

        return future.result()


    def subscribe_to_response_of(self, topic):
        """ Start listening for replies to requests sent to *topic* ahead of
            the first call.
        """

        return self.listen(self.configuration.reply_topic(topic))


    def listen(self, reply_topic):
        """ Make sure a :class:`ReplyListener` is running for *reply_topic*,
            and return it.
        """

        with self.listeners_lock:
            try:
                listener = self.listeners[reply_topic]
            except KeyError:
                pass
            else:
                if listener.alive:
                    return listener

                # The subscription failed underneath the listener; replace
                # it, or every reply on this topic would go unheard.
                logger.warning('replacing failed reply listener for %r', reply_topic)
                listener.stop()

            listener = ReplyListener(self.bus, self.table, reply_topic)
            listener.start()
            self.listeners[reply_topic] = listener
            return listener


    def pending(self):
        """ Number of requests still awaiting completion.
        """

        return len(self.table)


    def close(self):
        """ Stop all reply listeners. Outstanding requests fail with
            :class:`busrpc.errors.TransportError` if the client owns its
            table.
        """

        if self.closed:
            return

        self.closed = True

        with self.listeners_lock:
            listeners = list(self.listeners.values())
            self.listeners.clear()

        for listener in listeners:
            listener.stop()

        if self.owns_table:
            self.table.close()


# end of class Client


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
