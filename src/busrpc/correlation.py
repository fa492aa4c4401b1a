""" The correlation table ties every outstanding request to the completion
    handle its caller is waiting on. Entries are added when a request is
    sent and removed exactly once: when the matching reply arrives, when the
    deadline passes, when the publish fails, or when the caller cancels.

    The completion handle is a :class:`concurrent.futures.Future`. Removal
    from the table happens under a lock, completion of the future happens
    after the removal, and only the party that removed the entry completes
    the future; this is what makes completion happen at most once no matter
    how replies, deadlines and cancellations interleave.
"""

import concurrent.futures
import itertools
import logging
import threading
import time
import uuid

from . import deadline
from .errors import DuplicateIdError, RequestTimeout, TransportError

logger = logging.getLogger(__name__)


class IdGenerator:
    """ Generate correlation identifiers: a random identifier for this
        generator instance, combined with a locally increasing counter. The
        counter wraps at 32 bits; with a reasonable timeout an identifier
        will be long gone from the table by the time it comes around again.
    """

    id_min = 0
    id_max = 0xFFFFFFFF

    def __init__(self, instance=None):

        if instance is None:
            instance = uuid.uuid4().hex

        self.instance = instance
        self.lock = threading.Lock()
        self.ticker = itertools.count(self.id_min)


    def __call__(self):
        return self.next()


    def next(self):
        """ Return the next correlation identifier.
        """

        with self.lock:
            id = next(self.ticker)

            if id >= self.id_max:
                self.ticker = itertools.count(self.id_min)

                if id > self.id_max:
                    # This shouldn't happen, but here we are...
                    id = next(self.ticker)

        return '%s.%08x' % (self.instance, id)


# end of class IdGenerator



class PendingRequest:
    """ Bookkeeping for one outstanding request. Instances are owned by the
        :class:`CorrelationTable`; callers only ever see the :ivar:`future`.

        :ivar id: The correlation identifier.
        :ivar created: UNIX epoch timestamp of the registration.
        :ivar deadline: UNIX epoch timestamp of the expiry, or None.
        :ivar future: The completion handle handed to the caller.
    """

    __slots__ = ('id', 'created', 'deadline', 'future', 'timer')

    def __init__(self, id, timeout=None):

        self.id = id
        self.created = time.time()
        self.future = concurrent.futures.Future()
        self.timer = None

        if timeout is None:
            self.deadline = None
        else:
            self.deadline = self.created + timeout


    def __repr__(self):
        return "PendingRequest(%r, created=%.3f, deadline=%r)" % (self.id, self.created, self.deadline)


# end of class PendingRequest



class CorrelationTable:
    """ Synchronized map of correlation identifier to :class:`PendingRequest`.
        A single table is shared by a :class:`busrpc.client.RequestDispatcher`
        and every :class:`busrpc.client.ReplyListener` of a client; pass it
        to both explicitly.

        The *scheduler* runs the expiry callbacks; a private
        :class:`busrpc.deadline.Scheduler` is created if none is provided.
    """

    def __init__(self, scheduler=None):

        if scheduler is None:
            scheduler = deadline.Scheduler()
            self.owns_scheduler = True
        else:
            self.owns_scheduler = False

        self.scheduler = scheduler
        self.lock = threading.Lock()
        self.entries = dict()


    def __contains__(self, id):
        with self.lock:
            return id in self.entries


    def __len__(self):
        with self.lock:
            return len(self.entries)


    def pending(self):
        """ Return a snapshot list of the outstanding identifiers.
        """

        with self.lock:
            return list(self.entries.keys())


    def register(self, id, timeout=None):
        """ Register a new outstanding request and return the future that
            will be completed when the request is. If a *timeout* in seconds
            is given, the request expires (see :func:`expire`) after that
            long. Raises :class:`busrpc.errors.DuplicateIdError` if *id* is
            already outstanding.
        """

        if timeout is not None:
            timeout = float(timeout)
            if timeout <= 0:
                raise ValueError('timeout must be positive, not ' + repr(timeout))

        with self.lock:
            if id in self.entries:
                raise DuplicateIdError('correlation id already outstanding: ' + repr(id))

            pending = PendingRequest(id, timeout)
            self.entries[id] = pending

            if timeout is not None:
                pending.timer = self.scheduler.schedule(timeout, self.expire, id)

        # A caller that cancels the future gives up on the request; the
        # entry goes away, and any later reply is unmatched.

        def cancelled(future, id=id):
            if future.cancelled():
                self.discard(id)

        pending.future.add_done_callback(cancelled)
        return pending.future


    def resolve(self, id, result):
        """ Complete the request identified by *id* with *result*. Returns
            True if this call completed it, False if there was nothing to
            complete: the request already completed, expired, was cancelled,
            or was never issued here.
        """

        pending = self._remove(id)

        if pending is None:
            logger.debug('dropping unmatched reply for %s', id)
            return False

        return self._settle(pending, result=result)


    def reject(self, id, exception):
        """ Complete the request identified by *id* with *exception*. The
            return value has the same meaning as for :func:`resolve`.
        """

        pending = self._remove(id)

        if pending is None:
            logger.debug('dropping unmatched error reply for %s', id)
            return False

        return self._settle(pending, exception=exception)


    def expire(self, id):
        """ Invoked when the deadline for *id* passes. If the request is
            still outstanding it is removed and its future fails with
            :class:`busrpc.errors.RequestTimeout`; otherwise this is a no-op.
        """

        pending = self._remove(id)

        if pending is None:
            return False

        elapsed = time.time() - pending.created
        logger.warning('request %s timed out after %.2f sec', id, elapsed)

        exception = RequestTimeout("no reply to %s within %.2f sec" % (id, elapsed))
        return self._settle(pending, exception=exception)


    def discard(self, id):
        """ Remove *id* without completing its future. Returns True if an
            entry was removed.
        """

        pending = self._remove(id)
        return pending is not None


    def close(self):
        """ Fail every outstanding request, and stop the private scheduler,
            if any. The table remains usable for lookups, which will all
            come up empty.
        """

        with self.lock:
            outstanding = list(self.entries.values())
            self.entries.clear()

        for pending in outstanding:
            if pending.timer is not None:
                pending.timer.cancel()
            self._settle(pending, exception=TransportError('client closed with request %s outstanding' % (pending.id)))

        if self.owns_scheduler:
            self.scheduler.stop()


    def _remove(self, id):
        """ The only place entries leave the table. Whoever gets the entry
            back from this method is the one party allowed to complete it.
        """

        with self.lock:
            pending = self.entries.pop(id, None)

        if pending is not None and pending.timer is not None:
            pending.timer.cancel()

        return pending


    def _settle(self, pending, result=None, exception=None):

        future = pending.future

        # The caller may have cancelled the future after the entry was
        # removed but before we got here; the cancellation counts as the
        # one and only completion in that case.

        if not future.set_running_or_notify_cancel():
            logger.debug('request %s was cancelled before completion', pending.id)
            return False

        if exception is None:
            future.set_result(result)
        else:
            future.set_exception(exception)

        return True


# end of class CorrelationTable


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
