""" Deadline scheduling for outstanding requests. A single background thread
    per :class:`Scheduler` sleeps until the earliest pending deadline, then
    invokes the associated callback; cancelled deadlines are discarded when
    they reach the front of the queue.
"""

import heapq
import itertools
import logging
import threading
import time

logger = logging.getLogger(__name__)


class Timer:
    """ Handle for one scheduled callback. Calling :func:`cancel` before the
        deadline passes guarantees the callback will not be invoked.
    """

    __slots__ = ('when', 'callback', 'args', 'cancelled')

    def __init__(self, when, callback, args):
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False


    def cancel(self):
        self.cancelled = True


# end of class Timer



class Scheduler:
    """ Background thread to invoke callbacks after a delay. This is the
        timeout mechanism behind :class:`busrpc.correlation.CorrelationTable`;
        the callbacks it runs are expected to be short and non-blocking.
    """

    def __init__(self, name='busrpc-deadline'):

        self.heap = list()
        self.lock = threading.Lock()
        self.sequence = itertools.count()
        self.shutdown = False

        self.alarm = threading.Event()
        self.thread = threading.Thread(target=self.run, name=name)
        self.thread.daemon = True
        self.thread.start()


    def __len__(self):
        with self.lock:
            return sum(1 for entry in self.heap if not entry[2].cancelled)


    def schedule(self, delay, callback, *args):
        """ Invoke *callback(\\*args)* once, *delay* seconds from now. Returns
            a :class:`Timer` that can be used to cancel the call.
        """

        if self.shutdown:
            raise RuntimeError('scheduler is stopped')

        timer = Timer(time.monotonic() + float(delay), callback, args)

        with self.lock:
            # The sequence number keeps the heap from ever comparing two
            # Timer instances with identical deadlines.
            heapq.heappush(self.heap, (timer.when, next(self.sequence), timer))

        self.wake()
        return timer


    def run(self):

        while self.shutdown == False:

            # Clear the alarm before looking at the heap; a schedule() call
            # that lands after this point will cut the wait short.

            self.alarm.clear()
            due = list()

            with self.lock:
                now = time.monotonic()

                while self.heap:
                    when, sequence, timer = self.heap[0]

                    if timer.cancelled:
                        heapq.heappop(self.heap)
                    elif when <= now:
                        heapq.heappop(self.heap)
                        due.append(timer)
                    else:
                        break

                if self.heap:
                    delay = self.heap[0][0] - now
                else:
                    delay = None

            for timer in due:
                if timer.cancelled:
                    continue
                try:
                    timer.callback(*timer.args)
                except Exception:
                    logger.error('deadline callback failed', exc_info=True)

            if due:
                # Callbacks took some time; look at the heap again before
                # going back to sleep.
                continue

            self.alarm.wait(delay)


    def stop(self):
        """ Stop the background thread. Pending callbacks are not invoked.
        """

        self.shutdown = True
        self.wake()


    def wake(self):
        self.alarm.set()


# end of class Scheduler


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
