"""In-process publish/subscribe bus.

Useful for tests, and for running a client and a worker inside the same
process. Topics keep a monotonically increasing offset, consumer groups get
one shared queue (competing consumers), and ungrouped subscribers each get
their own queue (fan-out).
"""

from __future__ import annotations

import itertools
import queue
import threading
from typing import Dict, Iterator, List, Optional

from ..errors import TransportError
from .base import Bus, InboundMessage, Subscription


class _Topic:

    def __init__(self, name: str):
        self.name = name
        self.offsets = itertools.count()
        self.groups: Dict[str, queue.SimpleQueue] = {}
        self.solo: List[queue.SimpleQueue] = []


class MemorySubscription(Subscription):

    # How often, in seconds, a blocked iteration checks for close().
    poll_interval = 0.05

    def __init__(self, bus: "MemoryBus", topic: str, group: Optional[str], inbox: queue.SimpleQueue):
        Subscription.__init__(self, topic, group)
        self._bus = bus
        self._inbox = inbox

    def close(self) -> None:
        Subscription.close(self)
        self._bus._detach(self.topic, self.group, self._inbox)

    def _messages(self) -> Iterator[InboundMessage]:
        while not self.closed:
            try:
                message = self._inbox.get(timeout=self.poll_interval)
            except queue.Empty:
                continue

            if self.closed:
                # Hand the message back to the rest of the group, if any.
                if self.group is not None:
                    self._inbox.put(message)
                break

            yield message


class MemoryBus(Bus):

    def __init__(self):
        self._lock = threading.Lock()
        self._topics: Dict[str, _Topic] = {}
        self._closed = False

    def _topic(self, name: str) -> _Topic:
        try:
            return self._topics[name]
        except KeyError:
            topic = _Topic(name)
            self._topics[name] = topic
            return topic

    def publish(self, topic: str, payload: bytes) -> None:
        if not isinstance(payload, (bytes, bytearray)):
            raise TypeError(f"payload must be bytes, not {type(payload).__name__}")

        with self._lock:
            if self._closed:
                raise TransportError(f"cannot publish to {topic!r}: bus is closed")

            state = self._topic(topic)
            offset = next(state.offsets)
            message = InboundMessage(
                topic=topic,
                payload=bytes(payload),
                metadata={"partition": 0, "offset": offset},
            )

            for inbox in state.groups.values():
                inbox.put(message)
            for inbox in state.solo:
                inbox.put(message)

    def subscribe(self, topic: str, group: Optional[str] = None) -> MemorySubscription:
        with self._lock:
            if self._closed:
                raise TransportError(f"cannot subscribe to {topic!r}: bus is closed")

            state = self._topic(topic)

            if group is None:
                inbox = queue.SimpleQueue()
                state.solo.append(inbox)
            else:
                try:
                    inbox = state.groups[group]
                except KeyError:
                    inbox = queue.SimpleQueue()
                    state.groups[group] = inbox

        return MemorySubscription(self, topic, group, inbox)

    def _detach(self, topic: str, group: Optional[str], inbox: queue.SimpleQueue) -> None:
        # Group queues outlive their members, the same way a broker retains
        # a consumer group's backlog.
        if group is not None:
            return

        with self._lock:
            state = self._topics.get(topic)
            if state is None:
                return
            try:
                state.solo.remove(inbox)
            except ValueError:
                pass

    def close(self) -> None:
        with self._lock:
            self._closed = True
