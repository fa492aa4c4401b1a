"""XSUB/XPUB forwarding broker for the ZeroMQ bus.

Publishers connect to the XSUB side, subscribers to the XPUB side; the
broker relays subscriptions upstream and messages downstream. The proxy
runs in a background thread and is steered through an inproc PAIR socket
so that it can be stopped cleanly.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import zmq

logger = logging.getLogger(__name__)


class Broker:

    def __init__(self, xsub: str, xpub: str, context: Optional[zmq.Context] = None):
        self.xsub_endpoint = xsub
        self.xpub_endpoint = xpub
        self.context = context or zmq.Context.instance()
        self.control_endpoint = f"inproc://busrpc.broker.control:{id(self)}"

        self.xsub = self.context.socket(zmq.XSUB)
        self.xsub.setsockopt(zmq.LINGER, 0)
        self.xsub.bind(xsub)

        self.xpub = self.context.socket(zmq.XPUB)
        self.xpub.setsockopt(zmq.LINGER, 0)
        self.xpub.bind(xpub)

        self.control = self.context.socket(zmq.PAIR)
        self.control.setsockopt(zmq.LINGER, 0)
        self.control.bind(self.control_endpoint)

        self._stopped = threading.Event()
        self.thread = threading.Thread(target=self.run, name="busrpc-broker", daemon=True)

    def start(self) -> "Broker":
        self.thread.start()
        logger.info("broker relaying %s -> %s", self.xsub_endpoint, self.xpub_endpoint)
        return self

    def run(self) -> None:
        try:
            zmq.proxy_steerable(self.xsub, self.xpub, None, self.control)
        except zmq.ContextTerminated:
            pass
        except zmq.ZMQError:
            if not self._stopped.is_set():
                logger.error("broker proxy failed", exc_info=True)
        finally:
            self._stopped.set()
            for socket in (self.xsub, self.xpub, self.control):
                socket.close(0)

    def stop(self, timeout: float = 1.0) -> None:
        """Terminate the proxy; idempotent."""

        if self._stopped.is_set() or not self.thread.is_alive():
            self._stopped.set()
            return

        steer = self.context.socket(zmq.PAIR)
        steer.setsockopt(zmq.LINGER, 0)
        try:
            steer.connect(self.control_endpoint)
            steer.send(b"TERMINATE")
        finally:
            steer.close(0)

        self.thread.join(timeout)

    def wait(self) -> None:
        """Block until the proxy exits."""
        while self.thread.is_alive():
            self.thread.join(0.2)
