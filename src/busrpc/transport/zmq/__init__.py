"""ZeroMQ PUB/SUB bus and its XSUB/XPUB forwarding broker."""

from .bus import ZmqBus, ZmqSubscription
from .broker import Broker
