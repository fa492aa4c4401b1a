"""RabbitMQ bus backed by a topic exchange."""

from .bus import RabbitBus, RabbitSubscription
