from .base import Transport, MessageCallback, ConnectedCallback  # noqa: F401
from .memory import InMemoryBroker, InMemoryTransport  # noqa: F401
from .nats_transport import NatsTransport  # noqa: F401
