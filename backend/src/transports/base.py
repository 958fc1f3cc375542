from typing import Awaitable, Callable, Optional, Protocol

# (payload, reply address, subject)
MessageCallback = Callable[[bytes, Optional[str], str], Awaitable[None]]
ConnectedCallback = Callable[[], Awaitable[None]]


class Transport(Protocol):
    ''' What the dispatcher needs from a pub/sub connection.'''

    async def run(self, on_connected: ConnectedCallback) -> None:
        ''' Connect, await on_connected(), then block until disconnected.'''
        ...

    async def subscribe(self, subject: str, queue: Optional[str], callback: MessageCallback) -> None:
        ...

    async def publish(self, address: str, payload: bytes, queue: Optional[str] = None) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    async def request(self, subject: str, payload: bytes, timeout: float) -> bytes:
        ...
