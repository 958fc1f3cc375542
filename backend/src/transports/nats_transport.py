import asyncio
import logging
from typing import List, Optional

import nats
from nats.aio.client import Client as NATS
from nats.aio.msg import Msg
from nats.errors import Error as NatsError
from nats.errors import NoRespondersError, TimeoutError as NatsTimeoutError

from errors import RequestTimeoutError, TransportError
from utilities import DEFAULT_CONNECTION_NAME, DEFAULT_SERVERS, log

from .base import ConnectedCallback, MessageCallback


class NatsTransport:
    '''
    Transport backed by a nats-py connection.

    run() owns the connection: it connects, lets the caller subscribe, then
    waits until disconnect() is called or the client gives up reconnecting,
    in which case it raises TransportError.
    '''

    def __init__(
        self,
        servers: Optional[List[str]] = None,
        name: str = DEFAULT_CONNECTION_NAME,
        logger: Optional[logging.Logger] = None,
        **connect_options,
    ):
        self.servers = servers or [DEFAULT_SERVERS]
        self.name = name
        self.logger = logger
        self.connect_options = connect_options
        self._nc: Optional[NATS] = None
        self._closed: Optional[asyncio.Event] = None
        self._failure: Optional[BaseException] = None
        self._disconnecting = False

    @property
    def connected(self) -> bool:
        return self._nc is not None and self._nc.is_connected

    async def _connect(self) -> NATS:
        try:
            return await nats.connect(
                servers=self.servers,
                name=self.name,
                error_cb=self._on_error,
                disconnected_cb=self._on_disconnected,
                reconnected_cb=self._on_reconnected,
                closed_cb=self._on_closed,
                **self.connect_options,
            )
        except (OSError, asyncio.TimeoutError, NatsError) as e:
            raise TransportError(f"could not connect to {', '.join(self.servers)}: {e}") from e

    async def run(self, on_connected: ConnectedCallback):
        self._closed = asyncio.Event()
        self._failure = None
        self._disconnecting = False
        self._nc = await self._connect()
        try:
            await on_connected()
            await self._closed.wait()
            if self._failure is not None and not self._disconnecting:
                raise TransportError(f"connection lost: {self._failure}") from self._failure
        finally:
            nc, self._nc = self._nc, None
            if nc is not None and not nc.is_closed:
                await nc.close()

    async def subscribe(self, subject: str, queue: Optional[str], callback: MessageCallback):
        if self._nc is None:
            raise TransportError("cannot subscribe while disconnected", subject=subject)

        async def on_message(msg: Msg):
            await callback(msg.data, msg.reply or None, msg.subject)

        try:
            await self._nc.subscribe(subject, queue=queue or "", cb=on_message)
        except NatsError as e:
            raise TransportError(f"could not subscribe to {subject}: {e}", subject=subject) from e

    async def publish(self, address: str, payload: bytes, queue: Optional[str] = None):
        # NATS has no queue group on publish; the argument is accepted for interface parity
        if self._nc is None:
            raise TransportError("cannot publish while disconnected", subject=address)
        try:
            await self._nc.publish(address, payload)
        except NatsError as e:
            raise TransportError(f"could not publish to {address}: {e}", subject=address) from e

    async def disconnect(self):
        self._disconnecting = True
        nc = self._nc
        if nc is not None and not nc.is_closed:
            await nc.close()
        if self._closed is not None:
            self._closed.set()

    async def request(self, subject: str, payload: bytes, timeout: float) -> bytes:
        ''' Sends a request on its own short-lived connection unless run() holds one.'''
        nc = self._nc
        owned = nc is None
        if owned:
            nc = await self._connect()
        try:
            msg = await nc.request(subject, payload, timeout=timeout)
            return msg.data
        except (NatsTimeoutError, NoRespondersError) as e:
            raise RequestTimeoutError(f"no reply on {subject} within {timeout}s", subject=subject) from e
        except NatsError as e:
            raise TransportError(f"request to {subject} failed: {e}", subject=subject) from e
        finally:
            if owned:
                await nc.close()

    # ------------ client callbacks ------------
    async def _on_error(self, e: Exception):
        self._failure = e
        log(self.logger, f"NATS error: {e}", level="warning")

    async def _on_disconnected(self):
        log(self.logger, "Disconnected from NATS", level="debug")

    async def _on_reconnected(self):
        # an error the client recovered from is not the cause of a later close
        self._failure = None
        log(self.logger, "Reconnected to NATS", level="debug")

    async def _on_closed(self):
        log(self.logger, "NATS connection closed", level="debug")
        if self._closed is not None:
            self._closed.set()
