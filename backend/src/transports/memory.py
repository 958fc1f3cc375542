import asyncio
import itertools
import uuid
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from errors import RequestTimeoutError, TransportError
from utilities import INBOX_PREFIX

from .base import ConnectedCallback, MessageCallback


# ------------ In-memory structures ------------
class Subscription:
    ''' One subscription held by a connection.'''

    def __init__(self, sid: int, subject: str, queue: Optional[str], callback: MessageCallback, owner: object):
        self.sid = sid
        self.subject = subject
        self.queue = queue
        self.callback = callback
        self.owner = owner


class Subject:
    def __init__(self, name: str):
        self.name = name
        self.subscriptions: Dict[int, Subscription] = {}
        self.lock = asyncio.Lock()
        # stats
        self.messages_published = 0
        self._next_member: Dict[str, int] = defaultdict(int)

    def _targets(self) -> List[Subscription]:
        # ungrouped subscribers all get the message, each queue group gets it once
        targets = []
        groups: Dict[str, List[Subscription]] = defaultdict(list)
        for sub in self.subscriptions.values():
            if sub.queue:
                groups[sub.queue].append(sub)
            else:
                targets.append(sub)
        for queue, members in groups.items():
            index = self._next_member[queue] % len(members)
            self._next_member[queue] += 1
            targets.append(members[index])
        return targets

    async def publish(self, payload: bytes, reply_to: Optional[str]) -> int:
        # locking before critical section
        async with self.lock:
            self.messages_published += 1
            targets = self._targets()

        # fan-out outside lock
        for sub in targets:
            await sub.callback(payload, reply_to, self.name)
        return len(targets)


class InMemoryBroker:
    '''
    In-process stand-in for a NATS server.

    Subjects are matched exactly (no wildcards). Several InMemoryTransport
    connections share one broker, the same way several clients share a server.
    '''

    def __init__(self):
        self.subjects: Dict[str, Subject] = {}
        self.lock = asyncio.Lock()
        self._sids = itertools.count(1)

    def new_inbox(self) -> str:
        return f"{INBOX_PREFIX}{uuid.uuid4().hex}"

    def subscriber_count(self, subject: str) -> int:
        found = self.subjects.get(subject)
        return len(found.subscriptions) if found else 0

    async def add_subscription(self, subject: str, queue: Optional[str], callback: MessageCallback, owner: object) -> Subscription:
        async with self.lock:
            found = self.subjects.get(subject)
            if found is None:
                found = Subject(subject)
                self.subjects[subject] = found
        sub = Subscription(next(self._sids), subject, queue, callback, owner)
        async with found.lock:
            found.subscriptions[sub.sid] = sub
        return sub

    async def remove_subscription(self, sub: Subscription):
        async with self.lock:
            found = self.subjects.get(sub.subject)
        if found is None:
            return
        async with found.lock:
            found.subscriptions.pop(sub.sid, None)

    async def remove_owner(self, owner: object):
        async with self.lock:
            subjects = list(self.subjects.values())
        for found in subjects:
            async with found.lock:
                for sid in [sid for sid, s in found.subscriptions.items() if s.owner is owner]:
                    found.subscriptions.pop(sid, None)

    async def publish(self, subject: str, payload: bytes, reply_to: Optional[str] = None) -> int:
        async with self.lock:
            found = self.subjects.get(subject)
        if found is None:
            return 0
        return await found.publish(payload, reply_to)


class InMemoryTransport:
    ''' A single client connection to an InMemoryBroker.'''

    def __init__(self, broker: InMemoryBroker):
        self.broker = broker
        # (address, payload, queue) of every publish, for inspection in tests
        self.published: List[Tuple[str, bytes, Optional[str]]] = []
        self._connected = False
        self._closed: Optional[asyncio.Event] = None
        self._failure: Optional[TransportError] = None

    @property
    def connected(self) -> bool:
        return self._connected

    async def run(self, on_connected: ConnectedCallback):
        self._closed = asyncio.Event()
        self._failure = None
        self._connected = True
        try:
            await on_connected()
            await self._closed.wait()
            if self._failure is not None:
                raise self._failure
        finally:
            self._connected = False
            await self.broker.remove_owner(self)

    async def subscribe(self, subject: str, queue: Optional[str], callback: MessageCallback):
        if not self._connected:
            raise TransportError("cannot subscribe while disconnected", subject=subject)
        await self.broker.add_subscription(subject, queue, callback, owner=self)

    async def publish(self, address: str, payload: bytes, queue: Optional[str] = None):
        self.published.append((address, payload, queue))
        await self.broker.publish(address, payload)

    async def disconnect(self):
        if self._closed is not None:
            self._closed.set()
        await self.broker.remove_owner(self)

    def fail(self, error: TransportError):
        ''' Simulates losing the connection: run() raises error.'''
        self._failure = error
        if self._closed is not None:
            self._closed.set()

    async def request(self, subject: str, payload: bytes, timeout: float) -> bytes:
        loop = asyncio.get_running_loop()
        reply: asyncio.Future = loop.create_future()

        async def on_reply(data: bytes, reply_to: Optional[str], reply_subject: str):
            if not reply.done():
                reply.set_result(data)

        inbox = await self.broker.add_subscription(self.broker.new_inbox(), None, on_reply, owner=reply)
        try:
            delivered = await self.broker.publish(subject, payload, reply_to=inbox.subject)
            if not delivered:
                raise RequestTimeoutError(f"no responders for {subject}", subject=subject)
            return await asyncio.wait_for(reply, timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(f"no reply on {subject} within {timeout}s", subject=subject) from None
        finally:
            await self.broker.remove_subscription(inbox)
