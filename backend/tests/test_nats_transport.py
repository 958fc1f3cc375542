"""Tests for the nats-py transport: connection failures, teardown and error mapping."""

import asyncio
from types import SimpleNamespace

import pytest
from nats.errors import ConnectionClosedError, NoRespondersError, TimeoutError as NatsTimeoutError

from errors import RequestTimeoutError, TransportError
from transports import NatsTransport


class FakeClient:
    """Stands in for a connected nats.aio.client.Client."""

    def __init__(self, request_error: Exception = None):
        self.is_connected = True
        self.is_closed = False
        self.subscriptions = []
        self.published = []
        self.request_error = request_error

    async def subscribe(self, subject, queue="", cb=None):
        self.subscriptions.append((subject, queue, cb))

    async def publish(self, subject, payload):
        self.published.append((subject, payload))

    async def request(self, subject, payload, timeout=1):
        if self.request_error is not None:
            raise self.request_error
        return SimpleNamespace(data=b'"pong"')

    async def close(self):
        self.is_connected = False
        self.is_closed = True


@pytest.fixture
def client() -> FakeClient:
    return FakeClient()


@pytest.fixture
def nats_transport(client: FakeClient, monkeypatch: pytest.MonkeyPatch) -> NatsTransport:
    transport = NatsTransport(["nats://127.0.0.1:4222"])

    async def connect():
        return client

    monkeypatch.setattr(transport, "_connect", connect)
    return transport


async def run_until_connected(transport: NatsTransport, on_connected=None) -> asyncio.Task:
    connected = asyncio.Event()

    async def callback():
        if on_connected is not None:
            await on_connected()
        connected.set()

    task = asyncio.create_task(transport.run(callback))
    await asyncio.wait_for(connected.wait(), 1)
    return task


class TestUnreachableServer:

    @pytest.fixture
    def unreachable(self) -> NatsTransport:
        # nothing listens on port 1
        return NatsTransport(
            ["nats://127.0.0.1:1"], allow_reconnect=False, connect_timeout=0.2, max_reconnect_attempts=0
        )

    @pytest.mark.asyncio
    async def test_run_raises_transport_error(self, unreachable: NatsTransport) -> None:
        calls = []

        async def on_connected():
            calls.append(True)

        with pytest.raises(TransportError, match="could not connect"):
            await asyncio.wait_for(unreachable.run(on_connected), 5)
        assert calls == []
        assert unreachable.connected is False

    @pytest.mark.asyncio
    async def test_request_raises_transport_error(self, unreachable: NatsTransport) -> None:
        with pytest.raises(TransportError):
            await asyncio.wait_for(unreachable.request("ping", b"{}", timeout=0.2), 5)


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_disconnect_before_run_is_a_no_op(self, nats_transport: NatsTransport) -> None:
        await nats_transport.disconnect()
        await nats_transport.disconnect()
        assert nats_transport.connected is False

        # a later run is not cut short by the earlier disconnect
        task = await run_until_connected(nats_transport)
        assert nats_transport.connected is True
        assert not task.done()

        await nats_transport.disconnect()
        assert await asyncio.wait_for(task, 1) is None

    @pytest.mark.asyncio
    async def test_subscribe_and_publish_while_connected(self, nats_transport: NatsTransport, client: FakeClient) -> None:
        received = []

        async def on_message(payload, reply_to, subject):
            received.append((payload, reply_to, subject))

        async def on_connected():
            await nats_transport.subscribe("ping", None, on_message)
            await nats_transport.subscribe("work", "workers", on_message)

        task = await run_until_connected(nats_transport, on_connected)
        assert [(s, q) for s, q, _ in client.subscriptions] == [("ping", ""), ("work", "workers")]

        deliver = client.subscriptions[0][2]
        await deliver(SimpleNamespace(data=b"{}", reply="", subject="ping"))
        await deliver(SimpleNamespace(data=b"{}", reply="_INBOX.1", subject="ping"))
        assert received == [(b"{}", None, "ping"), (b"{}", "_INBOX.1", "ping")]

        await nats_transport.publish("_INBOX.1", b'"pong"', queue="workers")
        assert client.published == [("_INBOX.1", b'"pong"')]

        await nats_transport.disconnect()
        await asyncio.wait_for(task, 1)
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_subscribe_and_publish_need_a_connection(self, nats_transport: NatsTransport) -> None:
        async def on_message(payload, reply_to, subject):
            pass

        with pytest.raises(TransportError):
            await nats_transport.subscribe("ping", None, on_message)
        with pytest.raises(TransportError):
            await nats_transport.publish("_INBOX.1", b"{}")

    @pytest.mark.asyncio
    async def test_error_then_disconnect_returns_cleanly(self, nats_transport: NatsTransport) -> None:
        task = await run_until_connected(nats_transport)

        await nats_transport._on_error(OSError("broken pipe"))
        await nats_transport.disconnect()

        assert await asyncio.wait_for(task, 1) is None

    @pytest.mark.asyncio
    async def test_error_then_close_raises(self, nats_transport: NatsTransport, client: FakeClient) -> None:
        task = await run_until_connected(nats_transport)

        await nats_transport._on_error(OSError("broken pipe"))
        await nats_transport._on_closed()

        with pytest.raises(TransportError, match="connection lost: broken pipe"):
            await asyncio.wait_for(task, 1)
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_reconnect_clears_a_recovered_error(self, nats_transport: NatsTransport) -> None:
        task = await run_until_connected(nats_transport)

        await nats_transport._on_error(OSError("broken pipe"))
        await nats_transport._on_disconnected()
        await nats_transport._on_reconnected()
        await nats_transport._on_closed()

        assert await asyncio.wait_for(task, 1) is None


class TestRequest:

    @pytest.mark.asyncio
    async def test_request_uses_a_short_lived_connection(self, nats_transport: NatsTransport, client: FakeClient) -> None:
        assert await nats_transport.request("ping", b"{}", timeout=1) == b'"pong"'
        assert client.is_closed

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [NoRespondersError(), NatsTimeoutError()])
    async def test_no_reply_maps_to_request_timeout(self, nats_transport: NatsTransport, client: FakeClient, error) -> None:
        client.request_error = error

        with pytest.raises(RequestTimeoutError) as exc_info:
            await nats_transport.request("ping", b"{}", timeout=0.1)

        assert exc_info.value.subject == "ping"
        assert exc_info.value.__cause__ is error
        assert client.is_closed

    @pytest.mark.asyncio
    async def test_other_client_errors_map_to_transport_error(self, nats_transport: NatsTransport, client: FakeClient) -> None:
        client.request_error = ConnectionClosedError()

        with pytest.raises(TransportError) as exc_info:
            await nats_transport.request("ping", b"{}", timeout=0.1)

        assert not isinstance(exc_info.value, RequestTimeoutError)
