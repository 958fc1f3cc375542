"""Shared fixtures: an in-memory broker with a responder and a requester connection."""

import asyncio
import json
import logging
from typing import Any, Callable

import pytest
import pytest_asyncio

from dispatch import ReplyController
from schemas import DispatcherSettings
from transports import InMemoryBroker, InMemoryTransport


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01):
    """Poll predicate until it holds or fail the test after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            pytest.fail(f"condition not met within {timeout}s")
        await asyncio.sleep(interval)


def request_payload(data: Any, message_id: str = "req-1", pattern: str = "test") -> bytes:
    return json.dumps({"id": message_id, "pattern": pattern, "data": data}).encode()


@pytest.fixture
def settings() -> DispatcherSettings:
    return DispatcherSettings(restart_backoff_initial=0)


@pytest.fixture
def broker() -> InMemoryBroker:
    return InMemoryBroker()


@pytest.fixture
def transport(broker: InMemoryBroker) -> InMemoryTransport:
    return InMemoryTransport(broker)


@pytest.fixture
def requester(broker: InMemoryBroker) -> InMemoryTransport:
    return InMemoryTransport(broker)


@pytest.fixture
def test_logger() -> logging.Logger:
    logger = logging.getLogger("replybus.tests")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest_asyncio.fixture
async def controller(transport: InMemoryTransport, settings: DispatcherSettings, test_logger: logging.Logger):
    controller = ReplyController(transport, settings=settings)
    controller.set_logger(test_logger)
    yield controller
    await controller.stop()
