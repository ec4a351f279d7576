from unittest.mock import AsyncMock

import aiohttp
import pytest

from nodekeeper.config import RetryPolicy
from nodekeeper.http_client import ResilientHttpClient

class RecordingSink:
    """Event sink that keeps every event for assertions."""

    def __init__(self):
        self.events = []

    def emit(self, event, **fields):
        self.events.append((event, fields))

    def named(self, name):
        return [fields for event, fields in self.events if event == name]


class ScriptedTransport:
    """Transport answering from a route table instead of the network.

    Routes map ``(method, url_fragment)`` to a payload, an exception
    instance, or a list of those consumed in order (the last one repeats).
    The first matching route wins.
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    async def send(self, config):
        self.calls.append(config)
        for (method, fragment), response in self.routes.items():
            if config.method != method or fragment not in config.url:
                continue
            if isinstance(response, list):
                response = response.pop(0) if len(response) > 1 else response[0]
            if isinstance(response, BaseException):
                raise response
            return response
        raise aiohttp.ClientConnectionError(f"no route for {config.method} {config.url}")

    def step_names(self, address=None):
        names = []
        for config in self.calls:
            if address and address not in config.url:
                continue
            if "node-status" in config.url:
                names.append("status")
            elif config.url.endswith("/stop"):
                names.append("stop")
            elif config.url.endswith("/start"):
                names.append("connect")
            elif "wallet-details" in config.url:
                names.append("points")
            else:
                names.append(config.url)
        return names


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def transport():
    return ScriptedTransport()


@pytest.fixture
def client(transport, sink, sleep):
    policy = RetryPolicy(timeout_ms=1000, max_attempts=2, retry_interval_seconds=0)
    return ResilientHttpClient(policy, sink=sink, transport=transport, sleep=sleep)
