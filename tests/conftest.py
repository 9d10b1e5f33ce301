"""Pytest configuration and shared fixtures."""

import asyncio
import json
from typing import Any, Dict, List

import pytest

from ntfy2clip.clients.relay_ws import RelayTransport
from ntfy2clip.config.settings import Ntfy2ClipSettings
from ntfy2clip.errors import SinkError
from ntfy2clip.sink.base import ClipboardSink


CONFIG_ENV_VARS = [
    "SERVER", "SCHEME", "TOPIC", "TOKEN", "TIMEOUT", "DEV", "CONFIG_FILE",
    "LOGGING__LEVEL", "LOGGING__FORMAT", "LOGGING__OUTPUT",
]


PROXY_ENV_VARS = ["HTTP_PROXY", "HTTPS_PROXY", "WS_PROXY", "WSS_PROXY", "ALL_PROXY"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment (and proxies) out of the tests."""
    for name in CONFIG_ENV_VARS + PROXY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(name.lower(), raising=False)


@pytest.fixture
def test_settings() -> Ntfy2ClipSettings:
    """Settings for a local relay on the 'alerts' topic."""
    return Ntfy2ClipSettings(
        server="relay.test",
        scheme="wss",
        topic="alerts",
        token="",
        timeout=120,
    )


class FakeTransport(RelayTransport):
    """In-memory transport: tests push frames (or exceptions) into ``inbound``."""

    def __init__(self):
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.pongs: List[bytes] = []
        self.pong_error = None
        self.close_calls = 0

    def feed(self, *items):
        for item in items:
            self.inbound.put_nowait(item)

    async def receive(self):
        item = await self.inbound.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def pong(self, payload: bytes) -> None:
        if self.pong_error is not None:
            raise self.pong_error
        self.pongs.append(payload)

    async def close(self) -> None:
        self.close_calls += 1

    @property
    def closed(self) -> bool:
        return self.close_calls > 0


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


class RecordingSink(ClipboardSink):
    """Sink that remembers what it was asked to copy."""

    def __init__(self, fail: bool = False):
        self.delivered: List[str] = []
        self.fail = fail

    async def deliver(self, text: str) -> None:
        if self.fail:
            raise SinkError("clipboard is broken")
        self.delivered.append(text)


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


def envelope(event: str = "message", topic: str = "alerts", message: Any = "hello", **extra) -> str:
    """Build an ntfy JSON frame."""
    body: Dict[str, Any] = {"id": "sPs71M8A2T", "time": 1700000000, "event": event, "topic": topic}
    if message is not None:
        body["message"] = message
    body.update(extra)
    return json.dumps(body)


@pytest.fixture
def sample_message_frame() -> str:
    """Sample ntfy message frame."""
    return envelope(message="build failed")


@pytest.fixture
def sample_keepalive_frame() -> str:
    """Sample ntfy keepalive frame."""
    return envelope(event="keepalive", message=None)
