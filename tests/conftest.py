"""
Shared fixtures and test doubles
"""

from typing import List, Optional, Tuple

import pytest

from core import ArenaConfiguration, EventBus, StateManager
from integrations.protocol import ChannelEvent
from integrations.transports import ChannelListener, ChannelTransport, InMemoryBroker, TransportError


class FakeClock:
    """Millisecond clock advanced by hand"""

    def __init__(self, start: float = 0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float):
        self.now += ms


class RecordingTransport(ChannelTransport):
    """Transport that records publishes instead of sending them"""

    name = "recording"

    def __init__(self, fail_publish: bool = False):
        self.published: List[Tuple[str, ChannelEvent]] = []
        self.listeners = {}
        self.unsubscribed: List[str] = []
        self.fail_publish = fail_publish
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    async def subscribe(self, channel: str, room_id: str, listener: ChannelListener) -> None:
        self.listeners[channel] = listener

    async def unsubscribe(self, channel: str) -> None:
        self.listeners.pop(channel, None)
        self.unsubscribed.append(channel)

    async def publish(self, channel: str, event: ChannelEvent) -> None:
        if self.fail_publish:
            raise TransportError("send failed")
        self.published.append((channel, event))

    def events(self, channel: Optional[str] = None) -> List[ChannelEvent]:
        return [event for ch, event in self.published if channel is None or ch == channel]


class FakeWebSocket:
    """Stand-in for a websockets client connection"""

    def __init__(self, incoming: Optional[List[str]] = None):
        self.sent: List[str] = []
        self.incoming = list(incoming or [])
        self.closed = False

    async def send(self, message: str):
        self.sent.append(message)

    async def close(self):
        self.closed = True

    async def __aiter__(self):
        for message in self.incoming:
            yield message


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def state_manager(event_bus):
    return StateManager(event_bus)


@pytest.fixture
def config():
    return ArenaConfiguration()


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def recording_transport():
    return RecordingTransport()
