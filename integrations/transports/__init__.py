"""
Channel Transports for CubeArena

Key Components:
- ChannelTransport: Interface shared by every broadcast backend
- InMemoryTransport: Clients in one process sharing an EventBus broker
- PusherChannelTransport: Hosted pub/sub over the Pusher Channels protocol
- SocketChannelTransport: Raw websocket to the relay server
"""

from .base import ChannelTransport, ChannelListener, TransportError
from .memory import InMemoryBroker, InMemoryTransport
from .pusher_channel import PusherChannelTransport
from .socket_channel import SocketChannelTransport

__all__ = [
    'ChannelTransport',
    'ChannelListener',
    'TransportError',
    'InMemoryBroker',
    'InMemoryTransport',
    'PusherChannelTransport',
    'SocketChannelTransport'
]
