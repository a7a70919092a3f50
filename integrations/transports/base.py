"""
Channel Transport Interface
"""

from abc import ABC, abstractmethod
from typing import Callable

from integrations.protocol import ChannelEvent

ChannelListener = Callable[[ChannelEvent], None]


class TransportError(Exception):
    """Raised when the transport is not connected or a send fails"""
    pass


class ChannelTransport(ABC):
    """
    Broadcast scope shared by the clients of a room.

    Delivery guarantees are whatever the underlying service provides: no
    ordering, at-most-once. A publish is never echoed back to the
    publishing client. Listeners are called from the transport's receive
    path and must not block.
    """

    name = "abstract"

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether publish can be attempted"""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection"""

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying connection and drop every subscription"""

    @abstractmethod
    async def subscribe(self, channel: str, room_id: str, listener: ChannelListener) -> None:
        """Start delivering events of a channel to listener"""

    @abstractmethod
    async def unsubscribe(self, channel: str) -> None:
        """Stop delivering events of a channel"""

    @abstractmethod
    async def publish(self, channel: str, event: ChannelEvent) -> None:
        """
        Send an event to every other subscriber of a channel.

        Raises:
            TransportError: If the transport is not connected or the send fails
        """
