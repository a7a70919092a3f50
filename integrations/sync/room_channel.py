"""
Room Channel Binding

Maps a user-typed room code to the broadcast channel shared by everyone in
that room and owns the subscription lifecycle.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from integrations.transports.base import ChannelListener, ChannelTransport, TransportError
from integrations.protocol import ChannelEvent

logger = logging.getLogger('arena.sync.room_channel')

DEFAULT_CHANNEL_PREFIX = "game-"
DEFAULT_ROOM = "default"

_WHITESPACE = re.compile(r'\s')


def normalize_room_id(raw_room_id: Optional[str], fallback: str = DEFAULT_ROOM) -> str:
    """Lower-case, strip every whitespace character, empty -> fallback"""
    room_id = _WHITESPACE.sub('', (raw_room_id or '').lower())
    return room_id or fallback


@dataclass
class RoomHandle:
    """A live subscription to one room's channel"""
    room_id: str
    channel_name: str
    transport: ChannelTransport
    closed: bool = False

    async def publish(self, event: ChannelEvent) -> None:
        """
        Broadcast an event to the other clients in the room.

        Raises:
            TransportError: If the handle was left or the send fails
        """
        if self.closed:
            raise TransportError(f"Room {self.room_id} has been left")
        await self.transport.publish(self.channel_name, event)


class RoomChannelBinding:
    """Joins and leaves rooms on behalf of the local peer"""

    def __init__(
        self,
        transport: ChannelTransport,
        local_peer_id: str,
        channel_prefix: str = DEFAULT_CHANNEL_PREFIX,
        fallback_room: str = DEFAULT_ROOM
    ):
        self.transport = transport
        self.local_peer_id = local_peer_id
        self.channel_prefix = channel_prefix
        self.fallback_room = fallback_room

    def channel_for(self, room_id: str) -> str:
        return f"{self.channel_prefix}{room_id}"

    async def join(self, raw_room_id: Optional[str], listener: ChannelListener) -> RoomHandle:
        """
        Subscribe to a room's channel.

        The subscription persists until leave() is called with the returned
        handle.
        """
        room_id = normalize_room_id(raw_room_id, self.fallback_room)
        channel_name = self.channel_for(room_id)

        await self.transport.subscribe(channel_name, room_id, listener)

        logger.info(f"Joined room '{room_id}' on channel {channel_name}")
        return RoomHandle(room_id=room_id, channel_name=channel_name, transport=self.transport)

    async def leave(self, handle: RoomHandle) -> None:
        """
        Announce the local peer's departure, then release the subscription.

        The announcement is best effort; a failed send is logged and the
        subscription is released anyway. Peers that miss it keep a stale
        entry for this client indefinitely.
        """
        if handle.closed:
            return

        try:
            await handle.publish(ChannelEvent.leave(self.local_peer_id))
        except TransportError as e:
            logger.warning(f"Could not announce leave from room '{handle.room_id}': {e}")

        handle.closed = True
        try:
            await self.transport.unsubscribe(handle.channel_name)
        except TransportError as e:
            logger.warning(f"Could not unsubscribe from {handle.channel_name}: {e}")

        logger.info(f"Left room '{handle.room_id}'")
