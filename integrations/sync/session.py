"""
Arena Session

Everything one client owns: its peer id and colour, key state, the room it
is in and the reconciler and dispatcher that keep its peer view current.
"""

import asyncio
import logging
import random
import string
from typing import Callable, Optional

from core.config_manager import ArenaConfiguration
from core.state_manager import StateManager
from integrations.protocol import ChannelEvent
from integrations.transports.base import ChannelTransport
from .dispatcher import SyncDispatcher
from .input_state import InputState
from .reconciler import PeerStateReconciler, monotonic_ms
from .room_channel import RoomChannelBinding, RoomHandle

logger = logging.getLogger('arena.sync.session')

PEER_ID_ALPHABET = string.digits + string.ascii_lowercase
PEER_ID_LENGTH = 13


def generate_peer_id() -> str:
    """Random base-36 id; unique with high probability"""
    return ''.join(random.choices(PEER_ID_ALPHABET, k=PEER_ID_LENGTH))


def random_color() -> int:
    return random.randrange(0x1000000)


class ArenaSession:
    """One local player's connection to a room"""

    def __init__(
        self,
        transport: ChannelTransport,
        state_manager: StateManager,
        config: ArenaConfiguration,
        local_peer_id: Optional[str] = None,
        color: Optional[int] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        self.transport = transport
        self.state_manager = state_manager
        self.config = config
        self.local_peer_id = local_peer_id or generate_peer_id()
        self.color = random_color() if color is None else color

        self.input_state = InputState()
        self.binding = RoomChannelBinding(
            transport,
            self.local_peer_id,
            channel_prefix=config.channel_prefix,
            fallback_room=config.fallback_room
        )
        self.reconciler = PeerStateReconciler(
            self.local_peer_id,
            self.color,
            state_manager,
            move_step=config.move_step,
            ground_y=config.ground_y,
            min_send_interval_ms=config.min_send_interval_ms,
            announce_on_join=config.announce_on_join,
            clock=clock or monotonic_ms
        )
        self.dispatcher = SyncDispatcher(self.reconciler, self.input_state)
        self.handle: Optional[RoomHandle] = None

    @property
    def room_id(self) -> Optional[str]:
        return self.handle.room_id if self.handle else None

    async def join(self, raw_room_id: Optional[str]) -> RoomHandle:
        """
        Enter a room and announce the local peer.

        A session is in at most one room; joining another leaves the
        current one first.
        """
        if self.handle is not None:
            await self.leave()

        if not self.transport.connected:
            await self.transport.connect()

        handle = await self.binding.join(raw_room_id, self.dispatcher.submit_peer_event)
        self.handle = handle
        self.reconciler.attach(handle)

        join_event = self.reconciler.join_local(handle.room_id)
        await handle.publish(join_event)

        logger.info(f"Peer {self.local_peer_id} entered room '{handle.room_id}'")
        return handle

    async def leave(self) -> None:
        """Announce departure, drop the subscription and forget every peer"""
        if self.handle is None:
            return

        handle = self.handle
        self.handle = None
        await self.binding.leave(handle)
        self.reconciler.detach()
        removed = self.reconciler.reset()
        self.input_state.release_all()

        logger.info(f"Peer {self.local_peer_id} left room '{handle.room_id}' ({removed} peers dropped)")

    def frame(self):
        """Submit one tick; called once per rendered frame"""
        self.dispatcher.submit_tick()

    async def process(self) -> int:
        """Drain queued peer events and ticks on the calling task"""
        return await self.dispatcher.drain()

    async def publish(self, event: ChannelEvent) -> None:
        if self.handle is None:
            raise RuntimeError("Session is not in a room")
        await self.handle.publish(event)

    async def run(self, stop: Optional[asyncio.Event] = None) -> None:
        await self.dispatcher.run(stop)

    def stop(self):
        self.dispatcher.stop()

    def get_status(self):
        return {
            'peer_id': self.local_peer_id,
            'room_id': self.room_id,
            'transport': self.transport.name,
            'peers': len(self.state_manager),
            'updates_sent': self.reconciler.updates_sent,
            'dispatcher': self.dispatcher.get_stats()
        }
