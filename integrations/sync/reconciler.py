"""
Peer State Reconciler

Keeps the local view of every peer equal to the most recently observed event
for that peer, and turns local input into throttled position broadcasts.

Policies:
- Inbound events carrying the local peer id are ignored.
- A join for an already known id is a no-op.
- An update for an unknown id is ignored; updates never create peers.
- Last write wins in arrival order. There are no sequence numbers, so loss,
  duplication and reordering by the transport show through unchanged.
"""

import logging
import time
from typing import Callable, Optional

from core.state_manager import Peer, Position, StateManager
from .input_state import InputState
from integrations.protocol import ChannelEvent, EventKind
from .room_channel import RoomHandle

logger = logging.getLogger('arena.sync.reconciler')

SPAWN_POSITION = Position(0.0, 0.5, 0.0)


def monotonic_ms() -> float:
    return time.monotonic_ns() / 1_000_000


class PeerStateReconciler:
    """Applies peer events to the StateManager and emits local updates"""

    def __init__(
        self,
        local_peer_id: str,
        color: int,
        state_manager: StateManager,
        move_step: float = 0.1,
        ground_y: float = 0.5,
        min_send_interval_ms: float = 100.0,
        announce_on_join: bool = True,
        clock: Callable[[], float] = monotonic_ms
    ):
        self.local_peer_id = local_peer_id
        self.color = color
        self.state_manager = state_manager
        self.move_step = move_step
        self.ground_y = ground_y
        self.min_send_interval_ms = min_send_interval_ms
        self.announce_on_join = announce_on_join
        self._clock = clock

        self._handle: Optional[RoomHandle] = None
        self._last_sent_at: Optional[float] = None
        self.updates_sent = 0

    @property
    def local_peer(self) -> Optional[Peer]:
        return self.state_manager.get_peer(self.local_peer_id)

    @property
    def handle(self) -> Optional[RoomHandle]:
        return self._handle

    def attach(self, handle: RoomHandle):
        """Route outbound events to a room"""
        self._handle = handle
        self._last_sent_at = None

    def detach(self):
        self._handle = None

    def join_local(self, room_id: str) -> ChannelEvent:
        """
        Create the local peer at the spawn point.

        Returns:
            The join event announcing it
        """
        local = self.local_peer
        if local is None:
            local = self.state_manager.add_peer(Peer(
                peer_id=self.local_peer_id,
                room_id=room_id,
                position=SPAWN_POSITION,
                color=self.color,
                is_local=True
            ))
        return self.local_join_event()

    def local_join_event(self) -> ChannelEvent:
        local = self.local_peer
        if local is None:
            raise RuntimeError("Local peer has not joined")
        return ChannelEvent.join(self.local_peer_id, local.position, local.color)

    def on_join(self, peer_id: str, position: Position, color: int) -> bool:
        """
        Start tracking a remote peer.

        Returns:
            True if a new peer was created
        """
        if peer_id == self.local_peer_id:
            return False
        if peer_id in self.state_manager:
            logger.debug(f"Ignoring duplicate join for {peer_id}")
            return False

        room_id = self._handle.room_id if self._handle else ''
        self.state_manager.add_peer(Peer(peer_id=peer_id, room_id=room_id, position=position, color=color))

        logger.info(f"Peer {peer_id} joined at ({position.x}, {position.y}, {position.z})")
        return True

    def on_update(self, peer_id: str, position: Position) -> bool:
        """
        Overwrite a known remote peer's position.

        Returns:
            True if a peer was moved
        """
        if peer_id == self.local_peer_id:
            return False

        if self.state_manager.move_peer(peer_id, position) is None:
            logger.debug(f"Ignoring update for unknown peer {peer_id}")
            return False
        return True

    def on_leave(self, peer_id: str) -> bool:
        """
        Forget a remote peer.

        Returns:
            True if a peer was removed
        """
        if peer_id == self.local_peer_id:
            return False

        if self.state_manager.remove_peer(peer_id) is None:
            return False

        logger.info(f"Peer {peer_id} left")
        return True

    async def apply(self, event: ChannelEvent) -> bool:
        """
        Apply one inbound event.

        A join that creates a peer is answered with the local join when
        announce_on_join is set, so that late joiners learn about peers that
        were already in the room.

        Returns:
            True if the peer mapping changed
        """
        if event.peer_id == self.local_peer_id:
            logger.debug(f"Ignoring self-originated {event.kind.value}")
            return False

        if event.kind is EventKind.JOIN:
            created = self.on_join(event.peer_id, event.position, event.color)
            if created and self.announce_on_join and self._handle and self.local_peer:
                await self._handle.publish(self.local_join_event())
            return created

        if event.kind is EventKind.UPDATE:
            return self.on_update(event.peer_id, event.position)

        return self.on_leave(event.peer_id)

    async def tick(self, input_state: InputState) -> Optional[ChannelEvent]:
        """
        Move the local peer one step per pressed axis and maybe broadcast.

        Movement is applied on every call, so speed depends on the call rate.
        The broadcast is throttled to one per min_send_interval_ms and always
        carries the full local position.

        Returns:
            The update that was sent, or None
        """
        local = self.local_peer
        if local is None or self._handle is None:
            return None

        dx, dz = input_state.direction()
        position = Position(
            local.position.x + dx * self.move_step,
            self.ground_y,
            local.position.z + dz * self.move_step
        )
        if position != local.position:
            self.state_manager.move_peer(self.local_peer_id, position)

        now = self._clock()
        if self._last_sent_at is not None and now - self._last_sent_at < self.min_send_interval_ms:
            return None

        self._last_sent_at = now
        event = ChannelEvent.update(self.local_peer_id, position)
        await self._handle.publish(event)
        self.updates_sent += 1
        return event

    def reset(self) -> int:
        """
        Forget every peer, local included.

        Returns:
            Number of peers removed
        """
        self._last_sent_at = None
        return self.state_manager.clear()
