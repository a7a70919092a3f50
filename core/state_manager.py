"""
State Management System for CubeArena
"""

import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, field

from .event_bus import EventBus, PeerJoinedEvent, PeerMovedEvent, PeerLeftEvent

logger = logging.getLogger('arena.core.state_manager')

@dataclass(frozen=True)
class Position:
    """A point in arena space"""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'z': self.z}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Position':
        return cls(x=float(data['x']), y=float(data['y']), z=float(data['z']))

@dataclass
class Peer:
    """
    Last-known state of one player as seen by this client.

    Only the position is tracked; there is no velocity, rotation or
    interpolation state.
    """

    # Peer identification
    peer_id: str
    room_id: str

    # Transform and appearance
    position: Position = field(default_factory=Position)
    color: int = 0xFFFFFF

    is_local: bool = False

    # Metadata
    joined_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_updated: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updates_applied: int = 0

    def move_to(self, position: Position):
        """Overwrite the position in place"""
        self.position = position
        self.updates_applied += 1
        self.last_updated = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging and diagnostics"""
        return {
            'peer_id': self.peer_id,
            'room_id': self.room_id,
            'position': self.position.to_dict(),
            'color': self.color,
            'is_local': self.is_local,
            'joined_at': self.joined_at.isoformat(),
            'last_updated': self.last_updated.isoformat(),
            'updates_applied': self.updates_applied
        }

class StateManager:
    """
    Peer mapping for one client session.

    Replaces the module-level players dictionary of a browser client with an
    explicit store. Every change is announced on the event bus so that
    collaborators such as the scene can follow along.
    """

    def __init__(self, event_bus: EventBus):
        self._peers: Dict[str, Peer] = {}
        self._event_bus = event_bus

        logger.info("StateManager initialized")

    def get_peer(self, peer_id: str) -> Optional[Peer]:
        """Get a peer by id, or None if unknown"""
        return self._peers.get(peer_id)

    def add_peer(self, peer: Peer) -> Peer:
        """
        Start tracking a peer.

        Raises:
            ValueError: If the peer id is already tracked
        """
        if peer.peer_id in self._peers:
            raise ValueError(f"Peer {peer.peer_id} is already tracked")

        self._peers[peer.peer_id] = peer
        self._event_bus.publish(PeerJoinedEvent(peer))

        logger.debug(f"Added peer {peer.peer_id} at {peer.position}")
        return peer

    def move_peer(self, peer_id: str, position: Position) -> Optional[Peer]:
        """
        Overwrite a tracked peer's position.

        Returns:
            The updated peer, or None if the id is unknown
        """
        peer = self._peers.get(peer_id)
        if peer is None:
            return None

        old_position = peer.position
        peer.move_to(position)
        self._event_bus.publish(PeerMovedEvent(peer, old_position))
        return peer

    def remove_peer(self, peer_id: str) -> Optional[Peer]:
        """
        Stop tracking a peer.

        Returns:
            The removed peer, or None if the id is unknown
        """
        peer = self._peers.pop(peer_id, None)
        if peer is None:
            return None

        self._event_bus.publish(PeerLeftEvent(peer))

        logger.debug(f"Removed peer {peer_id}")
        return peer

    def clear(self) -> int:
        """
        Forget every peer.

        Returns:
            Number of peers removed
        """
        peer_ids = list(self._peers.keys())
        for peer_id in peer_ids:
            self.remove_peer(peer_id)

        if peer_ids:
            logger.info(f"Cleared {len(peer_ids)} peers")
        return len(peer_ids)

    def get_peer_ids(self) -> List[str]:
        return list(self._peers.keys())

    def get_remote_peers(self) -> List[Peer]:
        return [peer for peer in self._peers.values() if not peer.is_local]

    def get_state_summary(self) -> Dict[str, Any]:
        """
        Get summary of all state.

        Returns:
            Summary dictionary with peer statistics
        """
        return {
            'total_peers': len(self._peers),
            'remote_peers': len(self.get_remote_peers()),
            'peers': {peer_id: peer.to_dict() for peer_id, peer in self._peers.items()}
        }

    def __len__(self) -> int:
        """Return number of tracked peers"""
        return len(self._peers)

    def __contains__(self, peer_id: str) -> bool:
        """Check if peer is tracked"""
        return peer_id in self._peers
