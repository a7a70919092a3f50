"""
Peer State Synchronization for CubeArena

Key Components:
- RoomChannelBinding: Room code to broadcast channel, join and leave
- PeerStateReconciler: Applies join/update/leave and throttles local updates
- SyncDispatcher: Serializes transport callbacks and frame ticks
- ArenaSession: One local player's peer id, colour, input and room
"""

from .room_channel import RoomChannelBinding, RoomHandle, normalize_room_id
from .reconciler import PeerStateReconciler
from .dispatcher import SyncDispatcher
from .input_state import InputState, ScriptedInput
from .session import ArenaSession, generate_peer_id, random_color

__all__ = [
    'RoomChannelBinding',
    'RoomHandle',
    'normalize_room_id',
    'PeerStateReconciler',
    'SyncDispatcher',
    'InputState',
    'ScriptedInput',
    'ArenaSession',
    'generate_peer_id',
    'random_color'
]
