"""
Scene Service for CubeArena

Keeps one renderable cube per known peer by following peer-state events on
the EventBus. Rendering is headless: a frame is a debug log line and a
snapshot that tests and tools can inspect.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from core.event_bus import Event, EventBus, EventPriority
from core.state_manager import Position

logger = logging.getLogger('arena.services.scene_service')


@dataclass
class Renderable:
    """A unit cube standing in for one peer"""
    peer_id: str
    position: Position
    color: int
    is_local: bool = False
    size: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'peer_id': self.peer_id,
            'position': self.position.to_dict(),
            'color': f"#{self.color:06x}",
            'is_local': self.is_local
        }


@dataclass(frozen=True)
class GroundPlane:
    width: float = 50.0
    depth: float = 50.0
    color: int = 0x555555


@dataclass
class Camera:
    position: Position = field(default_factory=lambda: Position(0.0, 10.0, 15.0))
    look_at: Position = field(default_factory=Position)
    fov: float = 75.0
    near: float = 0.1
    far: float = 1000.0
    aspect: float = 16 / 9

    def resize(self, width: int, height: int):
        """Follow the viewport size"""
        if height > 0:
            self.aspect = width / height


class SceneService:
    """Mirrors the peer mapping as renderables"""

    HANDLER_ID = 'scene_service'

    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self.ground = GroundPlane()
        self.camera = Camera()
        self.renderables: Dict[str, Renderable] = {}
        self.frames_rendered = 0

        self.event_bus.subscribe(
            ['peer_joined', 'peer_moved', 'peer_left'],
            self._on_peer_event,
            handler_id=self.HANDLER_ID,
            priority=EventPriority.LOW
        )

        logger.info("SceneService initialized")

    def _on_peer_event(self, event: Event):
        peer = event.get_event_data('peer')
        if peer is None:
            return

        if event.event_type == 'peer_joined':
            self.renderables[peer.peer_id] = Renderable(
                peer_id=peer.peer_id,
                position=peer.position,
                color=peer.color,
                is_local=peer.is_local
            )
        elif event.event_type == 'peer_moved':
            renderable = self.renderables.get(peer.peer_id)
            if renderable is not None:
                renderable.position = peer.position
        elif event.event_type == 'peer_left':
            self.renderables.pop(peer.peer_id, None)

    def get_positions(self) -> Dict[str, Tuple[float, float, float]]:
        return {
            peer_id: (r.position.x, r.position.y, r.position.z)
            for peer_id, r in self.renderables.items()
        }

    def render(self) -> List[Dict[str, Any]]:
        """
        Produce one frame.

        Returns:
            A snapshot of every renderable
        """
        self.frames_rendered += 1
        snapshot = [r.to_dict() for r in self.renderables.values()]
        logger.debug(f"Frame {self.frames_rendered}: {len(snapshot)} cubes")
        return snapshot

    def close(self):
        self.event_bus.unsubscribe(self.HANDLER_ID)
        self.renderables.clear()
