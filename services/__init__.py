"""
CubeArena Services Package

Application-level services built on the core infrastructure.
"""

from .arena_application import ArenaApplication, create_application, create_transport
from .scene_service import SceneService, Renderable, GroundPlane, Camera

__all__ = [
    'ArenaApplication',
    'create_application',
    'create_transport',
    'SceneService',
    'Renderable',
    'GroundPlane',
    'Camera'
]
